"""
Telegram login: identity binding and session issuance.

Flow: verify initData -> derive credentials -> bind the Telegram id to an
auth-provider account -> password sign-in. Each step awaits the previous
one; any failure aborts the whole login and no tokens are returned.

Account creation (auth provider) and the identity upsert (database) are two
systems and cannot be made atomic. If a previous login created the provider
account but died before the identity row was written, the next login finds
the derived email already registered; the binder then adopts that account
instead of creating a second one.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gym_access.db import upsert_insert
from gym_access.errors import DownstreamError
from gym_access.models.account import Account, TelegramIdentity
from gym_access.models.base import utcnow
from gym_access.services.credentials import derive_auth_email, derive_auth_password
from gym_access.services.init_data import InitDataClaims, verify_init_data
from gym_access.services.supabase_auth import AuthProviderError, SessionTokens, SupabaseAuthClient
from gym_access.services.workspaces import parse_invite_start_param
from gym_access.settings import TelegramAuthConfig

logger = logging.getLogger(__name__)


def normalize_optional(value: str | None) -> str | None:
    """Trim; empty or whitespace-only becomes None."""
    if not value:
        return None
    value = value.strip()
    return value or None


def profile_metadata(claims: InitDataClaims) -> dict[str, Any]:
    """User metadata stored on the provider account."""
    return {
        "telegram_user_id": claims.telegram_user_id,
        "username": normalize_optional(claims.username),
        "first_name": normalize_optional(claims.first_name),
        "last_name": normalize_optional(claims.last_name),
    }


@dataclass
class BindResult:
    account_id: str
    is_new_account: bool
    email: str
    password: str


@dataclass
class LoginResult:
    access_token: str
    refresh_token: str
    user_id: str
    is_new_user: bool
    # Invite carried in the Mini App start parameter, accepted by the client
    invite_token: str | None = None

    def to_response(self) -> dict[str, Any]:
        response = {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "userId": self.user_id,
            "isNewUser": self.is_new_user,
        }
        if self.invite_token:
            response["inviteToken"] = self.invite_token
        return response


class IdentityBinder:
    """Maps a Telegram user id to exactly one auth-provider account."""

    def __init__(self, db: AsyncSession, auth_client: SupabaseAuthClient, config: TelegramAuthConfig):
        self.db = db
        self.auth_client = auth_client
        self.config = config

    async def bind(self, claims: InitDataClaims, now: datetime | None = None) -> BindResult:
        telegram_user_id = claims.telegram_user_id
        email = derive_auth_email(telegram_user_id)
        password = derive_auth_password(telegram_user_id, self.config.password_secret)
        metadata = profile_metadata(claims)

        try:
            identity = await self._find_identity(telegram_user_id)
            if identity is None:
                account_id, is_new = await self._provision_account(email, password, metadata)
            else:
                account_id, is_new = identity.account_id, False

            await self._save_identity(account_id, email, telegram_user_id, metadata, now or utcnow())
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DownstreamError(f"Identity store failed: {e}") from e

        # Re-set on every login so a rotated secret heals itself
        await self.auth_client.update_user(account_id, password=password, user_metadata=metadata)

        return BindResult(account_id=account_id, is_new_account=is_new, email=email, password=password)

    async def _find_identity(self, telegram_user_id: int) -> TelegramIdentity | None:
        result = await self.db.execute(
            select(TelegramIdentity).where(TelegramIdentity.telegram_user_id == telegram_user_id)
        )
        return result.scalar_one_or_none()

    async def _provision_account(
        self,
        email: str,
        password: str,
        metadata: dict[str, Any],
    ) -> tuple[str, bool]:
        try:
            user = await self.auth_client.create_user(
                email=email,
                password=password,
                user_metadata=metadata,
                email_confirm=True,
            )
        except AuthProviderError as e:
            if not e.is_email_taken:
                raise
            existing = await self.auth_client.find_user_by_email(email)
            if existing is None:
                raise
            logger.warning(
                f"Reconciled orphaned auth account {existing.id} for telegram user {metadata['telegram_user_id']}"
            )
            return existing.id, False

        logger.info(f"Created auth account {user.id} for telegram user {metadata['telegram_user_id']}")
        return user.id, True

    async def _save_identity(
        self,
        account_id: str,
        email: str,
        telegram_user_id: int,
        metadata: dict[str, Any],
        now: datetime,
    ) -> None:
        account_stmt = upsert_insert(self.db, Account).values(
            id=account_id,
            email=email,
            created_at=now,
            updated_at=now,
        )
        await self.db.execute(
            account_stmt.on_conflict_do_update(
                index_elements=[Account.id],
                set_={"email": account_stmt.excluded.email, "updated_at": now},
            )
        )

        identity_stmt = upsert_insert(self.db, TelegramIdentity).values(
            telegram_user_id=telegram_user_id,
            account_id=account_id,
            username=metadata["username"],
            first_name=metadata["first_name"],
            last_name=metadata["last_name"],
            created_at=now,
            last_auth_at=now,
        )
        await self.db.execute(
            identity_stmt.on_conflict_do_update(
                index_elements=[TelegramIdentity.telegram_user_id],
                set_={
                    "account_id": identity_stmt.excluded.account_id,
                    "username": identity_stmt.excluded.username,
                    "first_name": identity_stmt.excluded.first_name,
                    "last_name": identity_stmt.excluded.last_name,
                    "last_auth_at": identity_stmt.excluded.last_auth_at,
                },
            )
        )
        # Durable before the provider is touched again
        await self.db.commit()


class SessionIssuer:
    """Exchanges derived credentials for a provider session."""

    def __init__(self, auth_client: SupabaseAuthClient):
        self.auth_client = auth_client

    async def issue(self, email: str, password: str) -> SessionTokens:
        return await self.auth_client.sign_in_with_password(email, password)


class TelegramLogin:
    """The full initData -> session flow."""

    def __init__(self, db: AsyncSession, auth_client: SupabaseAuthClient, config: TelegramAuthConfig):
        self.config = config
        self.binder = IdentityBinder(db, auth_client, config)
        self.issuer = SessionIssuer(auth_client)

    async def login(self, init_data: str, now: int | float | None = None) -> LoginResult:
        claims = verify_init_data(
            init_data,
            self.config.bot_token,
            self.config.max_age_seconds,
            now=now,
        )
        bound = await self.binder.bind(claims)
        tokens = await self.issuer.issue(bound.email, bound.password)
        return LoginResult(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            user_id=bound.account_id,
            is_new_user=bound.is_new_account,
            invite_token=parse_invite_start_param(claims.start_param),
        )
