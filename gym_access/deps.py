"""
FastAPI dependencies for configuration, database and the calling account.
"""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from gym_access.db import get_db, upsert_insert
from gym_access.errors import AuthenticationError
from gym_access.models.account import Account
from gym_access.models.base import utcnow
from gym_access.services.supabase_auth import AuthProviderError, SupabaseAuthClient
from gym_access.services.workspaces import WorkspaceAccess
from gym_access.settings import Settings, TelegramAuthConfig, settings

# Type alias for database dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]


AuthClientFactory = Callable[[TelegramAuthConfig], SupabaseAuthClient]


def get_app_settings() -> Settings:
    return settings


AppSettings = Annotated[Settings, Depends(get_app_settings)]


def get_auth_client_factory() -> AuthClientFactory:
    """How auth provider clients are built (tests swap in a mock transport)."""
    return SupabaseAuthClient


AuthClientFactoryDep = Annotated[AuthClientFactory, Depends(get_auth_client_factory)]


def get_auth_config(app_settings: AppSettings) -> TelegramAuthConfig:
    """Login configuration; raises ConfigurationError when secrets are missing."""
    return app_settings.telegram_auth_config()


AuthConfig = Annotated[TelegramAuthConfig, Depends(get_auth_config)]


def get_auth_client(config: AuthConfig, factory: AuthClientFactoryDep) -> SupabaseAuthClient:
    return factory(config)


AuthClient = Annotated[SupabaseAuthClient, Depends(get_auth_client)]


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise AuthenticationError("Authentication required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Authentication required")
    return token.strip()


async def get_current_account_id(
    request: Request,
    db: DBSession,
    auth_client: AuthClient,
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Resolve the bearer access token to an account id.

    The provider is the source of truth for identity; the local accounts
    mirror is refreshed so memberships can reference the caller.
    """
    try:
        user = await auth_client.get_user(_bearer_token(authorization))
    except AuthProviderError as e:
        if e.provider_status in (401, 403):
            raise AuthenticationError("Session is invalid or expired") from e
        raise

    now = utcnow()
    stmt = upsert_insert(db, Account).values(
        id=user.id,
        email=(user.email or f"{user.id}@accounts.local").lower(),
        created_at=now,
        updated_at=now,
    )
    await db.execute(stmt.on_conflict_do_nothing(index_elements=[Account.id]))
    request.state.account_id = user.id
    return user.id


CurrentAccountId = Annotated[str, Depends(get_current_account_id)]


def get_workspace_access(db: DBSession, account_id: CurrentAccountId) -> WorkspaceAccess:
    return WorkspaceAccess(db, account_id)


Access = Annotated[WorkspaceAccess, Depends(get_workspace_access)]
