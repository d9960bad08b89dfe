"""
Workspace access control: owner/coach/member roles, invites, provisioning.

The caller's account id is fixed at construction (it comes from the
authenticated request), so no operation takes the acting user as a
parameter.

Role updates are deliberately asymmetric:
- token invites (self-service) go through the role ratchet and can never
  lower an existing owner or coach;
- invite-by-email (an explicit owner action) sets the requested role as is.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import quote

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gym_access.db import upsert_insert
from gym_access.errors import (
    AuthenticationError,
    AuthorizationError,
    InviteAlreadyAcceptedError,
    InviteExpiredError,
    NotFoundError,
    StateError,
    ValidationError,
)
from gym_access.models.account import Account, TelegramIdentity
from gym_access.models.base import as_utc, utcnow
from gym_access.models.membership import (
    RATCHETED_ROLES,
    ROLE_RANK,
    UNKNOWN_ROLE_RANK,
    Membership,
    MembershipRole,
)
from gym_access.models.workspace import Workspace
from gym_access.models.workspace_invite import WorkspaceInvite

logger = logging.getLogger(__name__)

DEFAULT_INVITE_TTL_HOURS = 168
MIN_INVITE_TTL_HOURS = 1
MAX_INVITE_TTL_HOURS = 24 * 30

EMAIL_INVITE_ROLES = (MembershipRole.COACH.value, MembershipRole.MEMBER.value)

INVITE_START_PARAM_PREFIX = "invite_"
INVITE_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{16,200}$")


@dataclass
class MemberRow:
    account_id: str
    email: str
    role: str
    created_at: datetime
    display_name: str | None = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.account_id,
            "email": self.email,
            "role": self.role,
            "created_at": as_utc(self.created_at).isoformat(),
            "display_name": self.display_name,
        }


def clamp_invite_ttl(ttl_hours: int | None) -> int:
    """Clamp the invite lifetime to [1, 720] hours; None means one week."""
    if ttl_hours is None:
        return DEFAULT_INVITE_TTL_HOURS
    if isinstance(ttl_hours, bool) or not isinstance(ttl_hours, int):
        raise ValidationError("ttl_hours must be an integer")
    return max(MIN_INVITE_TTL_HOURS, min(ttl_hours, MAX_INVITE_TTL_HOURS))


def build_invite_link(token: str, bot_username: str | None, mini_app_url: str | None = None) -> str | None:
    """Deep link that opens the Mini App with the invite as start parameter.

    Prefers the bot deep link, then the Mini App URL. Returns None when
    neither is configured; callers still hand out the bare token.
    """
    start_param = quote(f"{INVITE_START_PARAM_PREFIX}{token}", safe="")
    if bot_username:
        return f"https://t.me/{bot_username}/app?startapp={start_param}"
    if mini_app_url:
        return f"{mini_app_url.rstrip('/')}/?tgWebAppStartParam={start_param}"
    return None


def parse_invite_start_param(start_param: str | None) -> str | None:
    """Extract an invite token from a Mini App start parameter, if any."""
    if not start_param:
        return None
    value = start_param.strip()
    if not value.startswith(INVITE_START_PARAM_PREFIX):
        return None
    token = value[len(INVITE_START_PARAM_PREFIX):].strip()
    if not INVITE_TOKEN_PATTERN.match(token):
        return None
    return token


class WorkspaceAccess:
    """Workspace procedures executed on behalf of one authenticated account."""

    def __init__(self, db: AsyncSession, account_id: str | None):
        self.db = db
        self.account_id = account_id

    def _caller(self) -> str:
        if not self.account_id:
            raise AuthenticationError("Authentication required")
        return self.account_id

    async def _role(self, workspace_id: str) -> str | None:
        result = await self.db.execute(
            select(Membership.role).where(
                Membership.workspace_id == workspace_id,
                Membership.account_id == self._caller(),
            )
        )
        return result.scalar_one_or_none()

    async def is_member(self, workspace_id: str) -> bool:
        return await self._role(workspace_id) is not None

    async def is_owner(self, workspace_id: str) -> bool:
        return await self._role(workspace_id) == MembershipRole.OWNER.value

    async def _require_owner(self, workspace_id: str, message: str) -> None:
        if not workspace_id:
            raise ValidationError("Workspace id is required")
        if not await self.is_owner(workspace_id):
            raise AuthorizationError(message)

    # Workspaces

    async def create_workspace_with_owner(self, name: str | None) -> Workspace:
        """Create a workspace and make the caller its owner, in one transaction."""
        caller = self._caller()
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Workspace name is required")

        workspace = Workspace(name=clean_name, created_by=caller, created_at=utcnow())
        self.db.add(workspace)
        await self.db.flush()
        self.db.add(
            Membership(
                workspace_id=workspace.id,
                account_id=caller,
                role=MembershipRole.OWNER.value,
                created_at=utcnow(),
            )
        )
        await self.db.flush()
        logger.info(f"Workspace {workspace.id} created by {caller}")
        return workspace

    async def list_workspaces(self) -> list[Workspace]:
        """Workspaces the caller belongs to, oldest first."""
        result = await self.db.execute(
            select(Workspace)
            .join(Membership, Membership.workspace_id == Workspace.id)
            .where(Membership.account_id == self._caller())
            .order_by(Workspace.created_at, Workspace.id)
        )
        return list(result.scalars().all())

    async def ensure_default_workspace(self, name: str) -> list[Workspace]:
        """Return the caller's workspaces, creating one if there are none."""
        workspaces = await self.list_workspaces()
        if workspaces:
            return workspaces
        return [await self.create_workspace_with_owner(name)]

    # Members

    async def list_members(self, workspace_id: str) -> list[MemberRow]:
        """Members in a stable order: role rank, label, join time."""
        self._caller()
        if not await self.is_member(workspace_id):
            raise AuthorizationError("Not authorized")

        rank = case(
            *[(Membership.role == role, value) for role, value in ROLE_RANK.items()],
            else_=UNKNOWN_ROLE_RANK,
        )
        label = func.coalesce(Account.email, "")
        result = await self.db.execute(
            select(Membership, label, TelegramIdentity)
            .outerjoin(Account, Account.id == Membership.account_id)
            .outerjoin(TelegramIdentity, TelegramIdentity.account_id == Membership.account_id)
            .where(Membership.workspace_id == workspace_id)
            .order_by(rank, func.lower(label), Membership.created_at)
        )
        return [
            MemberRow(
                account_id=membership.account_id,
                email=email,
                role=membership.role,
                created_at=membership.created_at,
                display_name=identity.display_name if identity else None,
            )
            for membership, email, identity in result.all()
        ]

    async def invite_by_email(self, workspace_id: str, email: str | None, role: str | None = "coach") -> str:
        """Add an existing account by email with exactly the given role."""
        self._caller()
        await self._require_owner(workspace_id, "Only workspace owners can invite members")

        normalized_email = (email or "").strip().lower()
        normalized_role = (role or MembershipRole.COACH.value).strip().lower()
        if not normalized_email:
            raise ValidationError("Email is required")
        if normalized_role not in EMAIL_INVITE_ROLES:
            raise ValidationError("Invalid member role")

        result = await self.db.execute(
            select(Account.id).where(func.lower(Account.email) == normalized_email).limit(1)
        )
        target_id = result.scalar_one_or_none()
        if target_id is None:
            raise NotFoundError("User with this email was not found. Ask them to sign in once first.")

        stmt = upsert_insert(self.db, Membership).values(
            workspace_id=workspace_id,
            account_id=target_id,
            role=normalized_role,
            created_at=utcnow(),
        )
        await self.db.execute(
            stmt.on_conflict_do_update(
                index_elements=[Membership.workspace_id, Membership.account_id],
                set_={"role": stmt.excluded.role},
            )
        )
        logger.info(f"Account {target_id} set to {normalized_role} in workspace {workspace_id}")
        return target_id

    async def remove_member(self, workspace_id: str, account_id: str) -> None:
        """Remove a membership; the workspace creator cannot be removed."""
        self._caller()
        await self._require_owner(workspace_id, "Only workspace owners can remove members")

        workspace = await self.db.get(Workspace, workspace_id)
        if workspace is not None and workspace.created_by == account_id:
            raise StateError("The workspace creator cannot be removed")

        result = await self.db.execute(
            select(Membership).where(
                Membership.workspace_id == workspace_id,
                Membership.account_id == account_id,
            )
        )
        membership = result.scalar_one_or_none()
        if membership is None:
            raise NotFoundError("Member not found")
        await self.db.delete(membership)
        await self.db.flush()

    # Invites

    async def create_invite(
        self,
        workspace_id: str,
        ttl_hours: int | None = DEFAULT_INVITE_TTL_HOURS,
        now: datetime | None = None,
    ) -> WorkspaceInvite:
        """Create a pending coach invite; owners only."""
        caller = self._caller()
        await self._require_owner(workspace_id, "Only workspace owner can create coach invite")

        invite = WorkspaceInvite.create(
            workspace_id=workspace_id,
            created_by=caller,
            ttl_hours=clamp_invite_ttl(ttl_hours),
            role=MembershipRole.COACH.value,
            now=now,
        )
        self.db.add(invite)
        await self.db.flush()
        logger.info(f"Invite {invite.id} created for workspace {workspace_id}")
        return invite

    async def accept_invite(self, token: str | None, now: datetime | None = None) -> str:
        """Accept an invite token and return the workspace id."""
        caller = self._caller()
        token = (token or "").strip()
        if not token:
            raise ValidationError("Invite token is required")
        now = now or utcnow()

        result = await self.db.execute(select(WorkspaceInvite).where(WorkspaceInvite.token == token))
        invite = result.scalar_one_or_none()
        if invite is None:
            raise NotFoundError("Invite not found")
        if invite.is_expired(now):
            raise InviteExpiredError()
        if invite.accepted_at is not None:
            if invite.accepted_by != caller:
                raise InviteAlreadyAcceptedError()
            return invite.workspace_id

        # Claim the invite first; a concurrent acceptance makes this a no-op
        claimed = await self.db.execute(
            update(WorkspaceInvite)
            .where(WorkspaceInvite.id == invite.id, WorkspaceInvite.accepted_at.is_(None))
            .values(accepted_at=now, accepted_by=caller)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            await self.db.refresh(invite)
            if invite.accepted_by != caller:
                raise InviteAlreadyAcceptedError()
            return invite.workspace_id

        stmt = upsert_insert(self.db, Membership).values(
            workspace_id=invite.workspace_id,
            account_id=caller,
            role=invite.role,
            created_at=now,
        )
        await self.db.execute(
            stmt.on_conflict_do_update(
                index_elements=[Membership.workspace_id, Membership.account_id],
                set_={
                    "role": case(
                        (Membership.role.in_(RATCHETED_ROLES), Membership.role),
                        else_=stmt.excluded.role,
                    )
                },
            )
        )
        await self.db.refresh(invite)
        logger.info(f"Invite {invite.id} accepted by {caller}")
        return invite.workspace_id
