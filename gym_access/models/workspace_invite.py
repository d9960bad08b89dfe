"""
Workspace invite model for token-based coach invitations.
"""

import secrets
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gym_access.db import Base
from gym_access.models.base import as_utc, new_uuid, utcnow
from gym_access.models.membership import MembershipRole

# 32 random bytes -> 43 URL-safe characters
INVITE_TOKEN_BYTES = 32


def generate_invite_token() -> str:
    """Generate an unguessable URL-safe invite token."""
    return secrets.token_urlsafe(INVITE_TOKEN_BYTES)


class InviteState(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class WorkspaceInvite(Base):
    """Single-use, time-bounded invitation into a workspace.

    Rows are never deleted; an accepted or expired invite stays as an
    audit record.
    """

    __tablename__ = "workspace_invites"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    workspace_id: Mapped[str] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(20), default=MembershipRole.COACH.value, nullable=False)
    token: Mapped[str] = mapped_column(String(200), unique=True, nullable=False, default=generate_invite_token)

    created_by: Mapped[str] = mapped_column(ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    accepted_by: Mapped[str | None] = mapped_column(
        ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )

    # Relationships
    workspace = relationship("Workspace", back_populates="invites")

    @classmethod
    def create(
        cls,
        workspace_id: str,
        created_by: str,
        ttl_hours: int,
        role: str = MembershipRole.COACH.value,
        now: datetime | None = None,
    ) -> "WorkspaceInvite":
        """Create a new pending invite."""
        issued_at = now or utcnow()
        return cls(
            id=new_uuid(),
            workspace_id=workspace_id,
            role=role,
            token=generate_invite_token(),
            created_by=created_by,
            created_at=issued_at,
            expires_at=issued_at + timedelta(hours=ttl_hours),
        )

    def state(self, now: datetime | None = None) -> InviteState:
        """Current state; an accepted invite reports ACCEPTED even past expiry.

        Acceptance itself checks expiry first, so re-accepting after the
        expiry time fails even for the account that accepted it.
        """
        if self.accepted_at is not None:
            return InviteState.ACCEPTED
        if (now or utcnow()) > as_utc(self.expires_at):
            return InviteState.EXPIRED
        return InviteState.PENDING

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > as_utc(self.expires_at)

    def __repr__(self) -> str:
        return f"<WorkspaceInvite workspace={self.workspace_id} role={self.role} state={self.state().value}>"
