"""
Membership model for workspace memberships.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gym_access.db import Base
from gym_access.models.base import utcnow


class MembershipRole(str, Enum):
    OWNER = "owner"
    COACH = "coach"
    MEMBER = "member"


# Sort rank used by member listings; unknown roles sink to the bottom
ROLE_RANK = {
    MembershipRole.OWNER.value: 1,
    MembershipRole.COACH.value: 2,
    MembershipRole.MEMBER.value: 3,
}
UNKNOWN_ROLE_RANK = 9

# Roles a self-service invite acceptance may never lower
RATCHETED_ROLES = (MembershipRole.OWNER.value, MembershipRole.COACH.value)


def role_rank(role: str) -> int:
    return ROLE_RANK.get(role, UNKNOWN_ROLE_RANK)


class Membership(Base):
    """Workspace membership model."""

    __tablename__ = "workspace_members"
    __table_args__ = (
        UniqueConstraint("workspace_id", "account_id", name="uq_workspace_member"),
        CheckConstraint("role in ('owner', 'coach', 'member')", name="ck_workspace_member_role"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    workspace_id: Mapped[str] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    account_id: Mapped[str] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(20), default=MembershipRole.MEMBER.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    workspace = relationship("Workspace", back_populates="memberships")
    account = relationship("Account", back_populates="memberships")

    def __repr__(self) -> str:
        return f"<Membership account={self.account_id} workspace={self.workspace_id} role={self.role}>"
