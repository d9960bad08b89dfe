"""
Workspace model for multi-tenant organization.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gym_access.db import Base
from gym_access.models.base import new_uuid, utcnow


class Workspace(Base):
    """Workspace (tenant) model. Every other entity is scoped to one."""

    __tablename__ = "workspaces"
    __table_args__ = (
        CheckConstraint("length(trim(name)) > 0", name="ck_workspaces_name_not_blank"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_by: Mapped[str] = mapped_column(
        ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    memberships = relationship("Membership", back_populates="workspace", lazy="noload")
    invites = relationship("WorkspaceInvite", back_populates="workspace", lazy="noload")

    def __repr__(self) -> str:
        return f"<Workspace {self.id} {self.name!r}>"
