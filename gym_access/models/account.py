"""
Account and Telegram identity models.

The account itself lives in the external auth provider; ``accounts`` keeps a
local mirror of its id and (synthetic) email so workspace procedures can
look members up without calling the provider.
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gym_access.db import Base
from gym_access.models.base import TimestampMixin, utcnow


class Account(Base, TimestampMixin):
    """Local mirror of an auth-provider account."""

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    # Relationships
    telegram_identity = relationship("TelegramIdentity", back_populates="account", uselist=False)
    memberships = relationship("Membership", back_populates="account", lazy="noload")

    def __repr__(self) -> str:
        return f"<Account {self.email}>"


class TelegramIdentity(Base):
    """Binding of a Telegram user id to an account."""

    __tablename__ = "telegram_identities"

    telegram_user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    account_id: Mapped[str] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    # Profile (refreshed on every login, blank values stored as NULL)
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_auth_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    account = relationship("Account", back_populates="telegram_identity")

    @property
    def display_name(self) -> str:
        """Best human label for member lists."""
        if self.username:
            return f"@{self.username}"
        full_name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full_name or f"tg:{self.telegram_user_id}"

    def __repr__(self) -> str:
        return f"<TelegramIdentity {self.telegram_user_id} -> {self.account_id}>"
