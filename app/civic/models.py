from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from app.civic.constants import ROLE_CITIZEN, SUPPORT_TIER_NONE


class Base(DeclarativeBase):
    pass


class User(Base):
    """Identity record. Credentials only; everything public lives on Profile."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    profile: Mapped["Profile | None"] = relationship(back_populates="user", uselist=False, lazy="selectin")


class Profile(Base):
    __tablename__ = "profiles"
    __table_args__ = (
        Index("idx_profiles_role", "role"),
        Index("idx_profiles_payment_customer", "payment_customer_id"),
    )

    # Same id as the owning User (one profile per identity).
    id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)

    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    username: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)

    # Admin-writable only
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=ROLE_CITIZEN)

    census_registered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    # District linkage
    region: Mapped[str | None] = mapped_column(String(128), nullable=True)
    locality: Mapped[str | None] = mapped_column(String(128), nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(16), nullable=True)
    district_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Payments
    support_tier: Mapped[str] = mapped_column(String(64), nullable=False, default=SUPPORT_TIER_NONE)
    payment_customer_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped[User] = relationship(back_populates="profile")

    @property
    def display_name(self) -> str:
        return self.username or self.full_name or f"#{self.id}"


class ActivityLog(Base):
    """
    Append-only audit trail of privileged actions.
    Rows are never updated or deleted by the application.
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("idx_activity_logs_created_at", "created_at"),
        Index("idx_activity_logs_action", "action"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    user_id: Mapped[int | None] = mapped_column(ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "ROLE_CHANGE"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)  # string for flexibility
    details_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON object
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False, default="unknown")

    actor: Mapped[Profile | None] = relationship(lazy="joined")


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.civic.modules.nuclei.models import Nucleus, NucleusMember  # noqa: E402,F401
