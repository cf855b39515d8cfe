from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.civic.constants import NUCLEUS_ROLE_MEMBER
from app.civic.models import Base


class Nucleus(Base):
    """
    Local chapter pinned to a map point.
    Member count is never stored; it is aggregated from nucleus_members at read time.
    """

    __tablename__ = "nuclei"
    __table_args__ = (
        Index("idx_nuclei_city", "city"),
        Index("idx_nuclei_is_active", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    region: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Percentage-space coordinates used for map placement
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)


class NucleusMember(Base):
    __tablename__ = "nucleus_members"
    __table_args__ = (
        UniqueConstraint("user_id", "nucleus_id", name="uq_nucleus_members_user_nucleus"),
        Index("idx_nucleus_members_nucleus", "nucleus_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    nucleus_id: Mapped[int] = mapped_column(ForeignKey("nuclei.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=NUCLEUS_ROLE_MEMBER)  # member, moderator, admin
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
