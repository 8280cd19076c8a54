from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class ReadingRow(Base):
    __tablename__ = "telemetry_readings"
    # BigInteger autoincrement does not map to ROWID on SQLite.
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    owner_id: Mapped[str] = mapped_column(String(64))
    device_serial: Mapped[str] = mapped_column(String(255))
    location_label: Mapped[str] = mapped_column(String(255))
    sensor_kind: Mapped[str] = mapped_column(String(100))
    value: Mapped[int] = mapped_column(Integer)
    # Naive UTC.
    recorded_at: Mapped[datetime] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_readings_owner_location_time", "owner_id", "location_label", "recorded_at"),
        Index("idx_readings_recorded_at", "recorded_at"),
    )


class AccountRow(Base):
    """Minimal account record; only what the unverified-account purge touches."""

    __tablename__ = "accounts"
    owner_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255))
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime)
