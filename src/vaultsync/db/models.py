"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Alembic auto-generates migrations by comparing
these models to the actual DB.

Layout of the Preferences Store:

    devices ──1:1── user_preferences
       │
       └──1:N── active_sessions   (presence heartbeats, unique per item)

Column types are kept portable (no JSONB / ARRAY) so the same models run
on PostgreSQL in production and SQLite in tests.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize a DB datetime to aware UTC (SQLite hands back naive values)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Device(Base):
    """One browser / installation, keyed by its stable fingerprint.

    Learn: The wire-level `deviceId` is the fingerprint, not the integer
    primary key. Devices are created lazily the first time a device
    reads or writes its preferences.
    """

    __tablename__ = "devices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fingerprint: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    # Relationships
    preferences: Mapped[Optional["UserPreferences"]] = relationship(
        back_populates="device", uselist=False, cascade="all, delete-orphan"
    )
    sessions: Mapped[list["ActiveSession"]] = relationship(
        back_populates="device", cascade="all, delete-orphan"
    )


class UserPreferences(Base):
    """Durable copy of a device's settings. Last writer wins, no merge."""

    __tablename__ = "user_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("devices.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    default_duration_minutes: Mapped[int] = mapped_column(Integer, default=60)
    privacy_mode: Mapped[bool] = mapped_column(Boolean, default=False)
    panic_url: Mapped[str] = mapped_column(String(2048), default="https://google.com")
    panic_shortcut: Mapped[str] = mapped_column(String(64), default="Escape")
    theme_config: Mapped[str] = mapped_column(Text, default="{}")  # JSON string
    date_time_format: Mapped[str] = mapped_column(String(64), default="yyyy-MM-dd HH:mm")
    compact_mode: Mapped[bool] = mapped_column(Boolean, default=False)
    sidebar_open: Mapped[bool] = mapped_column(Boolean, default=True)
    confirm_delete: Mapped[bool] = mapped_column(Boolean, default=True)
    confirm_extend: Mapped[bool] = mapped_column(Boolean, default=True)
    auto_refresh_interval: Mapped[int] = mapped_column(Integer, default=0)  # seconds, 0 = off
    cache_ttl_minutes: Mapped[int] = mapped_column(Integer, default=5)
    auto_privacy_delay_minutes: Mapped[int] = mapped_column(Integer, default=0)
    api_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    api_token: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    device: Mapped["Device"] = relationship(back_populates="preferences")


class ActiveSession(Base):
    """Presence record — which device is looking at which item, and when it last said so.

    Learn: There is no `is_live` column. Liveness is `now - last_active_at <= ttl`,
    evaluated at read time, so a crashed browser simply ages out without
    any background job. The sweeper only deletes very old rows to keep
    the table small.
    """

    __tablename__ = "active_sessions"
    __table_args__ = (
        UniqueConstraint("device_id", "item_id", name="uq_active_sessions_device_item"),
        Index("ix_active_sessions_item_last_active", "item_id", "last_active_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("devices.id", ondelete="CASCADE"), nullable=False
    )
    item_id: Mapped[str] = mapped_column(String(255), nullable=False)
    last_active_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    device: Mapped["Device"] = relationship(back_populates="sessions")
