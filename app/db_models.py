"""SQLAlchemy ORM models backing the persistent state."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base
from .utils import utcnow


class Account(Base):
    """Ownership boundary for watchers and shows."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Not a foreign key: users.account_id already points back at accounts.
    owner: Mapped[int] = mapped_column(Integer)
    join_token: Mapped[str] = mapped_column(String(32), unique=True)


class User(Base):
    """A login able to act on an account."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True)
    password: Mapped[str] = mapped_column(Text)
    auth_token: Mapped[str] = mapped_column(String(64))
    activation_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    account_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id"), nullable=True
    )


class Watcher(Base):
    """A household member whose progress is tracked per show."""

    __tablename__ = "watchers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    name: Mapped[str] = mapped_column(String(200))
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"))


class Platform(Base):
    """A streaming platform or network shows are watched on."""

    __tablename__ = "platforms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
    name: Mapped[str] = mapped_column(String(120), unique=True)
    icon: Mapped[str] = mapped_column(String(512), default="")


class PlatformAlias(Base):
    """Maps a provider-specific network name onto a known platform."""

    __tablename__ = "platform_aliases"
    __table_args__ = (
        UniqueConstraint("source", "external_name", name="uq_platform_alias_source"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    platform_id: Mapped[int] = mapped_column(
        ForeignKey("platforms.id", ondelete="CASCADE")
    )
    source: Mapped[str] = mapped_column(String(32))
    external_name: Mapped[str] = mapped_column(String(200))


class Show(Base):
    """A show tracked by an account."""

    __tablename__ = "shows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
    name: Mapped[str] = mapped_column(String(255))
    num_seasons: Mapped[int] = mapped_column(Integer, default=0)
    platform_id: Mapped[int | None] = mapped_column(
        ForeignKey("platforms.id"), nullable=True
    )
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"))
    cancelled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    date_cancelled: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    poster_image: Mapped[str | None] = mapped_column(String(1024), nullable=True)


class ShowStatus(Base):
    """Watch-state of a show within its account."""

    __tablename__ = "show_status"
    __table_args__ = (
        UniqueConstraint("show_id", "account_id", name="uq_show_status_account"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    show_id: Mapped[int] = mapped_column(ForeignKey("shows.id"))
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"))
    watch_status_id: Mapped[int] = mapped_column(Integer, default=1)
    current_season: Mapped[int] = mapped_column(Integer, default=0)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class WatcherShowStatus(Base):
    """Links the watchers following a show's progress to its status row."""

    __tablename__ = "watchers_to_show_statuses"

    watcher_id: Mapped[int] = mapped_column(
        ForeignKey("watchers.id"), primary_key=True
    )
    show_status_id: Mapped[int] = mapped_column(
        ForeignKey("show_status.id"), primary_key=True
    )
