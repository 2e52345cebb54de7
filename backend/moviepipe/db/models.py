"""SQLAlchemy 2.0 ORM models for moviepipe."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class HistoryKind(str, Enum):
    MOVIE = "movie"
    IMAGE = "image"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoryEntry(Base):
    """A finished generation shown in the history list.

    The autoincrement id doubles as insertion order; created_at alone can
    tie when entries are written within the same second.
    """
    __tablename__ = "history_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(20), index=True)
    title: Mapped[str] = mapped_column(String(50))
    prompt: Mapped[str] = mapped_column(Text)
    job_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    scene_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    settings: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)
