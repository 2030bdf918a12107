"""Базовые примеси для SQLModel моделей."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CreatedAtModel(SQLModel, table=False):
    """Журнальные записи только дописываются, поэтому хватает created_at."""

    created_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)


__all__ = ["CreatedAtModel", "utcnow"]
