"""История отправленных алертов."""

from __future__ import annotations

from typing import Optional

from sqlmodel import Field

from .base import CreatedAtModel


class AlertRecord(CreatedAtModel, table=True):
    __tablename__ = "alert_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    fingerprint: str = Field(max_length=512, index=True)
    type: str = Field(max_length=16, index=True)
    severity: str = Field(max_length=16)
    entity: str = Field(max_length=128, index=True)
    message: str = Field(max_length=1024)
    link: Optional[str] = Field(default=None, max_length=1024)
    deviation_pct: Optional[float] = None


__all__ = ["AlertRecord"]
