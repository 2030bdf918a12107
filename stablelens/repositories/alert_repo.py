"""Работа с таблицей alert_history."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from stablelens.models import AlertRecord

if TYPE_CHECKING:
    from stablelens.services.core.alerts import AlertEvent


async def save_alerts(session: AsyncSession, alerts: Sequence["AlertEvent"]) -> list[AlertRecord]:
    records = [
        AlertRecord(
            fingerprint=alert.fingerprint,
            type=alert.type,
            severity=alert.severity,
            entity=alert.entity,
            message=alert.message,
            link=alert.link,
            deviation_pct=alert.deviation_pct,
            created_at=alert.created_at,
        )
        for alert in alerts
    ]
    session.add_all(records)
    await session.commit()
    return records


async def list_recent_alerts(session: AsyncSession, limit: int = 50) -> list[AlertRecord]:
    stmt = select(AlertRecord).order_by(AlertRecord.created_at.desc(), AlertRecord.id.desc()).limit(limit)
    return list((await session.exec(stmt)).all())


__all__ = ["list_recent_alerts", "save_alerts"]
