"""AlertEngine: depeg, регуляторные и stale-feed алерты.

Движок без состояния: каждый прогон заново выводит алерты из текущих
снимков кеша. Состояние есть только у AlertDispatcher, который
дедуплицирует пересылку во внешние sink'и (вебхуки, БД).
"""

from __future__ import annotations

import asyncio
import math
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Literal, Mapping, Sequence

from loguru import logger

from config.settings import AlertSettings, get_settings
from stablelens.services.sources.news import NewsItem

AlertType = Literal["depeg", "stale", "regulatory"]
Severity = Literal["info", "medium", "high"]

SEVERITY_RANK: dict[str, int] = {"high": 0, "medium": 1, "info": 2}

ENFORCEMENT_RE = re.compile(r"enforcement|settlement|charge|lawsuit|penalty|consent order")
REGULATOR_RE = re.compile(
    r"\b(?:sec|cftc|doj)\b"
    r"|attorney general"
    r"|securities and exchange commission"
    r"|commodity futures trading commission"
    r"|department of justice"
)


@dataclass(slots=True)
class AlertEvent:
    type: AlertType
    severity: Severity
    entity: str
    message: str
    link: str | None = None
    deviation_pct: float | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def fingerprint(self) -> str:
        """Ключ дедупликации: тот же тип, сущность, уровень и ссылка/текст."""

        return f"{self.type}:{self.entity}:{self.severity}:{self.link or self.message}"

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "severity": self.severity,
            "entity": self.entity,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
        }
        if self.link:
            data["link"] = self.link
        if self.deviation_pct is not None:
            data["deviation_pct"] = self.deviation_pct
        return data


def is_regulatory_title(title: str) -> bool:
    """Оба условия обязательны: лексика санкций И упоминание регулятора."""

    text = (title or "").lower()
    return bool(ENFORCEMENT_RE.search(text)) and bool(REGULATOR_RE.search(text))


class AlertEngine:
    def __init__(
        self,
        settings: AlertSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings or get_settings().alerts
        self._clock = clock

    def depeg_alerts(self, prices: Mapping[str, float | None]) -> list[AlertEvent]:
        alerts: list[AlertEvent] = []
        for symbol, price in prices.items():
            if price is None:
                continue
            # округляем шум float, чтобы 1.015 давал ровно 0.015
            deviation = round(abs(1 - price), 10)
            if deviation < self._settings.depeg_medium:
                continue
            severity: Severity = "high" if deviation >= self._settings.depeg_high else "medium"
            whole_pct = math.floor(deviation * 100 + 0.5)
            alerts.append(
                AlertEvent(
                    type="depeg",
                    severity=severity,
                    entity=symbol,
                    message=f"{symbol} deviated {whole_pct}% from $1",
                    deviation_pct=round(deviation * 100, 2),
                )
            )
        return alerts

    def regulatory_alerts(self, news: Iterable[NewsItem]) -> list[AlertEvent]:
        return [
            AlertEvent(
                type="regulatory",
                severity="info",
                entity=item.source,
                message=item.title,
                link=item.link or None,
            )
            for item in news
            if is_regulatory_title(item.title)
        ]

    def stale_alerts(self, refreshed_at: Mapping[str, float | None]) -> list[AlertEvent]:
        """Фиды без единого успешного обновления не считаются устаревшими."""

        now = self._clock()
        alerts: list[AlertEvent] = []
        for feed, threshold in self._settings.stale_thresholds_sec.items():
            updated = refreshed_at.get(feed)
            if updated is None:
                continue
            age = now - updated
            if age <= threshold:
                continue
            alerts.append(
                AlertEvent(
                    type="stale",
                    severity="medium",
                    entity=feed,
                    message=f"Feed '{feed}' last refreshed {int(age // 60)} min ago (threshold {threshold // 60} min)",
                )
            )
        return alerts

    def derive(
        self,
        *,
        prices: Mapping[str, float | None],
        news: Iterable[NewsItem],
        refreshed_at: Mapping[str, float | None],
    ) -> list[AlertEvent]:
        alerts = [
            *self.depeg_alerts(prices),
            *self.stale_alerts(refreshed_at),
            *self.regulatory_alerts(news),
        ]
        return self.truncate(alerts)

    def truncate(self, alerts: Sequence[AlertEvent]) -> list[AlertEvent]:
        """Сначала по уровню (high > medium > info), потом обрезка до max_alerts."""

        ordered = sorted(alerts, key=lambda alert: SEVERITY_RANK[alert.severity])
        return ordered[: self._settings.max_alerts]


AlertSink = Callable[[Sequence[AlertEvent]], Awaitable[None]]


class AlertDispatcher:
    """Пересылает только новые алерты (окно дедупликации по fingerprint)."""

    def __init__(
        self,
        dedup_window_sec: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._window = dedup_window_sec if dedup_window_sec is not None else get_settings().alerts.dedup_window_sec
        self._clock = clock
        self._sent: dict[str, float] = {}
        self._sinks: set[AlertSink] = set()
        self._lock = asyncio.Lock()

    def subscribe(self, sink: AlertSink) -> None:
        self._sinks.add(sink)

    async def dispatch(self, alerts: Sequence[AlertEvent]) -> list[AlertEvent]:
        """Возвращает новые алерты.

        Fingerprint резервируется до отправки, чтобы параллельный прогон не
        продублировал её. Если не принял ни один sink, резерв снимается и
        алерт уйдёт повторно на следующем прогоне.
        """

        now = self._clock()
        async with self._lock:
            self._sent = {fp: ts for fp, ts in self._sent.items() if now - ts < self._window}
            fresh = [alert for alert in alerts if alert.fingerprint not in self._sent]
            for alert in fresh:
                self._sent[alert.fingerprint] = now
        if not fresh or not self._sinks:
            return fresh
        logger.info("Отправляем {count} новых алертов в {sinks} sink(ов)", count=len(fresh), sinks=len(self._sinks))
        delivered = await asyncio.gather(*(self._safe_emit(sink, fresh) for sink in self._sinks))
        if not any(delivered):
            async with self._lock:
                for alert in fresh:
                    self._sent.pop(alert.fingerprint, None)
            logger.warning("Ни один sink не принял {count} алертов, повторим позже", count=len(fresh))
        return fresh

    async def _safe_emit(self, sink: AlertSink, payload: Sequence[AlertEvent]) -> bool:
        try:
            await sink(payload)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Sink алертов упал: {error}", error=exc)
            return False
        return True


__all__ = [
    "AlertDispatcher",
    "AlertEngine",
    "AlertEvent",
    "AlertSink",
    "SEVERITY_RANK",
    "is_regulatory_title",
]
