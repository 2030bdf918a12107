"""Серия предложения стейблкоинов по сети (DefiLlama stablecoincharts/<chain>).

DefiLlama называет сети непоследовательно (BSC / Binance, Tron / tron),
поэтому перебираем список алиасов по порядку до первой непустой серии.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

from loguru import logger

from config.settings import get_settings
from stablelens.utils.http import FetchError, ResilientFetcher
from .base import SourceAdapter, SourceUnavailableError, to_float


@dataclass(slots=True, frozen=True)
class ChainSupplyPoint:
    date: datetime
    circulating_usd: float


@dataclass(slots=True)
class ChainSupply:
    """Серия по одной сети и производные метрики."""

    chain: str
    alias: str
    points: list[ChainSupplyPoint] = field(default_factory=list)

    @property
    def latest(self) -> ChainSupplyPoint | None:
        return self.points[-1] if self.points else None

    def change_pct(self, days: int = 30) -> float | None:
        """Процентное изменение последнего значения к значению days наблюдений назад."""

        if len(self.points) <= days:
            return None
        previous = self.points[-1 - days].circulating_usd
        if not previous:
            return None
        return round((self.points[-1].circulating_usd - previous) / previous * 100, 2)

    def as_dict(self, history: int = 90) -> dict[str, Any]:
        latest = self.latest
        return {
            "chain": self.chain,
            "alias": self.alias,
            "latest_usd": latest.circulating_usd if latest else None,
            "latest_date": latest.date.date().isoformat() if latest else None,
            "change_30d_pct": self.change_pct(30),
            "series": [
                {"date": point.date.date().isoformat(), "circulating_usd": point.circulating_usd}
                for point in self.points[-history:]
            ],
        }


class ChainSeriesAdapter(SourceAdapter):
    name = "chain_series"

    def __init__(self, fetcher: ResilientFetcher, chain: str) -> None:
        super().__init__(fetcher)
        sources = get_settings().sources
        self._base_url = str(sources.chain_series_url)
        self._chain = chain.lower()
        self._aliases = sources.chain_aliases.get(self._chain) or [chain]

    async def produce(self) -> ChainSupply:
        for alias in self._aliases:
            try:
                data = await self._fetcher.fetch_json(f"{self._base_url}{quote(alias)}")
            except FetchError as exc:
                logger.debug("Серия {alias} недоступна: {error}", alias=alias, error=exc)
                continue
            points = self.parse(data)
            if points:
                return ChainSupply(chain=self._chain, alias=alias, points=points)
            logger.debug("Серия {alias} пуста, пробуем следующий алиас", alias=alias)
        raise SourceUnavailableError(
            f"{self.name}:{self._chain}",
            f"Ни один алиас сети {self._chain} не вернул серию: {', '.join(self._aliases)}",
        )

    @staticmethod
    def parse(data: Any) -> list[ChainSupplyPoint]:
        if not isinstance(data, list):
            return []
        points: list[ChainSupplyPoint] = []
        for entry in data:
            if not isinstance(entry, dict):
                continue
            ts = to_float(entry.get("date"))
            if ts is None:
                continue
            circulating = entry.get("totalCirculatingUSD") or entry.get("totalCirculating") or {}
            value = to_float(circulating.get("peggedUSD")) if isinstance(circulating, dict) else None
            if value is None:
                continue
            try:
                stamp = datetime.fromtimestamp(int(ts), tz=timezone.utc)
            except (OverflowError, ValueError, OSError):
                continue  # дата вне диапазона платформы
            points.append(ChainSupplyPoint(date=stamp, circulating_usd=value))
        points.sort(key=lambda point: point.date)
        return points


__all__ = ["ChainSeriesAdapter", "ChainSupply", "ChainSupplyPoint"]
