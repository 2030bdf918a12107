"""Макро-серии FRED (CSV без API-ключа) и производный YoY."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Any, Sequence

from loguru import logger

from config.settings import MacroSeries, get_settings
from stablelens.utils.http import ResilientFetcher
from .base import EmptyPayloadError, SourceAdapter, to_float


@dataclass(slots=True, frozen=True)
class MacroFigure:
    series_id: str
    label: str
    latest_date: date
    latest_value: float
    prior_date: date
    prior_value: float

    @property
    def yoy_pct(self) -> float | None:
        if not self.prior_value:
            return None
        return round((self.latest_value - self.prior_value) / self.prior_value * 100, 2)

    def as_dict(self) -> dict[str, Any]:
        return {
            "series_id": self.series_id,
            "label": self.label,
            "latest_date": self.latest_date.isoformat(),
            "latest_value": self.latest_value,
            "prior_date": self.prior_date.isoformat(),
            "prior_value": self.prior_value,
            "yoy_pct": self.yoy_pct,
        }


def parse_fred_csv(text: str) -> list[tuple[date, float]]:
    """Строки вида DATE,VALUE; пропуски FRED помечает точкой."""

    rows: list[tuple[date, float]] = []
    for line in text.splitlines():
        parts = line.strip().split(",")
        if len(parts) < 2:
            continue
        try:
            day = date.fromisoformat(parts[0])
        except ValueError:
            continue  # заголовок или мусор
        value = to_float(parts[1]) if parts[1] not in (".", "") else None
        if value is None:
            continue
        rows.append((day, value))
    rows.sort(key=lambda row: row[0])
    return rows


def derive_figure(series: MacroSeries, rows: list[tuple[date, float]]) -> MacroFigure | None:
    if len(rows) <= series.periods_back:
        return None
    latest_date, latest_value = rows[-1]
    prior_date, prior_value = rows[-1 - series.periods_back]
    return MacroFigure(
        series_id=series.series_id,
        label=series.label,
        latest_date=latest_date,
        latest_value=latest_value,
        prior_date=prior_date,
        prior_value=prior_value,
    )


class MacroAdapter(SourceAdapter):
    name = "macro"

    def __init__(self, fetcher: ResilientFetcher, series: Sequence[MacroSeries] | None = None) -> None:
        super().__init__(fetcher)
        sources = get_settings().sources
        self._url = str(sources.fred_csv_url)
        self._series = list(series if series is not None else sources.macro_series)

    async def produce(self) -> list[MacroFigure]:
        results = await asyncio.gather(
            *(self._fetch_series(series) for series in self._series),
            return_exceptions=True,
        )
        figures: list[MacroFigure] = []
        for series, result in zip(self._series, results):
            if isinstance(result, Exception):
                logger.warning("Серия FRED {sid} недоступна: {error}", sid=series.series_id, error=result)
                continue
            if result is None:
                logger.warning("Серия FRED {sid}: недостаточно наблюдений для YoY", sid=series.series_id)
                continue
            figures.append(result)
        if not figures:
            raise EmptyPayloadError(self.name, "Ни одна макро-серия не посчиталась")
        return figures

    async def _fetch_series(self, series: MacroSeries) -> MacroFigure | None:
        text = await self._fetcher.fetch_text(self._url, params={"id": series.series_id})
        return derive_figure(series, parse_fred_csv(text))


__all__ = ["MacroAdapter", "MacroFigure", "derive_figure", "parse_fred_csv"]
