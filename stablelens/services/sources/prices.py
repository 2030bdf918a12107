"""Живые цены стейблкоинов.

Основной источник: DefiLlama coins API (цена + confidence).
Если по всем символам цена пустая (в том числе при падении запроса),
целиком переключаемся на CoinGecko simple/price. Фоллбэк «всё или ничего»,
посимвольного смешивания источников нет.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from loguru import logger

from config.settings import get_settings
from stablelens.utils.http import FetchError, ResilientFetcher
from .base import EmptyPayloadError, SourceAdapter, to_float


@dataclass(slots=True, frozen=True)
class PriceQuote:
    """Цена одного символа."""

    price: float | None
    confidence: float | None
    source: str

    def as_dict(self) -> dict[str, Any]:
        return {"price": self.price, "confidence": self.confidence, "source": self.source}


class PriceAdapter(SourceAdapter):
    """Цены фиксированного набора символов (symbol -> coingecko id)."""

    name = "prices"

    def __init__(self, fetcher: ResilientFetcher, coin_ids: Mapping[str, str]) -> None:
        super().__init__(fetcher)
        sources = get_settings().sources
        self._primary_url = str(sources.price_primary_url)
        self._fallback_url = str(sources.price_fallback_url)
        self._coin_ids = dict(coin_ids)

    async def produce(self) -> dict[str, PriceQuote]:
        quotes = await self._safe_fetch(self._fetch_primary, "defillama")
        if any(quote.price is not None for quote in quotes.values()):
            return quotes
        logger.info("Основной источник цен пуст, переключаемся на CoinGecko")
        quotes = await self._safe_fetch(self._fetch_fallback, "coingecko")
        if any(quote.price is not None for quote in quotes.values()):
            return quotes
        raise EmptyPayloadError(self.name, "Ни один источник цен не вернул данных")

    async def _safe_fetch(self, fetch, source: str) -> dict[str, PriceQuote]:
        try:
            return await fetch()
        except FetchError as exc:
            logger.warning("Источник цен {source} недоступен: {error}", source=source, error=exc)
            return self._empty(source)

    async def _fetch_primary(self) -> dict[str, PriceQuote]:
        keys = ",".join(f"coingecko:{coin_id}" for coin_id in self._coin_ids.values())
        data = await self._fetcher.fetch_json(f"{self._primary_url}{keys}")
        return self.parse_primary(data)

    async def _fetch_fallback(self) -> dict[str, PriceQuote]:
        params = {"ids": ",".join(self._coin_ids.values()), "vs_currencies": "usd"}
        data = await self._fetcher.fetch_json(self._fallback_url, params=params)
        return self.parse_fallback(data)

    def parse_primary(self, data: Any) -> dict[str, PriceQuote]:
        """{"coins": {"coingecko:<id>": {"price": .., "confidence": ..}}}"""

        coins = data.get("coins") if isinstance(data, dict) else None
        if not isinstance(coins, dict):
            return self._empty("defillama")
        quotes: dict[str, PriceQuote] = {}
        for symbol, coin_id in self._coin_ids.items():
            item = coins.get(f"coingecko:{coin_id}")
            if not isinstance(item, dict):
                item = {}
            quotes[symbol] = PriceQuote(
                price=to_float(item.get("price")),
                confidence=to_float(item.get("confidence")),
                source="defillama",
            )
        return quotes

    def parse_fallback(self, data: Any) -> dict[str, PriceQuote]:
        """{"<id>": {"usd": ..}}"""

        if not isinstance(data, dict):
            return self._empty("coingecko")
        quotes: dict[str, PriceQuote] = {}
        for symbol, coin_id in self._coin_ids.items():
            item = data.get(coin_id)
            price = to_float(item.get("usd")) if isinstance(item, dict) else None
            quotes[symbol] = PriceQuote(price=price, confidence=None, source="coingecko")
        return quotes

    def _empty(self, source: str) -> dict[str, PriceQuote]:
        return {symbol: PriceQuote(price=None, confidence=None, source=source) for symbol in self._coin_ids}


__all__ = ["PriceAdapter", "PriceQuote"]
