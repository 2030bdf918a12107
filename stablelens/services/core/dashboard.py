"""StableLensService: фасад ядра для HTTP-слоя.

Связывает CacheStore, адаптеры источников, скоринг и AlertEngine.
Реестры читаются напрямую, апстримы только через кеш.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from loguru import logger

from config.settings import get_settings
from stablelens.services.sources import (
    ChainSeriesAdapter,
    MacroAdapter,
    NewsAdapter,
    NewsItem,
    PriceAdapter,
    PriceQuote,
    SourceUnavailableError,
    YieldPool,
    YieldPoolAdapter,
)
from stablelens.utils.cache import CacheStore, CacheStoreError
from stablelens.utils.http import FetchError, ResilientFetcher
from .alerts import AlertDispatcher, AlertEngine, AlertEvent
from .registry import Registry, StablecoinRecord
from .scoring import platform_breakdown, score_platform, score_stablecoin, stablecoin_breakdown

KEY_PRICES = "prices"
KEY_YIELDS = "yields"
KEY_NEWS = "news"
KEY_MACRO = "macro"
CHAIN_KEY_PREFIX = "chain_series:"

MAX_YIELD_ROWS = 200
TOP_POOLS_PER_COIN = 12
SCORE_BUCKETS: tuple[tuple[str, float], ...] = ((">=8", 8.0), ("7-8", 7.0), ("6-7", 6.0), ("<6", float("-inf")))


class NotFoundError(LookupError):
    """Запрошенной сущности нет в реестре (не путать с недоступностью апстрима)."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind} '{key}' не найден")
        self.kind = kind
        self.key = key


class StableLensService:
    def __init__(
        self,
        *,
        cache: CacheStore,
        fetcher: ResilientFetcher,
        registry: Registry,
        engine: AlertEngine,
        dispatcher: AlertDispatcher | None = None,
        prices: PriceAdapter | None = None,
        yields: YieldPoolAdapter | None = None,
        news: NewsAdapter | None = None,
        macro: MacroAdapter | None = None,
    ) -> None:
        self._ttl = get_settings().cache
        self._aliases = get_settings().sources.chain_aliases
        self._cache = cache
        self._fetcher = fetcher
        self._registry = registry
        self._engine = engine
        self._dispatcher = dispatcher
        self._prices = prices or PriceAdapter(fetcher, registry.price_ids())
        self._yields = yields or YieldPoolAdapter(fetcher)
        self._news = news or NewsAdapter(fetcher)
        self._macro = macro or MacroAdapter(fetcher)

    # ------------------------------------------------------------------
    # Датасеты через кеш
    # ------------------------------------------------------------------

    async def _dataset(self, key: str, ttl: float, producer: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await self._cache.get_or_refresh(key, ttl, producer)
        except (SourceUnavailableError, CacheStoreError):
            raise
        except FetchError as exc:
            raise SourceUnavailableError(key, f"Источник {key} недоступен: {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            # битый payload на холодном кеше: для клиента это тот же 503
            logger.exception("Источник {key}: ошибка нормализации", key=key)
            raise SourceUnavailableError(key, f"Источник {key} вернул некорректные данные: {exc}") from exc

    async def prices(self) -> dict[str, PriceQuote]:
        return await self._dataset(KEY_PRICES, self._ttl.ttl_prices_sec, self._prices)

    async def yields(self) -> list[YieldPool]:
        return await self._dataset(KEY_YIELDS, self._ttl.ttl_yields_sec, self._yields)

    async def news(self) -> list[NewsItem]:
        return await self._dataset(KEY_NEWS, self._ttl.ttl_news_sec, self._news)

    async def _prices_or_empty(self) -> dict[str, PriceQuote]:
        try:
            return await self.prices()
        except SourceUnavailableError as exc:
            logger.warning("Цены недоступны, отдаём реестр без цен: {error}", error=exc)
            return {}

    async def _yields_or_none(self) -> list[YieldPool] | None:
        try:
            return await self.yields()
        except SourceUnavailableError as exc:
            logger.warning("Пулы недоступны: {error}", error=exc)
            return None

    # ------------------------------------------------------------------
    # Стейблкоины
    # ------------------------------------------------------------------

    def _stablecoin_row(self, record: StablecoinRecord, quote: PriceQuote | None) -> dict[str, Any]:
        return {
            **record.as_dict(),
            "score": score_stablecoin(record),
            "price": quote.price if quote else None,
            "price_confidence": quote.confidence if quote else None,
        }

    def _score_map(self) -> dict[str, float]:
        return {record.symbol.upper(): score_stablecoin(record) for record in self._registry.stablecoins}

    async def get_stablecoins(self) -> list[dict[str, Any]]:
        quotes = await self._prices_or_empty()
        return [self._stablecoin_row(record, quotes.get(record.symbol)) for record in self._registry.stablecoins]

    async def get_stablecoin(self, symbol: str) -> dict[str, Any]:
        record = self._registry.find_stablecoin(symbol)
        if record is None:
            raise NotFoundError("stablecoin", symbol)
        quotes = await self._prices_or_empty()
        pools = await self._yields_or_none() or []
        wanted = record.symbol.upper()
        top_pools = sorted(
            (pool for pool in pools if pool.symbol.upper() == wanted),
            key=lambda pool: pool.apy or 0.0,
            reverse=True,
        )[:TOP_POOLS_PER_COIN]
        return {
            "stablecoin": self._stablecoin_row(record, quotes.get(record.symbol)),
            "breakdown": stablecoin_breakdown(record).as_dict(),
            "top_pools": [pool.as_dict() for pool in top_pools],
        }

    # ------------------------------------------------------------------
    # Платформы
    # ------------------------------------------------------------------

    async def get_platforms(
        self,
        type: str | None = None,
        region: str | None = None,
        min_score: float = 0.0,
    ) -> dict[str, list[dict[str, Any]]]:
        result: dict[str, list[dict[str, Any]]] = {"cefi": [], "defi": []}
        wanted_type = (type or "").lower()
        wanted_region = (region or "").lower()
        for platform in self._registry.platforms:
            if wanted_type and platform.type != wanted_type:
                continue
            if wanted_region and wanted_region not in platform.region.lower():
                continue
            score = score_platform(platform)
            if score < min_score:
                continue
            result[platform.type].append({**platform.as_dict(), "score": score})
        return result

    async def get_platform(self, name: str) -> dict[str, Any]:
        platform = self._registry.find_platform(name)
        if platform is None:
            raise NotFoundError("platform", name)
        breakdown = platform_breakdown(platform)
        return {
            "platform": {**platform.as_dict(), "score": breakdown.total},
            "breakdown": breakdown.as_dict(),
        }

    # ------------------------------------------------------------------
    # Пулы
    # ------------------------------------------------------------------

    async def get_yields(
        self,
        symbol: str | None = None,
        chain: str | None = None,
        min_score: float = 0.0,
        sort: str = "apy",
        order: str = "desc",
    ) -> list[dict[str, Any]]:
        rows = await self.yields()
        scores = self._score_map()
        wanted_symbol = (symbol or "").upper()
        wanted_chain = (chain or "").lower()
        if wanted_symbol:
            rows = [pool for pool in rows if pool.symbol.upper() == wanted_symbol]
        if wanted_chain:
            rows = [pool for pool in rows if pool.chain.lower() == wanted_chain]
        if min_score > 0:
            rows = [pool for pool in rows if scores.get(pool.symbol.upper(), 0.0) >= min_score]
        attr = "tvl_usd" if (sort or "").lower() == "tvl" else "apy"
        descending = (order or "").lower() != "asc"
        rows = sorted(rows, key=lambda pool: getattr(pool, attr) or 0.0, reverse=descending)
        return [pool.as_dict() for pool in rows[:MAX_YIELD_ROWS]]

    async def get_best_yields(
        self,
        min_score: float = 0.0,
        chain: str | None = None,
        top: int = 20,
    ) -> list[dict[str, Any]]:
        """Лучшие APY среди пулов, чей стейблкоин проходит порог скора."""

        rows = await self.yields()
        scores = self._score_map()
        top = max(1, min(MAX_YIELD_ROWS, top))
        wanted_chain = (chain or "").lower()
        candidates = [
            pool
            for pool in rows
            if pool.symbol
            and pool.apy is not None
            and (not wanted_chain or pool.chain.lower() == wanted_chain)
            and (min_score <= 0 or scores.get(pool.symbol.upper(), 0.0) >= min_score)
        ]
        candidates.sort(key=lambda pool: pool.apy or 0.0, reverse=True)
        return [
            {**pool.as_dict(), "compliance_score": scores.get(pool.symbol.upper(), 0.0)}
            for pool in candidates[:top]
        ]

    # ------------------------------------------------------------------
    # Новости, макро, сети
    # ------------------------------------------------------------------

    async def get_news(self) -> list[dict[str, Any]]:
        return [item.as_dict() for item in await self.news()]

    async def get_macro(self) -> list[dict[str, Any]]:
        figures = await self._dataset(KEY_MACRO, self._ttl.ttl_macro_sec, self._macro)
        return [figure.as_dict() for figure in figures]

    async def get_chain_supply(self, chain: str) -> dict[str, Any]:
        key = chain.lower()
        if key not in self._aliases:
            raise NotFoundError("chain", chain)
        adapter = ChainSeriesAdapter(self._fetcher, key)
        supply = await self._dataset(f"{CHAIN_KEY_PREFIX}{key}", self._ttl.ttl_chain_series_sec, adapter)
        return supply.as_dict()

    # ------------------------------------------------------------------
    # Алерты и метрики
    # ------------------------------------------------------------------

    async def collect_alerts(self) -> list[AlertEvent]:
        quotes = await self._prices_or_empty()
        try:
            news = await self.news()
        except SourceUnavailableError as exc:
            logger.warning("Новости недоступны, регуляторные алерты пропущены: {error}", error=exc)
            news = []
        # доходные токены растут над $1 по построению, это не depeg
        pegged = {record.symbol for record in self._registry.stablecoins if record.model != "yield-bearing"}
        alerts = self._engine.derive(
            prices={symbol: quote.price for symbol, quote in quotes.items() if symbol in pegged},
            news=news,
            refreshed_at=self._cache.snapshot_times(),
        )
        if self._dispatcher is not None:
            await self._dispatcher.dispatch(alerts)
        return alerts

    async def get_alerts(self) -> list[dict[str, Any]]:
        return [alert.as_dict() for alert in await self.collect_alerts()]

    async def get_metrics(self) -> dict[str, Any]:
        rows = [self._stablecoin_row(record, None) for record in self._registry.stablecoins]
        distribution = {label: 0 for label, _ in SCORE_BUCKETS}
        for row in rows:
            label = next(label for label, floor in SCORE_BUCKETS if row["score"] >= floor)
            distribution[label] += 1
        chain_counts: dict[str, int] = {}
        for record in self._registry.stablecoins:
            for chain in record.chains:
                chain_counts[chain] = chain_counts.get(chain, 0) + 1
        top_scored = sorted(rows, key=lambda row: row["score"], reverse=True)[:5]
        pools = await self._yields_or_none()
        platform_types = [platform.type for platform in self._registry.platforms]
        return {
            "score_distribution": distribution,
            "chain_counts": chain_counts,
            "top_scored": top_scored,
            "totals": {
                "stablecoins": len(rows),
                "cefi": platform_types.count("cefi"),
                "defi": platform_types.count("defi"),
                "pools": len(pools) if pools is not None else None,
            },
        }

    def status(self) -> dict[str, Any]:
        updated = {
            key: datetime.fromtimestamp(ts, tz=timezone.utc).isoformat() if ts is not None else None
            for key, ts in self._cache.snapshot_times().items()
        }
        return {"health": "ok", "updated_at": updated}

    async def warm_up(self) -> None:
        """Параллельный прогрев горячих датасетов; ошибка одного не отменяет остальные."""

        names = (KEY_PRICES, KEY_YIELDS, KEY_NEWS)
        results = await asyncio.gather(self.prices(), self.yields(), self.news(), return_exceptions=True)
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.warning("Прогрев {name} не удался: {error}", name=name, error=result)
            else:
                logger.debug("Прогрев {name}: ок", name=name)


__all__ = ["NotFoundError", "StableLensService"]
