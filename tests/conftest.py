"""Общие фикстуры: управляемые часы, изолированный кеш, сервис на фейковых адаптерах."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock

import pytest
from aiocache import SimpleMemoryCache

from config.settings import AlertSettings
from stablelens.services.core.alerts import AlertDispatcher, AlertEngine
from stablelens.services.core.dashboard import StableLensService
from stablelens.services.core.registry import Registry
from stablelens.services.sources.news import NewsItem
from stablelens.services.sources.prices import PriceQuote
from stablelens.services.sources.yields import YieldPool
from stablelens.utils.cache import CacheStore
from stablelens.utils.http import ResilientFetcher


class FakeClock:
    """Ручные часы для TTL/stale-проверок."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_pool(pool: str, symbol: str, chain: str = "Ethereum", apy: float | None = 5.0, tvl: float | None = 1e6) -> YieldPool:
    return YieldPool(
        pool=pool,
        project="aave-v3",
        chain=chain,
        symbol=symbol,
        apy=apy,
        apy_base=apy,
        apy_reward=None,
        tvl_usd=tvl,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend():
    # уникальный namespace, чтобы тесты не видели ключи друг друга
    return SimpleMemoryCache(namespace=f"test-{uuid.uuid4().hex}:")


@pytest.fixture
def cache_store(backend, clock) -> CacheStore:
    return CacheStore(backend, max_keys=32, clock=clock)


@pytest.fixture
def fetcher() -> ResilientFetcher:
    return ResilientFetcher(
        request_timeout=1.0,
        attempts=3,
        backoff_base_ms=500,
        user_agent="stablelens-tests",
        sleep=AsyncMock(),
    )


@pytest.fixture
def quotes() -> dict[str, PriceQuote]:
    return {
        "USDC": PriceQuote(price=1.0002, confidence=0.99, source="defillama"),
        "USDT": PriceQuote(price=1.06, confidence=0.99, source="defillama"),
        "DAI": PriceQuote(price=None, confidence=None, source="defillama"),
    }


@pytest.fixture
def pools() -> list[YieldPool]:
    return [
        make_pool("p1", "USDC", apy=4.0, tvl=5e8),
        make_pool("p2", "USDC", chain="Base", apy=7.5, tvl=2e6),
        make_pool("p3", "USDT", chain="Tron", apy=9.0, tvl=3e7),
        make_pool("p4", "GHO", apy=12.0, tvl=1e5),
        make_pool("p5", "USDC-USDT", apy=15.0, tvl=8e7),
    ]


@pytest.fixture
def news_items() -> list[NewsItem]:
    return [
        NewsItem(
            source="SEC",
            title="SEC Charges Crypto Lender With Fraud",
            link="https://www.sec.gov/news/press-release/2024-1",
            published=None,
        ),
        NewsItem(source="BIS", title="Annual Economic Report", link="https://bis.org/r", published=None),
    ]


@pytest.fixture
def adapters(quotes, pools, news_items) -> dict[str, AsyncMock]:
    return {
        "prices": AsyncMock(return_value=quotes),
        "yields": AsyncMock(return_value=pools),
        "news": AsyncMock(return_value=news_items),
        "macro": AsyncMock(return_value=[]),
    }


@pytest.fixture
def dispatcher(clock) -> AlertDispatcher:
    return AlertDispatcher(dedup_window_sec=3600, clock=clock)


@pytest.fixture
def service(cache_store, fetcher, adapters, dispatcher, clock) -> StableLensService:
    return StableLensService(
        cache=cache_store,
        fetcher=fetcher,
        registry=Registry(),
        engine=AlertEngine(AlertSettings(), clock=clock),
        dispatcher=dispatcher,
        **adapters,
    )
