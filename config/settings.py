"""Глобальные настройки StableLens.

Секции повторяют слои сервиса: http, cache, sources, alerts, database, web.
Вложенные поля задаются через двойное подчёркивание, например
CACHE__TTL_PRICES_SEC=120 или ALERTS__WEBHOOK_URLS='["https://hooks.example.com"]'.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import (
    AnyHttpUrl,
    BaseModel,
    Field,
    PositiveFloat,
    PositiveInt,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent
ACCESSIBLE_ENV_FILE = BASE_DIR / "config" / "runtime.env"
DEFAULT_ENV_FILE = BASE_DIR / ".env"
ENV_FILE = ACCESSIBLE_ENV_FILE if ACCESSIBLE_ENV_FILE.exists() else DEFAULT_ENV_FILE


class HttpSettings(BaseModel):
    """Параметры исходящих запросов (ResilientFetcher)."""

    request_timeout: PositiveFloat = Field(12.0, description="Таймаут одной попытки, секунды")
    attempts: PositiveInt = Field(3, description="Жёсткий потолок попыток на один логический запрос")
    backoff_base_ms: int = Field(500, ge=0, description="База линейного backoff между попытками")
    user_agent: str = "StableLens/1.2 (+https://stablelens.app)"


class CacheSettings(BaseModel):
    """Настройки кешей (aiocache поддерживает memory / redis)."""

    backend: Literal["memory", "redis"] = "memory"
    redis_dsn: str | None = None
    namespace: str = "stablelens"
    max_keys: PositiveInt = 64
    ttl_prices_sec: int = 5 * 60
    ttl_yields_sec: int = 5 * 60
    ttl_news_sec: int = 10 * 60
    ttl_macro_sec: int = 12 * 60 * 60
    ttl_chain_series_sec: int = 60 * 60


class NewsFeed(BaseModel):
    """Один RSS-источник."""

    name: str
    url: AnyHttpUrl


class MacroSeries(BaseModel):
    """Серия FRED и число наблюдений назад для расчёта YoY."""

    series_id: str
    label: str
    periods_back: PositiveInt = 12


def _default_feeds() -> list[NewsFeed]:
    return [
        NewsFeed(name="SEC", url="https://www.sec.gov/news/pressreleases.rss"),
        NewsFeed(name="CFTC", url="https://www.cftc.gov/PressRoom/PressReleases/rss.xml"),
        NewsFeed(name="Federal Reserve", url="https://www.federalreserve.gov/feeds/press_all.xml"),
        NewsFeed(name="BIS", url="https://www.bis.org/list/press_releases.rss"),
        NewsFeed(name="Ripple/XRPL", url="https://xrpl.org/blog/index.xml"),
        NewsFeed(name="CertiK", url="https://www.certik.com/resources.rss"),
    ]


def _default_macro() -> list[MacroSeries]:
    return [
        MacroSeries(series_id="CPIAUCSL", label="US CPI (YoY)"),
        MacroSeries(series_id="M2SL", label="US M2 money supply (YoY)"),
    ]


def _default_chain_aliases() -> dict[str, list[str]]:
    return {
        "ethereum": ["Ethereum", "ethereum"],
        "tron": ["Tron", "tron"],
        "bsc": ["BSC", "Binance", "bsc"],
        "arbitrum": ["Arbitrum", "arbitrum"],
        "base": ["Base", "base"],
        "solana": ["Solana", "solana"],
        "polygon": ["Polygon", "polygon"],
    }


class SourceSettings(BaseModel):
    """Эндпоинты апстримов. Все публичные, без API-ключей."""

    price_primary_url: AnyHttpUrl = Field(
        "https://coins.llama.fi/prices/current/",
        description="DefiLlama coins API (цена + confidence)",
    )
    price_fallback_url: AnyHttpUrl = Field(
        "https://api.coingecko.com/api/v3/simple/price",
        description="CoinGecko simple price, используется только если основной источник пуст",
    )
    yields_url: AnyHttpUrl = "https://yields.llama.fi/pools"
    chain_series_url: AnyHttpUrl = "https://stablecoins.llama.fi/stablecoincharts/"
    fred_csv_url: AnyHttpUrl = "https://fred.stlouisfed.org/graph/fredgraph.csv"
    news_feeds: list[NewsFeed] = Field(default_factory=_default_feeds)
    news_items_per_feed: PositiveInt = 10
    news_max_items: PositiveInt = 40
    macro_series: list[MacroSeries] = Field(default_factory=_default_macro)
    chain_aliases: dict[str, list[str]] = Field(default_factory=_default_chain_aliases)


def _default_stale_thresholds() -> dict[str, int]:
    return {
        "prices": 15 * 60,
        "yields": 30 * 60,
        "news": 60 * 60,
        "macro": 3 * 24 * 60 * 60,
    }


class AlertSettings(BaseModel):
    """Пороговые значения AlertEngine и параметры фонового прогона."""

    depeg_medium: PositiveFloat = 0.015
    depeg_high: PositiveFloat = 0.05
    max_alerts: PositiveInt = 50
    stale_thresholds_sec: dict[str, int] = Field(default_factory=_default_stale_thresholds)
    sweep_enabled: bool = True
    sweep_interval_sec: PositiveInt = 60
    dedup_window_sec: PositiveInt = 6 * 60 * 60
    webhook_urls: list[AnyHttpUrl] = Field(default_factory=list)
    webhook_timeout: PositiveFloat = 3.0


class DatabaseSettings(BaseModel):
    """SQLModel + aiosqlite. Без DSN история алертов не сохраняется."""

    dsn: str | None = Field(
        None,
        description="Строка подключения SQLAlchemy/SQLModel, например sqlite+aiosqlite:///./database/stablelens.db",
    )
    echo: bool = False

    @field_validator("dsn", mode="before")
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class WebSettings(BaseModel):
    """FastAPI/uvicorn."""

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: list[str] = Field(default_factory=list)


class AppSettings(BaseSettings):
    """Главный контейнер настроек StableLens."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    environment: Literal["dev", "prod"] = "dev"
    log_json: bool = False
    http: HttpSettings = HttpSettings()
    cache: CacheSettings = CacheSettings()
    sources: SourceSettings = SourceSettings()
    alerts: AlertSettings = AlertSettings()
    database: DatabaseSettings = DatabaseSettings()
    web: WebSettings = WebSettings()

    @property
    def is_production(self) -> bool:
        """True, если сервис запущен в продовой среде."""

        return self.environment == "prod"


# Ленивый синглтон (избегаем глобальных переменных в модулях).
_settings: AppSettings | None = None


def get_settings() -> AppSettings:
    """Возвращает единый экземпляр настроек.

    Вызываем во всех частях приложения (сервисы, веб). Значения кэшируются,
    поэтому инициализация .env происходит ровно один раз за процесс.
    """

    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


__all__ = [
    "AlertSettings",
    "AppSettings",
    "CacheSettings",
    "DatabaseSettings",
    "HttpSettings",
    "MacroSeries",
    "NewsFeed",
    "SourceSettings",
    "WebSettings",
    "get_settings",
]
