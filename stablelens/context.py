"""Глобальные сервисы и зависимости StableLens."""

from __future__ import annotations

from config.settings import get_settings
from .services.core.alerts import AlertDispatcher, AlertEngine
from .services.core.dashboard import StableLensService
from .services.core.registry import Registry
from .services.core.sweeper import AlertSweeper
from .utils.cache import CacheStore, configure_cache
from .utils.http import ResilientFetcher

settings = get_settings()

configure_cache()

fetcher = ResilientFetcher()
cache_store = CacheStore()
registry = Registry()
alert_engine = AlertEngine()
alert_dispatcher = AlertDispatcher()
service = StableLensService(
    cache=cache_store,
    fetcher=fetcher,
    registry=registry,
    engine=alert_engine,
    dispatcher=alert_dispatcher,
)
alert_sweeper = AlertSweeper(service)

__all__ = [
    "alert_dispatcher",
    "alert_engine",
    "alert_sweeper",
    "cache_store",
    "fetcher",
    "registry",
    "service",
    "settings",
]
