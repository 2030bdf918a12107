"""Единая точка настройки aiocache и CacheStore со stale-on-error."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable
from urllib.parse import urlparse

from aiocache import SimpleMemoryCache, caches
from aiocache.base import BaseCache
from loguru import logger

try:
    from aiocache import RedisCache
except (ImportError, AttributeError):  # pragma: no cover - optional dependency
    RedisCache = None  # type: ignore[assignment]

from config.settings import get_settings

_configured = False

Producer = Callable[[], Awaitable[Any]]


class CacheStoreError(RuntimeError):
    """Нарушение контракта CacheStore (например, превышен лимит ключей)."""


def configure_cache() -> None:
    """Настраивает aiocache в зависимости от backend (memory/redis).

    TTL на уровне бэкенда не задаём: устаревшее значение должно жить,
    чтобы его можно было отдать при падении апстрима.
    """

    global _configured
    if _configured:
        return

    settings = get_settings()
    if settings.cache.backend == "redis":
        if RedisCache is None:
            raise RuntimeError(
                "Для использования RedisCache установите пакет 'redis' и aiocache[redis]"
            )
        config = _build_redis_config(settings.cache.redis_dsn)
        caches.set_config(
            {
                "default": {
                    "cache": RedisCache,
                    **config,
                    "namespace": settings.cache.namespace,
                    "serializer": {"class": "aiocache.serializers.PickleSerializer"},
                }
            }
        )
    else:
        caches.set_config(
            {
                "default": {
                    "cache": SimpleMemoryCache,
                    "namespace": settings.cache.namespace,
                }
            }
        )
    _configured = True


def get_cache(alias: str = "default") -> BaseCache:
    """Возвращает кеш по алиасу (предварительно гарантирует конфиг)."""

    configure_cache()
    return caches.get(alias)


def _build_redis_config(dsn: str | None) -> dict[str, Any]:
    if not dsn:
        raise RuntimeError("CACHE__BACKEND=redis, но redis_dsn не указан")
    parsed = urlparse(dsn)
    if parsed.scheme not in {"redis", "rediss"}:
        raise ValueError(f"Неподдерживаемая схема Redis DSN: {parsed.scheme}")
    db = 0
    if parsed.path and parsed.path != "/":
        try:
            db = int(parsed.path.lstrip("/"))
        except ValueError:
            db = 0
    return {
        "endpoint": parsed.hostname or "localhost",
        "port": parsed.port or 6379,
        "password": parsed.password,
        "db": db,
        "ssl": parsed.scheme == "rediss",
    }


@dataclass(slots=True)
class CacheEntry:
    """Последнее успешно полученное значение ключа."""

    key: str
    value: Any
    fetched_at: float


class CacheStore:
    """Кеш ключ -> (значение, время) с TTL и отдачей устаревшего значения при ошибке.

    Обновления одного ключа сериализуются через собственный asyncio.Lock,
    поэтому при истечении TTL конкурентные запросы вызывают producer один раз.
    """

    def __init__(
        self,
        backend: BaseCache | None = None,
        *,
        max_keys: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend if backend is not None else get_cache()
        self._max_keys = max_keys if max_keys is not None else get_settings().cache.max_keys
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}
        self._updated_at: dict[str, float] = {}

    async def get_or_refresh(self, key: str, ttl: float, producer: Producer) -> Any:
        """Возвращает свежее значение из кеша или обновляет его через producer."""

        lock = self._lock_for(key)
        entry = await self._read(key)
        if self._is_fresh(entry, ttl):
            return entry.value
        async with lock:
            # пока ждали лок, ключ мог обновить соседний запрос
            entry = await self._read(key)
            if self._is_fresh(entry, ttl):
                return entry.value
            try:
                value = await producer()
            except Exception as exc:  # noqa: BLE001
                if entry is None:
                    logger.warning("Кеш {key}: холодный старт и ошибка источника: {error}", key=key, error=exc)
                    raise
                logger.warning(
                    "Кеш {key}: источник упал ({error}), отдаём значение возрастом {age:.0f}s",
                    key=key,
                    error=exc,
                    age=self._clock() - entry.fetched_at,
                )
                return entry.value
            entry = CacheEntry(key=key, value=value, fetched_at=self._clock())
            await self._backend.set(key, entry)
            self._updated_at[key] = entry.fetched_at
            logger.debug("Кеш {key} обновлён", key=key)
            return value

    async def invalidate(self, key: str) -> None:
        await self._backend.delete(key)
        self._updated_at.pop(key, None)

    def updated_at(self, key: str) -> float | None:
        """Время последнего успешного обновления ключа."""

        return self._updated_at.get(key)

    def snapshot_times(self) -> dict[str, float | None]:
        """Время последнего успешного обновления по всем известным ключам."""

        return {key: self._updated_at.get(key) for key in sorted(self._locks)}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            if len(self._locks) >= self._max_keys:
                raise CacheStoreError(f"Превышен лимит ключей кеша ({self._max_keys}): {key}")
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def _read(self, key: str) -> CacheEntry | None:
        entry = await self._backend.get(key)
        if entry is not None and key not in self._updated_at:
            self._updated_at[key] = entry.fetched_at
        return entry

    def _is_fresh(self, entry: CacheEntry | None, ttl: float) -> bool:
        return entry is not None and self._clock() - entry.fetched_at < ttl


__all__ = [
    "CacheEntry",
    "CacheStore",
    "CacheStoreError",
    "Producer",
    "configure_cache",
    "get_cache",
]
