"""Устойчивый исходящий HTTP-клиент StableLens.

ResilientFetcher выполняет один логический запрос к апстриму:
1. Каждая попытка ограничена жёстким таймаутом (aiohttp.ClientTimeout).
2. Не-2xx ответ или сетевая ошибка -> повтор с линейным backoff
   ``backoff_base_ms * номер_попытки``.
3. ``attempts`` задаёт жёсткий потолок; после исчерпания бросается последняя ошибка.

Решение, маскировать ли ошибку (stale-on-error) или отдать её наверх,
принимает вызывающий код, а не клиент.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

import aiohttp
from loguru import logger

from config.settings import get_settings


class FetchError(RuntimeError):
    """Базовое исключение слоя исходящих запросов."""


class UpstreamStatusError(FetchError):
    """Апстрим ответил не-2xx статусом."""

    def __init__(self, url: str, status: int) -> None:
        super().__init__(f"{url} ответил HTTP {status}")
        self.url = url
        self.status = status


class MalformedPayloadError(FetchError):
    """Тело ответа не удалось декодировать."""


@dataclass(slots=True)
class FetchResponse:
    """Сырой ответ апстрима (тело уже прочитано)."""

    url: str
    status: int
    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        try:
            return json.loads(self.body)
        except (ValueError, UnicodeDecodeError) as exc:
            raise MalformedPayloadError(f"{self.url}: невалидный JSON ({exc})") from exc


class ResilientFetcher:
    """Обёртка над aiohttp с таймаутом, ретраями и линейным backoff."""

    def __init__(
        self,
        *,
        request_timeout: float | None = None,
        attempts: int | None = None,
        backoff_base_ms: int | None = None,
        user_agent: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        cfg = get_settings().http
        self._timeout = request_timeout if request_timeout is not None else cfg.request_timeout
        self._attempts = attempts if attempts is not None else cfg.attempts
        self._backoff_base_ms = backoff_base_ms if backoff_base_ms is not None else cfg.backoff_base_ms
        self._user_agent = user_agent or cfg.user_agent
        self._sleep = sleep
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        """Открывает общую HTTP-сессию (идемпотентно)."""

        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={"User-Agent": self._user_agent})
            logger.debug("ResilientFetcher: HTTP-сессия открыта")

    async def close(self) -> None:
        """Чисто закрывает сессию."""

        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch(
        self,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        attempts: int | None = None,
        backoff_base_ms: int | None = None,
    ) -> FetchResponse:
        """Выполняет GET с ретраями. Возвращает первый 2xx ответ."""

        max_attempts = max(1, attempts if attempts is not None else self._attempts)
        base_ms = backoff_base_ms if backoff_base_ms is not None else self._backoff_base_ms
        last_error: FetchError | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                response = await self._attempt(url, params=params, headers=headers)
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                last_error = FetchError(f"{url}: {exc.__class__.__name__} {exc}")
                last_error.__cause__ = exc
            else:
                if response.ok:
                    return response
                last_error = UpstreamStatusError(url, response.status)
            if attempt < max_attempts:
                delay = base_ms * attempt / 1000
                logger.warning(
                    "Запрос {url} не удался (попытка {attempt}/{total}): {error}, повтор через {delay:.2f}s",
                    url=url,
                    attempt=attempt,
                    total=max_attempts,
                    error=last_error,
                    delay=delay,
                )
                await self._sleep(delay)
        assert last_error is not None
        logger.error("Запрос {url} исчерпал {total} попыток: {error}", url=url, total=max_attempts, error=last_error)
        raise last_error

    async def fetch_json(self, url: str, **kwargs: Any) -> Any:
        response = await self.fetch(url, **kwargs)
        return response.json()

    async def fetch_text(self, url: str, **kwargs: Any) -> str:
        response = await self.fetch(url, **kwargs)
        return response.text()

    async def _attempt(
        self,
        url: str,
        *,
        params: Mapping[str, str] | None,
        headers: Mapping[str, str] | None,
    ) -> FetchResponse:
        """Одна попытка, ограниченная таймаутом."""

        await self.start()
        assert self._session is not None
        timeout = aiohttp.ClientTimeout(total=self._timeout)
        async with self._session.get(url, params=params, headers=headers, timeout=timeout) as resp:
            body = await resp.read()
            return FetchResponse(url=url, status=resp.status, body=body, headers=dict(resp.headers))


__all__ = [
    "FetchError",
    "FetchResponse",
    "MalformedPayloadError",
    "ResilientFetcher",
    "UpstreamStatusError",
]
