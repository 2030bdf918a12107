"""Базовый класс адаптеров апстримов и общие ошибки источников."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any

from stablelens.utils.http import ResilientFetcher


class SourceUnavailableError(RuntimeError):
    """Источник недоступен и в кеше нет прошлого значения."""

    def __init__(self, source: str, message: str | None = None) -> None:
        super().__init__(message or f"Источник {source} недоступен")
        self.source = source


class EmptyPayloadError(SourceUnavailableError):
    """Апстрим ответил, но после нормализации данных нет (битый или пустой payload)."""


class SourceAdapter(ABC):
    """Адаптер одного апстрима: забирает сырые данные и нормализует их."""

    name: str = "source"

    def __init__(self, fetcher: ResilientFetcher) -> None:
        self._fetcher = fetcher

    @abstractmethod
    async def produce(self) -> Any:
        """Возвращает нормализованный снимок данных либо бросает исключение."""

    async def __call__(self) -> Any:
        return await self.produce()


def to_float(value: Any) -> float | None:
    """Мягкое приведение поля апстрима к float (None, если поле битое)."""

    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


__all__ = ["EmptyPayloadError", "SourceAdapter", "SourceUnavailableError", "to_float"]
