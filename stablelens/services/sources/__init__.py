"""Адаптеры внешних источников данных."""

from .base import EmptyPayloadError, SourceAdapter, SourceUnavailableError
from .chains import ChainSeriesAdapter, ChainSupply
from .macro import MacroAdapter, MacroFigure
from .news import NewsAdapter, NewsItem
from .prices import PriceAdapter, PriceQuote
from .yields import YieldPool, YieldPoolAdapter

__all__ = [
    "ChainSeriesAdapter",
    "ChainSupply",
    "EmptyPayloadError",
    "MacroAdapter",
    "MacroFigure",
    "NewsAdapter",
    "NewsItem",
    "PriceAdapter",
    "PriceQuote",
    "SourceAdapter",
    "SourceUnavailableError",
    "YieldPool",
    "YieldPoolAdapter",
]
