"""Регуляторные и отраслевые RSS-ленты.

Ленты забираются параллельно и парсятся независимо: падение одной ленты
логируется и проглатывается, остальные продолжают работу. Результат
сливается, сортируется по дате публикации (новые сверху) и обрезается.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

import feedparser
from loguru import logger

from config.settings import NewsFeed, get_settings
from stablelens.utils.http import ResilientFetcher
from .base import EmptyPayloadError, SourceAdapter

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


@dataclass(slots=True, frozen=True)
class NewsItem:
    source: str
    title: str
    link: str
    published: datetime | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "title": self.title,
            "link": self.link,
            "published": self.published.isoformat() if self.published else None,
        }


class NewsAdapter(SourceAdapter):
    name = "news"

    def __init__(self, fetcher: ResilientFetcher, feeds: Sequence[NewsFeed] | None = None) -> None:
        super().__init__(fetcher)
        sources = get_settings().sources
        self._feeds = list(feeds if feeds is not None else sources.news_feeds)
        self._per_feed = sources.news_items_per_feed
        self._max_items = sources.news_max_items

    async def produce(self) -> list[NewsItem]:
        results = await asyncio.gather(
            *(self._fetch_feed(feed) for feed in self._feeds),
            return_exceptions=True,
        )
        items: list[NewsItem] = []
        failed = 0
        for feed, result in zip(self._feeds, results):
            if isinstance(result, Exception):
                failed += 1
                logger.warning("Лента {name} недоступна: {error}", name=feed.name, error=result)
                continue
            items.extend(result)
        if failed == len(self._feeds):
            raise EmptyPayloadError(self.name, "Все новостные ленты недоступны")
        return self.merge(items, self._max_items)

    async def _fetch_feed(self, feed: NewsFeed) -> list[NewsItem]:
        response = await self._fetcher.fetch(str(feed.url))
        return self.parse_feed(feed.name, response.body, limit=self._per_feed)

    @staticmethod
    def parse_feed(source: str, raw: bytes | str, limit: int = 10) -> list[NewsItem]:
        parsed = feedparser.parse(raw)
        entries = parsed.get("entries") or []
        if not entries and parsed.get("bozo"):
            raise ValueError(f"Лента {source} не распарсилась: {parsed.get('bozo_exception')}")
        items: list[NewsItem] = []
        for entry in entries[:limit]:
            stamp = entry.get("published_parsed") or entry.get("updated_parsed")
            published = datetime(*stamp[:6], tzinfo=timezone.utc) if stamp else None
            items.append(
                NewsItem(
                    source=source,
                    title=(entry.get("title") or "").strip(),
                    link=entry.get("link") or "",
                    published=published,
                )
            )
        return items

    @staticmethod
    def merge(items: list[NewsItem], max_items: int) -> list[NewsItem]:
        """Дедупликации между лентами нет: пересекающиеся дубли допустимы."""

        ordered = sorted(items, key=lambda item: item.published or _EPOCH, reverse=True)
        return ordered[:max_items]


__all__ = ["NewsAdapter", "NewsItem"]
