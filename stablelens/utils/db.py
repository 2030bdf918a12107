"""Ленивый движок SQLModel: без DATABASE__DSN база не нужна вовсе."""

from __future__ import annotations

from typing import Sequence

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from config.settings import get_settings
from stablelens import models  # noqa: F401  импортируем модели для регистрации метаданных
from stablelens.repositories import save_alerts

_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_session_maker() -> async_sessionmaker[AsyncSession] | None:
    """None, если DSN не задан и история алертов отключена."""

    global _engine, _session_maker
    if _session_maker is not None:
        return _session_maker
    settings = get_settings().database
    if not settings.dsn:
        return None
    _engine = create_async_engine(settings.dsn, echo=settings.echo, poolclass=NullPool)
    _session_maker = async_sessionmaker(bind=_engine, class_=AsyncSession, expire_on_commit=False)
    return _session_maker


async def init_db() -> None:
    """Создаёт таблицы (миграций пока нет, схема одна)."""

    if get_session_maker() is None or _engine is None:
        raise RuntimeError("DATABASE__DSN не задан, инициализировать нечего")
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Таблицы БД созданы")


async def dispose_engine() -> None:
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None


class AlertHistorySink:
    """Sink для AlertDispatcher: пишет новые алерты в alert_history."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def __call__(self, alerts: Sequence) -> None:
        async with self._session_maker() as session:
            await save_alerts(session, alerts)
        logger.debug("Сохранено алертов в историю: {count}", count=len(alerts))


__all__ = ["AlertHistorySink", "dispose_engine", "get_session_maker", "init_db"]
