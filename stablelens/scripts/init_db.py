"""Создание таблицы истории алертов: ``python -m stablelens.scripts.init_db``."""

from __future__ import annotations

import asyncio
import sys

from loguru import logger

from config.settings import get_settings
from stablelens.logging_config import setup_logging
from stablelens.utils.db import dispose_engine, init_db


async def _run() -> None:
    try:
        await init_db()
    finally:
        await dispose_engine()


def main() -> int:
    settings = get_settings()
    setup_logging(json=settings.log_json, level="INFO")
    if not settings.database.dsn:
        logger.error("Задайте DATABASE__DSN, например sqlite+aiosqlite:///./stablelens.db")
        return 1
    asyncio.run(_run())
    return 0


if __name__ == "__main__":
    sys.exit(main())
