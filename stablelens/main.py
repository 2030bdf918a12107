"""Entry point for StableLens API."""

from __future__ import annotations

import uvicorn
from loguru import logger

from config.settings import get_settings
from .logging_config import setup_logging


def main() -> None:
    settings = get_settings()
    setup_logging(json=settings.log_json, level="INFO" if settings.is_production else "DEBUG")
    logger.info("Запуск uvicorn на {host}:{port}", host=settings.web.host, port=settings.web.port)
    uvicorn.run(
        "stablelens.web.app:app",
        host=settings.web.host,
        port=settings.web.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
