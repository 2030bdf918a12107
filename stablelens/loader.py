"""Loader StableLens: старт и остановка фоновых частей сервиса."""

from __future__ import annotations

from loguru import logger

from .context import alert_dispatcher, alert_sweeper, fetcher, service, settings
from .utils.db import AlertHistorySink, dispose_engine, get_session_maker
from .web.webhooks import WebhookSink

_sinks_attached = False


async def on_startup() -> None:
    """Прогрев кеша, подписка sink'ов, запуск фонового прогона алертов."""

    logger.info("StableLens стартует в окружении {env}", env=settings.environment)
    logger.debug("on_startup: start http session")
    await fetcher.start()
    logger.debug("on_startup: attach alert sinks")
    _attach_sinks()
    logger.debug("on_startup: warm up cache")
    await service.warm_up()
    if settings.alerts.sweep_enabled:
        logger.debug("on_startup: start alert sweeper")
        await alert_sweeper.start()
    logger.info("on_startup завершён, API готов принимать запросы")


async def on_shutdown() -> None:
    """Мягкое выключение сервиса."""

    await alert_sweeper.stop()
    await fetcher.close()
    await dispose_engine()
    logger.info("StableLens корректно остановлен")


def _attach_sinks() -> None:
    global _sinks_attached
    if _sinks_attached:
        return
    alert_dispatcher.subscribe(WebhookSink())
    alert_dispatcher.subscribe(_log_alerts)
    session_maker = get_session_maker()
    if session_maker is not None:
        alert_dispatcher.subscribe(AlertHistorySink(session_maker))
        logger.info("История алертов пишется в БД")
    else:
        logger.debug("DATABASE__DSN не задан, история алертов не сохраняется")
    _sinks_attached = True


async def _log_alerts(alerts) -> None:
    """Простейший подписчик: логирует каждый новый алерт."""

    for alert in alerts:
        logger.info(
            "Новый алерт [{severity}] {type} {entity}: {message}",
            severity=alert.severity,
            type=alert.type,
            entity=alert.entity,
            message=alert.message,
        )


__all__ = ["on_shutdown", "on_startup"]
