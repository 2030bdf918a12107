"""Фоновый прогон алертов: без него вебхуки срабатывали бы только на GET /api/alerts."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from loguru import logger

from config.settings import get_settings

if TYPE_CHECKING:
    from .dashboard import StableLensService


class AlertSweeper:
    def __init__(self, service: "StableLensService", interval_sec: float | None = None) -> None:
        self._service = service
        self._interval = interval_sec if interval_sec is not None else get_settings().alerts.sweep_interval_sec
        self._task: asyncio.Task[None] | None = None
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run_loop(), name="alert-sweeper-loop")
        logger.info("AlertSweeper запущен, интервал {interval} с", interval=self._interval)

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def sweep_once(self) -> int:
        await self._service.warm_up()
        alerts = await self._service.collect_alerts()
        logger.debug("Прогон алертов: {count} активных", count=len(alerts))
        return len(alerts)

    async def _run_loop(self) -> None:
        while not self._stop.is_set():
            try:
                await self.sweep_once()
            except Exception as exc:  # noqa: BLE001
                logger.exception("Прогон алертов упал: {error}", error=exc)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue


__all__ = ["AlertSweeper"]
