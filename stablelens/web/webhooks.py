"""Хранилище подписчиков на вебхуки и sink, который им доставляет алерты."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Literal, Sequence

import aiohttp
from loguru import logger

from config.settings import get_settings
from stablelens.services.core.alerts import SEVERITY_RANK, AlertEvent


@dataclass
class WebhookSubscription:
    callback_url: str
    min_severity: Literal["info", "medium", "high"] = "medium"

    def accepts(self, alert: AlertEvent) -> bool:
        return SEVERITY_RANK[alert.severity] <= SEVERITY_RANK[self.min_severity]


_subscribers: Dict[str, WebhookSubscription] = {}


def register_webhook(subscription: WebhookSubscription) -> None:
    # повторная регистрация того же URL обновляет порог
    _subscribers[subscription.callback_url] = subscription


def unregister_webhook(callback_url: str) -> bool:
    return _subscribers.pop(callback_url, None) is not None


def get_webhook_subscribers() -> Dict[str, WebhookSubscription]:
    return dict(_subscribers)


def _all_targets() -> list[WebhookSubscription]:
    static = [
        WebhookSubscription(callback_url=str(url), min_severity="info")
        for url in get_settings().alerts.webhook_urls
    ]
    return [*static, *_subscribers.values()]


class WebhookDeliveryError(RuntimeError):
    """Ни один из адресатов не принял алерты."""


class WebhookSink:
    """POST {"alerts": [...]} на каждый подходящий callback."""

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout if timeout is not None else get_settings().alerts.webhook_timeout

    async def __call__(self, alerts: Sequence[AlertEvent]) -> None:
        targets = _all_targets()
        if not targets:
            return
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self._timeout)) as session:
            results = await asyncio.gather(*(self._deliver(session, target, alerts) for target in targets))
        attempted = [ok for ok in results if ok is not None]
        if attempted and not any(attempted):
            # диспетчер снимет резерв fingerprint и повторит на следующем прогоне
            raise WebhookDeliveryError(f"Вебхуки не приняли алерты: {len(attempted)} адрес(ов)")

    async def _deliver(
        self,
        session: aiohttp.ClientSession,
        target: WebhookSubscription,
        alerts: Sequence[AlertEvent],
    ) -> bool | None:
        """True: доставлено, False: ошибка, None: адресату нечего слать."""

        payload = [alert.as_dict() for alert in alerts if target.accepts(alert)]
        if not payload:
            return None
        try:
            async with session.post(target.callback_url, json={"alerts": payload}) as resp:
                if resp.status >= 400:
                    logger.warning(
                        "Вебхук {url} ответил HTTP {status}", url=target.callback_url, status=resp.status
                    )
                    return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Вебхук {url} недоступен: {error}", url=target.callback_url, error=exc)
            return False
        logger.debug("Вебхук {url}: доставлено {count}", url=target.callback_url, count=len(payload))
        return True


__all__ = [
    "WebhookDeliveryError",
    "WebhookSink",
    "WebhookSubscription",
    "get_webhook_subscribers",
    "register_webhook",
    "unregister_webhook",
]
