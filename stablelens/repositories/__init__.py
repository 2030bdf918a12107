"""Репозитории для работы с БД."""

from .alert_repo import list_recent_alerts, save_alerts

__all__ = ["list_recent_alerts", "save_alerts"]
