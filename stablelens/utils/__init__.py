"""Инфраструктурные утилиты: HTTP, кеш, БД."""
