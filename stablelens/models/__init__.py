"""SQLModel-модели StableLens."""

from .alert import AlertRecord
from .base import CreatedAtModel, utcnow

__all__ = ["AlertRecord", "CreatedAtModel", "utcnow"]
