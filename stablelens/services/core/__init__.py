"""Ядро StableLens: реестры, скоринг, алерты и фасад для API."""

from .alerts import AlertDispatcher, AlertEngine, AlertEvent, AlertSink
from .dashboard import NotFoundError, StableLensService
from .registry import PlatformRecord, Registry, StablecoinRecord
from .scoring import ScoreBreakdown, platform_breakdown, score_platform, score_stablecoin, stablecoin_breakdown
from .sweeper import AlertSweeper

__all__ = [
    "AlertDispatcher",
    "AlertEngine",
    "AlertEvent",
    "AlertSink",
    "AlertSweeper",
    "NotFoundError",
    "PlatformRecord",
    "Registry",
    "ScoreBreakdown",
    "StableLensService",
    "StablecoinRecord",
    "platform_breakdown",
    "score_platform",
    "score_stablecoin",
    "stablecoin_breakdown",
]
