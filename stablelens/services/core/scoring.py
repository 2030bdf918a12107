"""Скоринг стейблкоинов и платформ (шкала 1-10).

Чистые функции без I/O. Каждый ``score_*`` возвращает ``total`` своего breakdown,
так что объяснение и итоговый балл не могут разойтись.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

from .registry import CeFiAttributes, DeFiAttributes, PlatformRecord, StablecoinRecord

_REGULATED_RE = re.compile(r"NYDFS|US\s*\(MSB", re.IGNORECASE)
_OFFSHORE_RE = re.compile(r"OFFSHORE|DECENTRALIZED", re.IGNORECASE)

# Порядок важен: засчитывается первый найденный аудитор.
AUDITOR_TIERS: tuple[tuple[str, float], ...] = (
    ("grant thornton", 1.0),
    ("withum", 0.8),
    ("bdo", 0.3),
)

DEPEG_PENALTY_PER_INCIDENT = 0.7
DEPEG_PENALTY_CAP = 2.0

POR_BONUS = {"full": 1.0, "partial": 0.4, "none": 0.0}
LICENSE_BONUS = {"broad": 1.0, "moderate": 0.5, "limited": 0.0}
ENFORCEMENT_PENALTY_PER_EVENT = 0.6
ENFORCEMENT_PENALTY_CAP = 1.8


@dataclass(slots=True, frozen=True)
class ScoreBreakdown:
    """Вклад каждого правила и итоговый (округлённый, зажатый) балл."""

    parts: dict[str, float]
    total: float

    def as_dict(self) -> dict[str, Any]:
        return {"parts": dict(self.parts), "total": self.total}


def clamp10(value: float) -> float:
    """Округление half-up до одного знака и зажим в [1, 10]."""

    rounded = math.floor(value * 10 + 0.5) / 10
    return max(1.0, min(10.0, rounded))


def _finish(parts: dict[str, float]) -> ScoreBreakdown:
    return ScoreBreakdown(parts=parts, total=clamp10(sum(parts.values())))


def stablecoin_breakdown(record: StablecoinRecord, depeg_incidents: int | None = None) -> ScoreBreakdown:
    incidents = record.depeg_incidents if depeg_incidents is None else depeg_incidents
    auditor = (record.auditor or "").lower()
    auditor_bonus = next((bonus for name, bonus in AUDITOR_TIERS if name in auditor), 0.0)
    parts = {
        "base": 5.0,
        "jurisdiction": 2.0 if _REGULATED_RE.search(record.jurisdiction or "") else 0.0,
        "auditor": auditor_bonus,
        "model": -0.8 if record.model == "crypto-collateralized" else 0.0,
        "offshore": -0.7 if _OFFSHORE_RE.search(record.jurisdiction or "") else 0.0,
        "compliance": 1.5 if record.compliance in ("yes", "likely") else 0.0,
        "depeg": -min(DEPEG_PENALTY_CAP, max(0, incidents) * DEPEG_PENALTY_PER_INCIDENT),
    }
    return _finish(parts)


def score_stablecoin(record: StablecoinRecord, depeg_incidents: int | None = None) -> float:
    return stablecoin_breakdown(record, depeg_incidents).total


def _cefi_parts(attrs: CeFiAttributes) -> dict[str, float]:
    return {
        "base": 5.0,
        "kyc_aml": 0.5 if attrs.kyc_aml else 0.0,
        "proof_of_reserves": POR_BONUS.get(attrs.proof_of_reserves, 0.0),
        "independent_audit": 0.7 if attrs.independent_audit else 0.0,
        "licenses": LICENSE_BONUS.get(attrs.license_coverage, 0.0),
        "security_audit": 0.3 if attrs.security_audit else 0.0,
        "enforcement": -min(
            ENFORCEMENT_PENALTY_CAP,
            max(0, attrs.enforcement_events) * ENFORCEMENT_PENALTY_PER_EVENT,
        ),
    }


def _defi_parts(attrs: DeFiAttributes) -> dict[str, float]:
    audits = 0.0
    if attrs.audit_count >= 1:
        audits += 1.0
    if attrs.audit_count >= 2:
        audits += 0.5
    return {
        "base": 6.0,
        "onchain_transparency": 0.8 if attrs.onchain_transparency else 0.0,
        "audits": audits,
        "formal_verification": 0.5 if attrs.formal_verification else 0.0,
        "algorithmic_risk": -1.5 if attrs.algorithmic_risk else 0.0,
        "depeg_incident": -1.0 if attrs.depeg_incident else 0.0,
    }


def platform_breakdown(platform: PlatformRecord) -> ScoreBreakdown:
    if platform.cefi is not None:
        return _finish(_cefi_parts(platform.cefi))
    if platform.defi is not None:
        return _finish(_defi_parts(platform.defi))
    raise ValueError(f"У платформы {platform.name} нет атрибутов для скоринга")


def score_platform(platform: PlatformRecord) -> float:
    return platform_breakdown(platform).total


__all__ = [
    "ScoreBreakdown",
    "clamp10",
    "platform_breakdown",
    "score_platform",
    "score_stablecoin",
    "stablecoin_breakdown",
]
