"""Каталог доходных пулов DefiLlama.

Каталог забирается целиком одним запросом. Фильтрация по символу, сети
и скору выполняется ниже по потоку на закешированном снимке.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger

from config.settings import get_settings
from stablelens.utils.http import ResilientFetcher
from .base import EmptyPayloadError, SourceAdapter, to_float


@dataclass(slots=True, frozen=True)
class YieldPool:
    """Один пул из каталога (без идентичности между обновлениями, кроме pool id)."""

    pool: str
    project: str
    chain: str
    symbol: str
    apy: float | None
    apy_base: float | None
    apy_reward: float | None
    tvl_usd: float | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "chain": self.chain,
            "symbol": self.symbol,
            "apy": self.apy,
            "apy_base": self.apy_base,
            "apy_reward": self.apy_reward,
            "tvl_usd": self.tvl_usd,
            "pool": self.pool,
        }


class YieldPoolAdapter(SourceAdapter):
    name = "yields"

    def __init__(self, fetcher: ResilientFetcher) -> None:
        super().__init__(fetcher)
        self._url = str(get_settings().sources.yields_url)

    async def produce(self) -> list[YieldPool]:
        data = await self._fetcher.fetch_json(self._url)
        pools = self.parse(data)
        if not pools:
            raise EmptyPayloadError(self.name, "Каталог пулов пуст или имеет неожиданный формат")
        logger.debug("Каталог пулов: {count} записей", count=len(pools))
        return pools

    @staticmethod
    def parse(data: Any) -> list[YieldPool]:
        rows = data.get("data") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            return []
        pools: list[YieldPool] = []
        skipped = 0
        for row in rows:
            if not isinstance(row, dict) or not row.get("pool"):
                skipped += 1
                continue
            pools.append(
                YieldPool(
                    pool=str(row["pool"]),
                    project=str(row.get("project") or ""),
                    chain=str(row.get("chain") or ""),
                    symbol=str(row.get("symbol") or ""),
                    apy=to_float(row.get("apy")),
                    apy_base=to_float(row.get("apyBase")),
                    apy_reward=to_float(row.get("apyReward")),
                    tvl_usd=to_float(row.get("tvlUsd")),
                )
            )
        if skipped:
            logger.debug("Каталог пулов: пропущено {count} битых строк", count=skipped)
        return pools


__all__ = ["YieldPool", "YieldPoolAdapter"]
