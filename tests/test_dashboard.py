"""StableLensService поверх фейковых адаптеров."""

from unittest.mock import AsyncMock

import pytest

from stablelens.services.core.alerts import AlertEvent
from stablelens.services.core.dashboard import NotFoundError
from stablelens.services.sources import SourceUnavailableError
from stablelens.services.sources.prices import PriceQuote
from stablelens.utils.http import FetchError


class TestStablecoins:
    async def test_list_carries_score_and_live_price(self, service):
        rows = {row["symbol"]: row for row in await service.get_stablecoins()}

        assert len(rows) == 8
        assert rows["USDC"]["score"] == 9.5
        assert rows["USDC"]["price"] == 1.0002
        assert rows["DAI"]["price"] is None
        assert rows["FRAX"]["price"] is None
        assert "price_id" not in rows["USDC"]

    async def test_price_outage_degrades_to_registry(self, service, adapters):
        adapters["prices"].side_effect = FetchError("coins api down")

        rows = await service.get_stablecoins()

        assert len(rows) == 8
        assert all(row["price"] is None for row in rows)

    async def test_detail_has_breakdown_and_top_pools(self, service):
        detail = await service.get_stablecoin("usdc")

        assert detail["stablecoin"]["symbol"] == "USDC"
        assert detail["breakdown"]["total"] == detail["stablecoin"]["score"]
        assert [pool["pool"] for pool in detail["top_pools"]] == ["p2", "p1"]

    async def test_unknown_symbol(self, service):
        with pytest.raises(NotFoundError):
            await service.get_stablecoin("NOPE")


class TestPlatforms:
    async def test_grouped_by_type(self, service):
        result = await service.get_platforms()

        assert len(result["cefi"]) == 6
        assert len(result["defi"]) == 5

    async def test_filters(self, service):
        result = await service.get_platforms(type="cefi", region="nydfs", min_score=8)

        assert [row["name"] for row in result["cefi"]] == ["Coinbase", "Gemini"]
        assert result["defi"] == []

    async def test_single_platform(self, service):
        detail = await service.get_platform("aave")

        assert detail["platform"]["score"] == 8.8
        assert detail["breakdown"]["parts"]["formal_verification"] == 0.5

    async def test_unknown_platform(self, service):
        with pytest.raises(NotFoundError):
            await service.get_platform("Mt. Gox")


class TestYields:
    async def test_default_sort_is_apy_desc(self, service):
        rows = await service.get_yields()
        assert [row["pool"] for row in rows] == ["p5", "p4", "p3", "p2", "p1"]

    async def test_filter_and_sort_by_tvl_asc(self, service):
        rows = await service.get_yields(symbol="usdc", sort="tvl", order="asc")
        assert [row["pool"] for row in rows] == ["p2", "p1"]

    async def test_min_score_uses_stablecoin_score(self, service):
        rows = await service.get_yields(min_score=9)
        assert {row["symbol"] for row in rows} == {"USDC"}

    async def test_cold_outage_is_unavailable(self, service, adapters):
        adapters["yields"].side_effect = FetchError("HTTP 500")

        with pytest.raises(SourceUnavailableError) as exc_info:
            await service.get_yields()

        assert exc_info.value.source == "yields"

    async def test_broken_payload_on_cold_cache_is_unavailable(self, service, adapters):
        adapters["yields"].side_effect = ValueError("could not convert string to float")

        with pytest.raises(SourceUnavailableError) as exc_info:
            await service.get_yields()

        assert exc_info.value.source == "yields"

    async def test_best_yields(self, service):
        rows = await service.get_best_yields(min_score=6, top=2)

        assert [row["pool"] for row in rows] == ["p3", "p2"]
        assert rows[0]["compliance_score"] == 6.1


class TestAlertsAndMetrics:
    async def test_alerts_combine_depeg_and_regulatory(self, service):
        alerts = await service.get_alerts()

        kinds = [(alert["type"], alert["entity"]) for alert in alerts]
        assert kinds[0] == ("depeg", "USDT")
        assert ("regulatory", "SEC") in kinds

    async def test_stale_feed_alert(self, service, clock):
        await service.get_stablecoins()
        clock.advance(16 * 60)
        service._prices = AsyncMock(side_effect=FetchError("down"))

        alerts = await service.get_alerts()

        assert ("stale", "prices") in [(alert["type"], alert["entity"]) for alert in alerts]

    async def test_dispatcher_sees_alerts_once(self, service, dispatcher):
        sink = AsyncMock()
        dispatcher.subscribe(sink)

        await service.get_alerts()
        await service.get_alerts()

        sink.assert_awaited_once()

    async def test_yield_bearing_token_is_not_depegged(self, service, quotes):
        quotes["sDAI"] = PriceQuote(price=1.08, confidence=0.99, source="defillama")

        alerts = await service.get_alerts()
        rows = await service.get_stablecoins()

        assert ("depeg", "sDAI") not in [(alert["type"], alert["entity"]) for alert in alerts]
        assert next(row for row in rows if row["symbol"] == "sDAI")["price"] == 1.08

    async def test_collect_alerts_returns_events(self, service):
        alerts = await service.collect_alerts()

        assert alerts
        assert all(isinstance(alert, AlertEvent) for alert in alerts)

    async def test_metrics(self, service):
        metrics = await service.get_metrics()

        assert sum(metrics["score_distribution"].values()) == 8
        assert metrics["score_distribution"][">=8"] == 3
        assert metrics["chain_counts"]["Ethereum"] == 8
        assert len(metrics["top_scored"]) == 5
        assert metrics["totals"] == {"stablecoins": 8, "cefi": 6, "defi": 5, "pools": 5}

    async def test_metrics_without_pools(self, service, adapters):
        adapters["yields"].side_effect = FetchError("down")

        metrics = await service.get_metrics()

        assert metrics["totals"]["pools"] is None


class TestStatusAndChains:
    async def test_status_reports_refresh_times(self, service):
        assert service.status() == {"health": "ok", "updated_at": {}}

        await service.warm_up()

        updated = service.status()["updated_at"]
        assert set(updated) == {"prices", "yields", "news"}
        assert all(value is not None for value in updated.values())

    async def test_warm_up_tolerates_failures(self, service, adapters):
        adapters["news"].side_effect = FetchError("down")

        await service.warm_up()

        assert service.status()["updated_at"]["news"] is None

    async def test_unknown_chain(self, service):
        with pytest.raises(NotFoundError):
            await service.get_chain_supply("atlantis")

    async def test_chain_supply(self, service, fetcher):
        fetcher.fetch_json = AsyncMock(
            return_value=[{"date": 1700000000, "totalCirculatingUSD": {"peggedUSD": 1.2e11}}]
        )

        supply = await service.get_chain_supply("Ethereum")

        assert supply["chain"] == "ethereum"
        assert supply["latest_usd"] == 1.2e11

    async def test_chain_series_with_out_of_range_dates_is_unavailable(self, service, fetcher):
        fetcher.fetch_json = AsyncMock(
            return_value=[{"date": "1e20", "totalCirculatingUSD": {"peggedUSD": 1.0}}]
        )

        with pytest.raises(SourceUnavailableError):
            await service.get_chain_supply("ethereum")
