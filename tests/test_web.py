"""HTTP-слой: маршруты, коды ошибок, вебхуки."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.ext.asyncio.session import AsyncSession

from stablelens.models import AlertRecord
from stablelens.utils.http import FetchError
from stablelens.web.app import app, get_history_sessions, get_service
from stablelens.web.webhooks import get_webhook_subscribers, unregister_webhook


@pytest.fixture
def client(service):
    # без контекстного менеджера: lifespan (прогрев, sweeper) не запускается
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestRoutes:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_stablecoins(self, client):
        response = client.get("/api/stablecoins")
        assert response.status_code == 200
        assert len(response.json()) == 8

    def test_stablecoin_not_found(self, client):
        response = client.get("/api/stablecoins/NOPE")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_platforms_filter(self, client):
        response = client.get("/api/platforms", params={"type": "defi"})
        body = response.json()
        assert response.status_code == 200
        assert body["cefi"] == []
        assert len(body["defi"]) == 5

    def test_platform_type_is_validated(self, client):
        assert client.get("/api/platforms", params={"type": "p2p"}).status_code == 422

    def test_platform_detail(self, client):
        assert client.get("/api/platforms/Coinbase").json()["platform"]["score"] == 8.5

    def test_yields(self, client):
        rows = client.get("/api/yields", params={"chain": "tron"}).json()
        assert [row["pool"] for row in rows] == ["p3"]

    def test_best(self, client):
        rows = client.get("/api/best", params={"top": 1}).json()
        assert len(rows) == 1

    def test_alerts(self, client):
        alerts = client.get("/api/alerts").json()
        assert alerts[0]["severity"] == "high"

    def test_metrics(self, client):
        assert client.get("/api/metrics").json()["totals"]["stablecoins"] == 8

    def test_status(self, client):
        body = client.get("/api/status").json()
        assert body["health"] == "ok"


class TestUnavailable:
    def test_cold_upstream_failure_is_503(self, client, adapters):
        adapters["yields"].side_effect = FetchError("HTTP 500")

        response = client.get("/api/yields")

        assert response.status_code == 503
        assert response.json() == {"error": "unavailable", "source": "yields"}

    def test_news_outage(self, client, adapters):
        adapters["news"].side_effect = FetchError("all feeds down")

        response = client.get("/api/news")

        assert response.status_code == 503
        assert response.json()["source"] == "news"


class TestWebhooks:
    def test_register(self, client):
        response = client.post(
            "/api/webhooks",
            json={"callback_url": "https://hooks.example.com/stablelens", "min_severity": "high"},
        )

        assert response.status_code == 201
        subscription = get_webhook_subscribers()["https://hooks.example.com/stablelens"]
        assert subscription.min_severity == "high"
        unregister_webhook("https://hooks.example.com/stablelens")

    def test_invalid_payload(self, client):
        response = client.post("/api/webhooks", json={"callback_url": "not-a-url"})
        assert response.status_code == 422

    def test_unregister(self, client):
        client.post("/api/webhooks", json={"callback_url": "https://hooks.example.com/gone"})

        response = client.delete("/api/webhooks", params={"callback_url": "https://hooks.example.com/gone"})

        assert response.status_code == 200
        assert "https://hooks.example.com/gone" not in get_webhook_subscribers()

    def test_unregister_unknown_is_404(self, client):
        response = client.delete("/api/webhooks", params={"callback_url": "https://hooks.example.com/never"})
        assert response.status_code == 404


@pytest.fixture
def history_db(tmp_path):
    path = tmp_path / "history.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    SQLModel.metadata.create_all(sync_engine)
    with Session(sync_engine) as session:
        session.add_all(
            [
                AlertRecord(
                    fingerprint="depeg:USDT:high:USDT deviated 6% from $1",
                    type="depeg",
                    severity="high",
                    entity="USDT",
                    message="USDT deviated 6% from $1",
                    deviation_pct=6.0,
                    created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
                ),
                AlertRecord(
                    fingerprint="regulatory:SEC:info:https://www.sec.gov/news/1",
                    type="regulatory",
                    severity="info",
                    entity="SEC",
                    message="SEC Charges Crypto Lender",
                    link="https://www.sec.gov/news/1",
                    created_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
                ),
            ]
        )
        session.commit()
    sync_engine.dispose()
    # NullPool: TestClient крутит свой event loop
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


class TestAlertHistory:
    def test_disabled_without_database(self, client):
        app.dependency_overrides[get_history_sessions] = lambda: None

        response = client.get("/api/alerts/history")

        assert response.status_code == 404

    def test_newest_first_with_limit(self, client, history_db):
        app.dependency_overrides[get_history_sessions] = lambda: history_db

        rows = client.get("/api/alerts/history", params={"limit": 1}).json()

        assert len(rows) == 1
        assert rows[0]["entity"] == "SEC"
        assert rows[0]["link"] == "https://www.sec.gov/news/1"

    def test_limit_is_validated(self, client):
        app.dependency_overrides[get_history_sessions] = lambda: None
        assert client.get("/api/alerts/history", params={"limit": 0}).status_code == 422
