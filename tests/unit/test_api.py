"""Tests for the FastAPI REST API module."""

from __future__ import annotations

from contextlib import asynccontextmanager

import pytest
from fastapi.testclient import TestClient

from crypto_alerter.api.app import create_app
from crypto_alerter.core.config import AlerterConfig, APIConfig, StorageConfig
from crypto_alerter.core.exceptions import ProviderUnavailable, StorageError
from crypto_alerter.core.models import PriceSnapshotEntry

CRON_SECRET = "test-cron-secret"
AUTH = {"Authorization": f"Bearer {CRON_SECRET}"}

SUBSCRIPTION_BODY = {
    "email": "alice@example.com",
    "threshold": 3,
    "interval": 15,
    "cryptos": ["bitcoin", "ethereum"],
}


# -- Fakes --


class StubProvider:
    def __init__(self, prices=None, error=None):
        self.prices = prices or {}
        self.error = error

    def _entries(self):
        return {
            k: PriceSnapshotEntry(id=k, name=k.title(), symbol=k[:3], current_price=v)
            for k, v in self.prices.items()
        }

    async def fetch_prices(self, asset_ids):
        if self.error:
            raise self.error
        wanted = set(asset_ids)
        return {k: v for k, v in self._entries().items() if k in wanted}

    async def top_coins(self, limit=50):
        if self.error:
            raise self.error
        return list(self._entries().values())[:limit]


class StubNotifier:
    def __init__(self, ok=True):
        self.ok = ok
        self.sent = []

    async def notify(self, recipient, name, symbol, previous, current, pct):
        self.sent.append((recipient, name, symbol, previous, current, pct))
        return self.ok


def _factory(obj):
    @asynccontextmanager
    async def _make():
        yield obj

    return _make


# -- Fixtures --


@pytest.fixture
def app(test_config):
    return create_app(config=test_config)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def provider():
    return StubProvider({"bitcoin": 30000.0, "ethereum": 2000.0})


@pytest.fixture
def notifier():
    return StubNotifier()


@pytest.fixture
def wired_client(client, provider, notifier):
    """Client whose app uses stub provider and notifier instead of the network."""
    state = client.app.state.app_state
    state.provider_factory = _factory(provider)
    state.notifier_factory = _factory(notifier)
    return client


# -- Health --


class TestHealth:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["storage_backend"] == "sqlite"
        assert data["subscriptions"] == 0
        assert data["alerts"] == 0
        assert data["last_checked_at"] is None


# -- Subscriptions --


class TestSubscriptions:
    def test_get_missing_returns_null(self, client):
        resp = client.get("/api/subscriptions/alice")
        assert resp.status_code == 200
        assert resp.json() == {"settings": None}

    def test_put_then_get(self, client):
        resp = client.put("/api/subscriptions/alice", json=SUBSCRIPTION_BODY)
        assert resp.status_code == 201
        assert resp.json() == {"message": "Settings saved", "id": "alice"}

        settings = client.get("/api/subscriptions/alice").json()["settings"]
        assert settings["email"] == "alice@example.com"
        assert settings["cryptos"] == ["bitcoin", "ethereum"]
        assert settings["last_known_prices"] == {}

    def test_put_uses_defaults(self, client):
        resp = client.put(
            "/api/subscriptions/bob",
            json={"email": "bob@example.com", "cryptos": ["solana"]},
        )
        assert resp.status_code == 201
        settings = client.get("/api/subscriptions/bob").json()["settings"]
        assert settings["threshold"] == 3.0
        assert settings["interval"] == 15

    @pytest.mark.parametrize(
        "override",
        [
            {"email": "nope"},
            {"threshold": 0},
            {"interval": 1},
            {"cryptos": []},
        ],
    )
    def test_put_validation(self, client, override):
        resp = client.put("/api/subscriptions/alice", json={**SUBSCRIPTION_BODY, **override})
        assert resp.status_code == 422

    def test_delete(self, client):
        client.put("/api/subscriptions/alice", json=SUBSCRIPTION_BODY)
        resp = client.delete("/api/subscriptions/alice")
        assert resp.status_code == 200
        assert resp.json()["message"] == "Settings deleted"
        assert client.get("/api/subscriptions/alice").json() == {"settings": None}

    def test_delete_missing_404(self, client):
        assert client.delete("/api/subscriptions/ghost").status_code == 404


# -- Price check trigger --


class TestCheckPrices:
    def test_missing_auth_401(self, wired_client):
        resp = wired_client.post("/api/check-prices")
        assert resp.status_code == 401
        assert resp.json()["error"] == "Unauthorized"

    def test_wrong_secret_401(self, wired_client):
        resp = wired_client.post(
            "/api/check-prices", headers={"Authorization": "Bearer wrong"}
        )
        assert resp.status_code == 401

    def test_wrong_scheme_401(self, wired_client):
        resp = wired_client.post(
            "/api/check-prices", headers={"Authorization": f"Basic {CRON_SECRET}"}
        )
        assert resp.status_code == 401

    def test_unconfigured_secret_rejects_everything(self, tmp_path):
        config = AlerterConfig(
            storage=StorageConfig(sqlite_path=str(tmp_path / "x.db")),
            api=APIConfig(cron_secret=None),
        )
        with TestClient(create_app(config=config)) as c:
            resp = c.post("/api/check-prices", headers={"Authorization": "Bearer anything"})
        assert resp.status_code == 401

    def test_no_subscriptions(self, wired_client):
        resp = wired_client.post("/api/check-prices", headers=AUTH)
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "No alert settings found"
        assert data["alerts_sent"] == 0

    def test_first_run_then_alert(self, wired_client, provider, notifier):
        wired_client.put("/api/subscriptions/alice", json=SUBSCRIPTION_BODY)

        first = wired_client.post("/api/check-prices", headers=AUTH).json()
        assert first["message"] == "Checked prices for 2 cryptocurrencies"
        assert first["alerts_sent"] == 0

        provider.prices["bitcoin"] = 31000.0
        second = wired_client.post("/api/check-prices", headers=AUTH).json()
        assert second["alerts_sent"] == 1
        assert second["alerts"][0]["crypto"] == "Bitcoin"
        assert second["alerts"][0]["percentage_change"] == pytest.approx(3.3333, rel=1e-4)
        assert notifier.sent[0][0] == "alice@example.com"

        history = wired_client.get("/api/alert-history").json()["history"]
        assert len(history) == 1

    def test_provider_down_502(self, wired_client, provider):
        wired_client.put("/api/subscriptions/alice", json=SUBSCRIPTION_BODY)
        provider.error = ProviderUnavailable("HTTP 503 from CoinGecko")
        resp = wired_client.post("/api/check-prices", headers=AUTH)
        assert resp.status_code == 502
        assert resp.json()["error"] == "ProviderUnavailable"

    def test_storage_error_500(self, wired_client, monkeypatch):
        store = wired_client.app.state.app_state.store

        async def broken():
            raise StorageError("database is locked")

        monkeypatch.setattr(store, "scan_subscriptions", broken)
        resp = wired_client.post("/api/check-prices", headers=AUTH)
        assert resp.status_code == 500
        assert resp.json() == {"error": "StorageError", "detail": "database is locked"}


# -- History --


class TestAlertHistory:
    def test_empty(self, client):
        resp = client.get("/api/alert-history")
        assert resp.status_code == 200
        assert resp.json() == {"history": []}

    def test_limit_bounds(self, client):
        assert client.get("/api/alert-history?limit=0").status_code == 422
        assert client.get("/api/alert-history?limit=501").status_code == 422

    def test_filter_by_subscriber(self, wired_client, provider):
        wired_client.put("/api/subscriptions/alice", json=SUBSCRIPTION_BODY)
        wired_client.post("/api/check-prices", headers=AUTH)
        provider.prices["bitcoin"] = 40000.0
        wired_client.post("/api/check-prices", headers=AUTH)

        assert len(wired_client.get("/api/alert-history?subscriber_id=alice").json()["history"]) == 1
        assert wired_client.get("/api/alert-history?subscriber_id=bob").json()["history"] == []


# -- Test email --


class TestSendTestEmail:
    def test_requires_secret(self, wired_client):
        resp = wired_client.post("/api/test-email", json={"recipient": "a@example.com"})
        assert resp.status_code == 401

    def test_sends_sample_alert(self, wired_client, notifier):
        resp = wired_client.post(
            "/api/test-email", json={"recipient": "a@example.com"}, headers=AUTH
        )
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert notifier.sent == [("a@example.com", "Bitcoin", "btc", 30000, 33000, 10)]

    def test_failure_500(self, wired_client, notifier):
        notifier.ok = False
        resp = wired_client.post(
            "/api/test-email", json={"recipient": "a@example.com"}, headers=AUTH
        )
        assert resp.status_code == 500
        assert resp.json()["success"] is False

    def test_invalid_recipient_422(self, wired_client):
        resp = wired_client.post(
            "/api/test-email", json={"recipient": "nobody"}, headers=AUTH
        )
        assert resp.status_code == 422


# -- Coins --


class TestCryptocurrencies:
    def test_lists_coins(self, wired_client):
        resp = wired_client.get("/api/cryptocurrencies?limit=1")
        assert resp.status_code == 200
        assert resp.json() == [
            {"id": "bitcoin", "name": "Bitcoin", "symbol": "bit", "current_price": 30000.0}
        ]

    def test_provider_down_502(self, wired_client, provider):
        provider.error = ProviderUnavailable("timeout")
        assert wired_client.get("/api/cryptocurrencies").status_code == 502
