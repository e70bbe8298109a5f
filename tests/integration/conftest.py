"""Integration test fixtures: real SQLite file and real HTTP client, no network."""

from __future__ import annotations

import smtplib
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from crypto_alerter.core.config import (
    AlerterConfig,
    APIConfig,
    EmailConfig,
    StorageConfig,
)
from crypto_alerter.storage.store import SqliteStore


@pytest.fixture
def integration_config(tmp_path: Path) -> AlerterConfig:
    return AlerterConfig(
        storage=StorageConfig(sqlite_path=str(tmp_path / "integration.db")),
        email=EmailConfig(
            smtp_host="smtp.example.com",
            username="bot@example.com",
            password="secret",
            sender="alerts@example.com",
        ),
        api=APIConfig(cron_secret="integration-secret"),
    )


@pytest.fixture
async def integration_store(integration_config: AlerterConfig) -> SqliteStore:
    """An initialized SqliteStore backed by a file in tmp_path."""
    store = SqliteStore(integration_config.storage)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def smtp_factory():
    """Fake SMTP relay; sent messages are in ``smtp_factory.return_value.send_message``."""
    return MagicMock(spec=smtplib.SMTP)


@pytest.fixture
def markets_payload():
    """Builder for a /coins/markets body from an id -> price mapping."""

    def _build(prices: dict[str, float]) -> list[dict]:
        names = {"bitcoin": ("Bitcoin", "btc"), "ethereum": ("Ethereum", "eth")}
        rows = []
        for coin_id, price in prices.items():
            name, symbol = names.get(coin_id, (coin_id.title(), coin_id[:3]))
            rows.append(
                {"id": coin_id, "name": name, "symbol": symbol, "current_price": price}
            )
        return rows

    return _build
