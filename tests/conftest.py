"""Shared pytest fixtures for crypto-alerter."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from crypto_alerter.core.config import (
    AlerterConfig,
    APIConfig,
    EmailConfig,
    StorageConfig,
)
from crypto_alerter.core.models import (
    AlertRecord,
    PriceSnapshotEntry,
    StorageBackend,
    Subscription,
)

CRON_SECRET = "test-cron-secret"


@pytest.fixture
def created_at() -> datetime:
    return datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def sample_subscription(created_at) -> Subscription:
    return Subscription(
        id="alice",
        email="alice@example.com",
        threshold=3.0,
        interval=15,
        cryptos=["bitcoin", "ethereum"],
        created_at=created_at,
    )


@pytest.fixture
def sample_snapshot() -> dict[str, PriceSnapshotEntry]:
    return {
        "bitcoin": PriceSnapshotEntry(
            id="bitcoin", name="Bitcoin", symbol="btc", current_price=31000.0
        ),
        "ethereum": PriceSnapshotEntry(
            id="ethereum", name="Ethereum", symbol="eth", current_price=2000.0
        ),
    }


@pytest.fixture
def sample_alert(created_at) -> AlertRecord:
    return AlertRecord(
        subscription_id="alice",
        email="alice@example.com",
        crypto="Bitcoin",
        symbol="btc",
        previous_price=30000.0,
        current_price=31000.0,
        percentage_change=3.3333333333,
        timestamp=created_at,
    )


@pytest.fixture
def test_config(tmp_path) -> AlerterConfig:
    """Config pointing at a throwaway database with email in dry-run mode."""
    return AlerterConfig(
        storage=StorageConfig(
            backend=StorageBackend.SQLITE,
            sqlite_path=str(tmp_path / "test.db"),
        ),
        email=EmailConfig(sender="alerts@example.com", dry_run=True),
        api=APIConfig(cron_secret=CRON_SECRET),
    )
