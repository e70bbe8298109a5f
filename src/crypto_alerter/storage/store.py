"""Storage backend: Protocol definitions, SQLite implementation, factory."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from crypto_alerter.core.config import StorageConfig
from crypto_alerter.core.exceptions import StorageError
from crypto_alerter.core.models import (
    AlertRecord,
    AssetId,
    StorageBackend as StorageBackendEnum,
    Subscription,
    SubscriptionId,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


@runtime_checkable
class SubscriptionStore(Protocol):
    """Keyed store of subscriptions, one record per subscriber id."""

    async def list_subscriptions(self) -> list[Subscription]: ...
    async def scan_subscriptions(
        self,
    ) -> tuple[list[Subscription], list[SubscriptionId]]: ...
    async def get_subscription(self, subscription_id: SubscriptionId) -> Subscription | None: ...
    async def save_subscription(self, subscription: Subscription) -> None: ...
    async def delete_subscription(self, subscription_id: SubscriptionId) -> bool: ...
    async def update_subscription_state(
        self,
        subscription_id: SubscriptionId,
        last_checked_at: datetime,
        last_known_prices: dict[AssetId, float],
    ) -> None: ...


@runtime_checkable
class AlertRecorder(Protocol):
    """Append-only log of fired alerts."""

    async def append_alert(self, record: AlertRecord) -> None: ...
    async def list_alerts(
        self,
        limit: int = DEFAULT_HISTORY_LIMIT,
        subscription_id: SubscriptionId | None = None,
    ) -> list[AlertRecord]: ...


class SqliteStore:
    """SQLite implementation of both storage protocols.

    Uses aiosqlite for async access, WAL mode for concurrent reads,
    and a version-tracked migration system.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS subscriptions (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL,
                    threshold REAL NOT NULL,
                    interval_minutes INTEGER NOT NULL,
                    cryptos_json TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    last_checked_at TEXT,
                    last_prices_json TEXT
                )""",
                # No FK to subscriptions: history survives unsubscribing.
                """CREATE TABLE IF NOT EXISTS alerts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    subscription_id TEXT NOT NULL,
                    email TEXT NOT NULL,
                    crypto TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    previous_price REAL NOT NULL,
                    current_price REAL NOT NULL,
                    percentage_change REAL NOT NULL,
                    timestamp TEXT NOT NULL
                )""",
                "CREATE INDEX IF NOT EXISTS idx_alerts_timestamp ON alerts(timestamp)",
                "CREATE INDEX IF NOT EXISTS idx_alerts_subscription ON alerts(subscription_id)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- Subscription Operations ---

    async def save_subscription(self, subscription: Subscription) -> None:
        """Insert or wholesale-replace the subscription with this id."""
        try:
            await self._db.execute(
                """INSERT OR REPLACE INTO subscriptions
                   (id, email, threshold, interval_minutes, cryptos_json,
                    created_at, last_checked_at, last_prices_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    subscription.id,
                    subscription.email,
                    subscription.threshold,
                    subscription.interval,
                    json.dumps(subscription.cryptos),
                    subscription.created_at.isoformat(),
                    subscription.last_checked_at.isoformat()
                    if subscription.last_checked_at
                    else None,
                    json.dumps(subscription.last_known_prices),
                ),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to save subscription: {e}",
                context={
                    "operation": "insert",
                    "table": "subscriptions",
                    "subscription_id": subscription.id,
                },
            ) from e

    async def get_subscription(self, subscription_id: SubscriptionId) -> Subscription | None:
        try:
            async with self._db.execute(
                "SELECT * FROM subscriptions WHERE id = ?", (subscription_id,)
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_subscription(row) if row is not None else None
        except Exception as e:
            raise StorageError(
                f"Failed to get subscription: {e}",
                context={
                    "operation": "query",
                    "table": "subscriptions",
                    "subscription_id": subscription_id,
                },
            ) from e

    async def list_subscriptions(self) -> list[Subscription]:
        """All readable subscriptions; malformed rows are logged and left out."""
        subscriptions, _ = await self.scan_subscriptions()
        return subscriptions

    async def scan_subscriptions(
        self,
    ) -> tuple[list[Subscription], list[SubscriptionId]]:
        """Load every subscription row.

        Returns
        -------
        tuple[list[Subscription], list[str]]
            The subscriptions that converted cleanly, and the ids of rows
            that did not (bad JSON, values failing validation).
        """
        try:
            async with self._db.execute(
                "SELECT * FROM subscriptions ORDER BY created_at, id"
            ) as cursor:
                rows = await cursor.fetchall()
        except Exception as e:
            raise StorageError(
                f"Failed to list subscriptions: {e}",
                context={"operation": "query", "table": "subscriptions"},
            ) from e

        subscriptions: list[Subscription] = []
        invalid: list[SubscriptionId] = []
        for row in rows:
            try:
                subscriptions.append(self._row_to_subscription(row))
            except (ValueError, TypeError) as e:
                logger.error("Skipping malformed subscription %s: %s", row["id"], e)
                invalid.append(row["id"])
        return subscriptions, invalid

    async def delete_subscription(self, subscription_id: SubscriptionId) -> bool:
        """Remove a subscription. Returns False if it did not exist."""
        try:
            cursor = await self._db.execute(
                "DELETE FROM subscriptions WHERE id = ?", (subscription_id,)
            )
            await self._db.commit()
            return cursor.rowcount > 0
        except Exception as e:
            raise StorageError(
                f"Failed to delete subscription: {e}",
                context={
                    "operation": "delete",
                    "table": "subscriptions",
                    "subscription_id": subscription_id,
                },
            ) from e

    async def update_subscription_state(
        self,
        subscription_id: SubscriptionId,
        last_checked_at: datetime,
        last_known_prices: dict[AssetId, float],
    ) -> None:
        """Record what the latest check observed. Settings columns are untouched."""
        try:
            cursor = await self._db.execute(
                """UPDATE subscriptions
                   SET last_checked_at = ?, last_prices_json = ?
                   WHERE id = ?""",
                (
                    last_checked_at.isoformat(),
                    json.dumps(last_known_prices),
                    subscription_id,
                ),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to update subscription state: {e}",
                context={
                    "operation": "update",
                    "table": "subscriptions",
                    "subscription_id": subscription_id,
                },
            ) from e
        if cursor.rowcount == 0:
            logger.warning(
                "Subscription %s disappeared before its state could be saved",
                subscription_id,
            )

    # --- Alert Operations ---

    async def append_alert(self, record: AlertRecord) -> None:
        try:
            await self._db.execute(
                """INSERT INTO alerts
                   (subscription_id, email, crypto, symbol, previous_price,
                    current_price, percentage_change, timestamp)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.subscription_id,
                    record.email,
                    record.crypto,
                    record.symbol,
                    record.previous_price,
                    record.current_price,
                    record.percentage_change,
                    record.timestamp.isoformat(),
                ),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to record alert: {e}",
                context={
                    "operation": "insert",
                    "table": "alerts",
                    "subscription_id": record.subscription_id,
                },
            ) from e

    async def list_alerts(
        self,
        limit: int = DEFAULT_HISTORY_LIMIT,
        subscription_id: SubscriptionId | None = None,
    ) -> list[AlertRecord]:
        """Most recent alerts first."""
        try:
            query = "SELECT * FROM alerts WHERE 1=1"
            params: list = []
            if subscription_id is not None:
                query += " AND subscription_id = ?"
                params.append(subscription_id)
            query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
            params.append(limit)
            async with self._db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_alert(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to list alerts: {e}",
                context={"operation": "query", "table": "alerts"},
            ) from e

    # --- Utility ---

    async def get_statistics(self) -> dict:
        """Return counts used by the health endpoint and `status` command."""
        try:
            stats: dict = {}
            async with self._db.execute("SELECT COUNT(*) FROM subscriptions") as cursor:
                stats["subscriptions"] = (await cursor.fetchone())[0]
            async with self._db.execute(
                "SELECT COUNT(*), MAX(timestamp) FROM alerts"
            ) as cursor:
                row = await cursor.fetchone()
            stats["alerts"] = row[0]
            stats["latest_alert"] = _parse_ts(row[1])
            async with self._db.execute(
                "SELECT MAX(last_checked_at) FROM subscriptions"
            ) as cursor:
                stats["last_checked_at"] = _parse_ts((await cursor.fetchone())[0])
            return stats
        except Exception as e:
            raise StorageError(
                f"Failed to gather statistics: {e}",
                context={"operation": "query", "table": "*"},
            ) from e

    @staticmethod
    def _row_to_subscription(row: aiosqlite.Row) -> Subscription:
        return Subscription(
            id=row["id"],
            email=row["email"],
            threshold=row["threshold"],
            interval=row["interval_minutes"],
            cryptos=json.loads(row["cryptos_json"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            last_checked_at=(
                datetime.fromisoformat(row["last_checked_at"])
                if row["last_checked_at"]
                else None
            ),
            last_known_prices=(
                json.loads(row["last_prices_json"]) if row["last_prices_json"] else {}
            ),
        )

    @staticmethod
    def _row_to_alert(row: aiosqlite.Row) -> AlertRecord:
        return AlertRecord(
            subscription_id=row["subscription_id"],
            email=row["email"],
            crypto=row["crypto"],
            symbol=row["symbol"],
            previous_price=row["previous_price"],
            current_price=row["current_price"],
            percentage_change=row["percentage_change"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
        )


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


async def create_store(config: StorageConfig) -> SqliteStore:
    """Create and initialize a storage backend based on configuration."""
    if config.backend == StorageBackendEnum.SQLITE:
        store = SqliteStore(config)
        await store.initialize()
        return store
    raise StorageError(
        f"Unsupported storage backend: {config.backend}",
        context={"operation": "create_store", "backend": str(config.backend)},
    )
