"""Subscription and alert-history persistence."""

from crypto_alerter.storage.store import (
    DEFAULT_HISTORY_LIMIT,
    AlertRecorder,
    SqliteStore,
    SubscriptionStore,
    create_store,
)

__all__ = [
    "DEFAULT_HISTORY_LIMIT",
    "AlertRecorder",
    "SqliteStore",
    "SubscriptionStore",
    "create_store",
]
