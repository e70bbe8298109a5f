"""Pydantic data models for subscriptions, prices and alerts."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Type Aliases ---

AssetId = str
SubscriptionId = str

# Minimum polling interval offered to subscribers, in minutes.
MIN_INTERVAL_MINUTES = 5

# --- Enumerations ---


class StorageBackend(StrEnum):
    """Supported storage backends."""

    SQLITE = "sqlite"


# --- Subscription Models ---


def _normalize_cryptos(v: list[str]) -> list[str]:
    """Strip, lower-case and de-duplicate asset ids, keeping first-seen order."""
    seen: dict[str, None] = {}
    for raw in v:
        asset_id = str(raw).strip().lower()
        if asset_id:
            seen.setdefault(asset_id, None)
    if not seen:
        raise ValueError("cryptos must contain at least one asset id")
    return list(seen)


class SubscriptionRequest(BaseModel):
    """User-supplied alert settings (what a subscriber fills in)."""

    model_config = ConfigDict(frozen=True)

    email: str
    threshold: float = 3.0
    interval: int = 15
    cryptos: list[AssetId]

    @field_validator("email")
    @classmethod
    def email_has_at(cls, v: str) -> str:
        v = v.strip()
        if "\r" in v or "\n" in v:
            raise ValueError("email must not contain line breaks")
        if "@" not in v:
            raise ValueError(f"email must be an email address, got: {v!r}")
        return v

    @field_validator("threshold")
    @classmethod
    def threshold_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"threshold must be > 0, got {v}")
        return v

    @field_validator("interval")
    @classmethod
    def interval_minimum(cls, v: int) -> int:
        if v < MIN_INTERVAL_MINUTES:
            raise ValueError(
                f"interval must be >= {MIN_INTERVAL_MINUTES} minutes, got {v}"
            )
        return v

    @field_validator("cryptos")
    @classmethod
    def cryptos_normalized(cls, v: list[str]) -> list[str]:
        return _normalize_cryptos(v)


class Subscription(SubscriptionRequest):
    """A subscriber's alert settings plus the state observed by the last check."""

    id: SubscriptionId
    created_at: datetime
    last_checked_at: datetime | None = None
    last_known_prices: dict[AssetId, float] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("subscription id must not be blank")
        return v.strip()

    @classmethod
    def from_request(
        cls, subscription_id: SubscriptionId, request: SubscriptionRequest, created_at: datetime
    ) -> Subscription:
        """Build a fresh subscription; re-subscribing always starts with no price history."""
        return cls(
            id=subscription_id,
            created_at=created_at,
            **request.model_dump(),
        )


# --- Price Models ---


class PriceSnapshotEntry(BaseModel):
    """Current price of one asset, quoted in the provider's reference currency."""

    model_config = ConfigDict(frozen=True)

    id: AssetId
    name: str
    symbol: str
    current_price: float

    @field_validator("current_price")
    @classmethod
    def price_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"current_price must be >= 0, got {v}")
        return v


# --- Alert Models ---


def percentage_change(previous: float, current: float) -> float:
    """Signed change from previous to current, in percent."""
    return (current - previous) / previous * 100


class AlertRecord(BaseModel):
    """A detected qualifying price rise. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    subscription_id: SubscriptionId
    email: str
    crypto: str
    symbol: str
    previous_price: float
    current_price: float
    percentage_change: float
    timestamp: datetime


class CheckResult(BaseModel):
    """Summary of one price-check invocation."""

    model_config = ConfigDict(frozen=True)

    assets_checked: int = 0
    alerts_sent: int = 0
    alerts: list[AlertRecord] = []
    subscriptions_checked: int = 0
    notifications_failed: int = 0
    failed_subscriptions: list[SubscriptionId] = []
