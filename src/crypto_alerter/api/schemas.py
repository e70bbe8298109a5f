"""API-specific request/response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from crypto_alerter.core.models import AlertRecord, Subscription


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Subscriptions --


class SettingsResponse(BaseModel):
    """Response for GET /api/subscriptions/{subscriber_id}."""

    settings: Subscription | None = None


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str
    id: str | None = None


# -- History --


class HistoryResponse(BaseModel):
    """Response for GET /api/alert-history."""

    history: list[AlertRecord]


# -- Price check --


class CheckPricesResponse(BaseModel):
    """Response for POST /api/check-prices."""

    message: str
    assets_checked: int
    alerts_sent: int
    alerts: list[AlertRecord]
    subscriptions_checked: int = 0
    notifications_failed: int = 0
    failed_subscriptions: list[str] = []


# -- Test email --


class SendTestEmailRequest(BaseModel):
    """Request body for POST /api/test-email."""

    recipient: str = Field(..., min_length=3, pattern=r".+@.+")


class SendTestEmailResponse(BaseModel):
    success: bool
    message: str


# -- Coins --


class CoinResponse(BaseModel):
    """One selectable cryptocurrency."""

    id: str
    name: str
    symbol: str
    current_price: float


# -- Health --


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    status: str = "ok"
    version: str
    storage_backend: str
    subscriptions: int
    alerts: int
    last_checked_at: datetime | None = None
