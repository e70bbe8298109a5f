"""FastAPI route definitions for the crypto-alerter API."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

import crypto_alerter
from crypto_alerter.api.deps import (
    AppState,
    get_app_state,
    get_config,
    get_store,
    verify_cron_secret,
)
from crypto_alerter.api.schemas import (
    CheckPricesResponse,
    CoinResponse,
    HealthResponse,
    HistoryResponse,
    MessageResponse,
    SendTestEmailRequest,
    SendTestEmailResponse,
    SettingsResponse,
)
from crypto_alerter.checker import run_price_check
from crypto_alerter.core.models import Subscription, SubscriptionRequest
from crypto_alerter.storage.store import DEFAULT_HISTORY_LIMIT, SqliteStore

router = APIRouter()


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(
    store: SqliteStore = Depends(get_store),
    config=Depends(get_config),
):
    """System health and basic statistics."""
    stats = await store.get_statistics()
    return HealthResponse(
        status="ok",
        version=crypto_alerter.__version__,
        storage_backend=str(config.storage.backend.value),
        subscriptions=stats["subscriptions"],
        alerts=stats["alerts"],
        last_checked_at=stats["last_checked_at"],
    )


# -- Price check trigger --


@router.post(
    "/check-prices",
    response_model=CheckPricesResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def check_prices(state: AppState = Depends(get_app_state)):
    """Run one price check. Intended to be called by a scheduler."""
    result = await run_price_check(
        state.config,
        state.store,
        provider_factory=state.provider_factory,
        notifier_factory=state.notifier_factory,
    )
    if result.subscriptions_checked == 0 and not result.failed_subscriptions:
        message = "No alert settings found"
    else:
        message = f"Checked prices for {result.assets_checked} cryptocurrencies"
    return CheckPricesResponse(message=message, **result.model_dump())


# -- Subscriptions --


@router.get("/subscriptions/{subscriber_id}", response_model=SettingsResponse)
async def get_subscription(
    subscriber_id: str,
    store: SqliteStore = Depends(get_store),
):
    """Current alert settings for a subscriber, or null."""
    return SettingsResponse(settings=await store.get_subscription(subscriber_id))


@router.put(
    "/subscriptions/{subscriber_id}",
    response_model=MessageResponse,
    status_code=201,
)
async def save_subscription(
    subscriber_id: str,
    body: SubscriptionRequest,
    store: SqliteStore = Depends(get_store),
):
    """Create or replace a subscriber's settings. Price history starts over."""
    if not subscriber_id.strip():
        raise HTTPException(status_code=422, detail="subscriber_id must not be blank")
    subscription = Subscription.from_request(
        subscriber_id, body, created_at=datetime.now(UTC)
    )
    await store.save_subscription(subscription)
    return MessageResponse(message="Settings saved", id=subscription.id)


@router.delete("/subscriptions/{subscriber_id}", response_model=MessageResponse)
async def delete_subscription(
    subscriber_id: str,
    store: SqliteStore = Depends(get_store),
):
    """Unsubscribe. Alert history is kept."""
    if not await store.delete_subscription(subscriber_id):
        raise HTTPException(
            status_code=404,
            detail=f"No settings found for subscriber '{subscriber_id}'",
        )
    return MessageResponse(message="Settings deleted", id=subscriber_id)


# -- History --


@router.get("/alert-history", response_model=HistoryResponse)
async def alert_history(
    subscriber_id: str | None = Query(None, description="Filter by subscriber"),
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=500),
    store: SqliteStore = Depends(get_store),
):
    """Most recent alerts first."""
    history = await store.list_alerts(limit=limit, subscription_id=subscriber_id)
    return HistoryResponse(history=history)


# -- Test email --


@router.post(
    "/test-email",
    response_model=SendTestEmailResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def send_test_email(
    body: SendTestEmailRequest,
    state: AppState = Depends(get_app_state),
):
    """Send a sample Bitcoin alert to check the mail setup."""
    async with state.notifier_factory() as notifier:
        sent = await notifier.notify(body.recipient, "Bitcoin", "btc", 30000, 33000, 10)

    if not sent:
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Failed to send email."},
        )
    return SendTestEmailResponse(success=True, message="Email sent!")


# -- Coins --


@router.get("/cryptocurrencies", response_model=list[CoinResponse])
async def list_cryptocurrencies(
    limit: int = Query(50, ge=1, le=250),
    state: AppState = Depends(get_app_state),
):
    """Popular coins by market cap, for choosing what to track."""
    async with state.provider_factory() as provider:
        coins = await provider.top_coins(limit)
    return [CoinResponse(**c.model_dump()) for c in coins]
