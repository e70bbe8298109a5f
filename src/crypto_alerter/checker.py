"""Price-check orchestration: snapshot, diff per subscriber, alert, save state."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from datetime import UTC, datetime
from functools import partial

from crypto_alerter.core.config import AlerterConfig
from crypto_alerter.core.models import (
    AlertRecord,
    AssetId,
    CheckResult,
    PriceSnapshotEntry,
    Subscription,
    percentage_change,
)
from crypto_alerter.notify.base import Notifier
from crypto_alerter.notify.smtp import EmailNotifier
from crypto_alerter.prices.coingecko import CoinGeckoPriceProvider
from crypto_alerter.prices.provider import PriceProvider
from crypto_alerter.storage.store import AlertRecorder, SqliteStore, SubscriptionStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PriceCheckOrchestrator:
    """Runs one price check across every subscription.

    Parameters
    ----------
    subscriptions : SubscriptionStore
        Source of subscriptions and sink for their updated state.
    alerts : AlertRecorder
        Append-only alert log.
    provider : PriceProvider
        Called exactly once per check with the union of tracked ids.
    notifier : Notifier
        Delivers each fired alert; failures never abort the check.
    now : Callable[[], datetime]
        Clock, UTC by default.
    """

    def __init__(
        self,
        subscriptions: SubscriptionStore,
        alerts: AlertRecorder,
        provider: PriceProvider,
        notifier: Notifier,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._subscriptions = subscriptions
        self._alerts = alerts
        self._provider = provider
        self._notifier = notifier
        self._now = now

    async def run_check(self) -> CheckResult:
        """Execute one check.

        Algorithm
        ---------
        1. Load all subscriptions; malformed stored rows are reported as
           failed. With none left, return without calling the provider.
        2. Build the union of tracked asset ids.
        3. Fetch one snapshot for the union. ProviderUnavailable propagates
           before anything is written.
        4. For each subscription, compare every tracked asset against its
           last known price and fire on a rise >= threshold.
        5. Save the merged last known prices and the check time.

        Raises
        ------
        ProviderUnavailable
            The snapshot could not be fetched.
        StorageError
            A store read or write failed; earlier subscriptions may already
            have been updated.
        """
        subscriptions, failed = await self._subscriptions.scan_subscriptions()
        if not subscriptions:
            logger.info("No subscriptions found, nothing to check")
            return CheckResult(failed_subscriptions=failed)

        tracked: set[AssetId] = set()
        for subscription in subscriptions:
            tracked.update(subscription.cryptos)

        logger.info(
            "Checking %d assets for %d subscriptions", len(tracked), len(subscriptions)
        )
        snapshot = await self._provider.fetch_prices(tracked)

        fired: list[AlertRecord] = []
        skipped = 0
        notifications_failed = 0

        for subscription in subscriptions:
            try:
                records, undelivered = await self._check_subscription(
                    subscription, snapshot
                )
            except (ArithmeticError, LookupError, TypeError, ValueError) as e:
                logger.error(
                    "Skipping subscription %s after unexpected error: %s",
                    subscription.id,
                    e,
                )
                failed.append(subscription.id)
                skipped += 1
                continue
            fired.extend(records)
            notifications_failed += undelivered

        logger.info(
            "Price check complete: %d assets, %d alerts, %d undelivered",
            len(tracked),
            len(fired),
            notifications_failed,
        )
        return CheckResult(
            assets_checked=len(tracked),
            alerts_sent=len(fired),
            alerts=fired,
            subscriptions_checked=len(subscriptions) - skipped,
            notifications_failed=notifications_failed,
            failed_subscriptions=failed,
        )

    async def _check_subscription(
        self,
        subscription: Subscription,
        snapshot: dict[AssetId, PriceSnapshotEntry],
    ) -> tuple[list[AlertRecord], int]:
        """Evaluate one subscription and persist its new state.

        Returns the alerts fired and how many of them could not be delivered.
        """
        records: list[AlertRecord] = []
        undelivered = 0
        fresh: dict[AssetId, float] = {}

        for asset_id in subscription.cryptos:
            entry = snapshot.get(asset_id)
            if entry is None:
                continue
            fresh[asset_id] = entry.current_price

            previous = subscription.last_known_prices.get(asset_id)
            if previous is None:
                continue
            if previous <= 0:
                logger.warning(
                    "Ignoring non-positive previous price %r for %s/%s",
                    previous,
                    subscription.id,
                    asset_id,
                )
                continue

            change = percentage_change(previous, entry.current_price)
            if change < subscription.threshold:
                continue

            record = AlertRecord(
                subscription_id=subscription.id,
                email=subscription.email,
                crypto=entry.name,
                symbol=entry.symbol,
                previous_price=previous,
                current_price=entry.current_price,
                percentage_change=change,
                timestamp=self._now(),
            )
            await self._alerts.append_alert(record)
            records.append(record)

            # Already recorded: a raising notifier counts as undelivered.
            try:
                delivered = await self._notifier.notify(
                    subscription.email,
                    entry.name,
                    entry.symbol,
                    previous,
                    entry.current_price,
                    change,
                )
            except Exception as e:
                logger.error(
                    "Notifier raised for %s/%s: %s", subscription.id, asset_id, e
                )
                delivered = False
            if not delivered:
                undelivered += 1
                logger.warning(
                    "Alert for %s/%s recorded but not delivered",
                    subscription.id,
                    asset_id,
                )

        # Assets missing from this snapshot keep their previous price.
        await self._subscriptions.update_subscription_state(
            subscription.id,
            last_checked_at=self._now(),
            last_known_prices={**subscription.last_known_prices, **fresh},
        )
        return records, undelivered


ProviderFactory = Callable[[], AbstractAsyncContextManager[PriceProvider]]
NotifierFactory = Callable[[], AbstractAsyncContextManager[Notifier]]


def default_provider_factory(config: AlerterConfig) -> ProviderFactory:
    return partial(CoinGeckoPriceProvider, config.provider)


def default_notifier_factory(config: AlerterConfig) -> NotifierFactory:
    return partial(EmailNotifier, config.email)


async def run_price_check(
    config: AlerterConfig,
    store: SqliteStore,
    provider_factory: ProviderFactory | None = None,
    notifier_factory: NotifierFactory | None = None,
) -> CheckResult:
    """Run one check with provider and notifier scoped to this invocation.

    Both are acquired before the check starts and released on every exit
    path, including ProviderUnavailable and StorageError.
    """
    provider_factory = provider_factory or default_provider_factory(config)
    notifier_factory = notifier_factory or default_notifier_factory(config)

    async with AsyncExitStack() as stack:
        provider = await stack.enter_async_context(provider_factory())
        notifier = await stack.enter_async_context(notifier_factory())
        orchestrator = PriceCheckOrchestrator(
            subscriptions=store,
            alerts=store,
            provider=provider,
            notifier=notifier,
        )
        return await orchestrator.run_check()
