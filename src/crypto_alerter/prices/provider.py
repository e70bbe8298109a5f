"""Price provider and adapter protocols: the source-agnostic interface layer.

    RawSource → PriceAdapter → dict[id, PriceSnapshotEntry] → PriceProvider → Checker

- **PriceProvider** is the consumer-facing protocol. The price checker
  depends only on this interface.
- **PriceAdapter** turns a raw response body into snapshot entries.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from crypto_alerter.core.models import AssetId, PriceSnapshotEntry


@runtime_checkable
class PriceAdapter(Protocol):
    """Transforms a raw provider payload into snapshot entries keyed by asset id."""

    def adapt(self, raw_data: Any) -> dict[AssetId, PriceSnapshotEntry]: ...


@runtime_checkable
class PriceProvider(Protocol):
    """Consumer-facing interface for fetching a price snapshot."""

    async def fetch_prices(
        self, asset_ids: Iterable[AssetId]
    ) -> dict[AssetId, PriceSnapshotEntry]:
        """Fetch current prices for a de-duplicated set of asset ids.

        Returns
        -------
        dict[str, PriceSnapshotEntry]
            Mapping of asset id → snapshot entry. Ids the provider does not
            recognize are omitted.

        Raises
        ------
        ProviderUnavailable
            On transport or parse failure.
        """
        ...

    async def top_coins(self, limit: int = 50) -> list[PriceSnapshotEntry]:
        """List up to ``limit`` coins by market cap, largest first.

        Raises
        ------
        ProviderUnavailable
            On transport or parse failure.
        """
        ...
