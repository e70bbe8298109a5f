"""CoinGecko price provider: batched ``/coins/markets`` lookups via httpx.

One request covers up to ``page_size`` ids; larger unions are split into
consecutive requests. All requests must succeed for a snapshot to be returned.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

import httpx
from pydantic import ValidationError

from crypto_alerter.core.config import ProviderConfig
from crypto_alerter.core.exceptions import ProviderUnavailable
from crypto_alerter.core.models import AssetId, PriceSnapshotEntry

logger = logging.getLogger(__name__)

_MARKETS_PATH = "/coins/markets"
_USER_AGENT = "crypto-alerter/0.1"


class CoinGeckoAdapter:
    """Transforms a ``/coins/markets`` response body into snapshot entries.

    Rows without an id or with a null ``current_price`` (delisted or
    not-yet-priced coins) are skipped, the same as an unknown id.
    """

    def adapt(self, raw_data: Any) -> dict[AssetId, PriceSnapshotEntry]:
        if not isinstance(raw_data, list):
            raise ProviderUnavailable(
                f"Expected a list from CoinGecko, got {type(raw_data).__name__}",
                context={"path": _MARKETS_PATH},
            )

        entries: dict[AssetId, PriceSnapshotEntry] = {}
        for row in raw_data:
            if not isinstance(row, dict):
                continue
            coin_id = row.get("id")
            price = row.get("current_price")
            if not coin_id or price is None:
                continue
            try:
                entry = PriceSnapshotEntry(
                    id=str(coin_id),
                    name=str(row.get("name") or coin_id),
                    symbol=str(row.get("symbol") or ""),
                    current_price=float(price),
                )
            except (ValidationError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed CoinGecko row for %s: %s", coin_id, e)
                continue
            entries[entry.id] = entry
        return entries


class CoinGeckoPriceProvider:
    """Fetches current prices from CoinGecko.

    Owns its ``httpx.AsyncClient``; use as ``async with CoinGeckoPriceProvider(...)``
    so the client is released on every exit path.

    Parameters
    ----------
    config : ProviderConfig
        Endpoint, currency, timeout and page size.
    adapter : CoinGeckoAdapter | None
        Custom adapter instance. Uses default if None.
    transport : httpx.AsyncBaseTransport | None
        Override the HTTP transport (useful for testing).
    """

    def __init__(
        self,
        config: ProviderConfig,
        adapter: CoinGeckoAdapter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._adapter = adapter or CoinGeckoAdapter()

        headers = {"Accept": "application/json", "User-Agent": _USER_AGENT}
        if config.api_key:
            headers[config.api_key_header] = config.api_key

        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers=headers,
            timeout=httpx.Timeout(config.request_timeout),
            transport=transport,
        )

    async def __aenter__(self) -> CoinGeckoPriceProvider:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client. Called automatically by __aexit__."""
        await self._client.aclose()

    async def fetch_prices(
        self, asset_ids: Iterable[AssetId]
    ) -> dict[AssetId, PriceSnapshotEntry]:
        """Fetch a snapshot for every id in ``asset_ids``.

        Raises:
            ProviderUnavailable: If any page fails to download or parse.
        """
        ids = sorted({a for a in asset_ids if a})
        if not ids:
            return {}

        snapshot: dict[AssetId, PriceSnapshotEntry] = {}
        size = self._config.page_size
        for start in range(0, len(ids), size):
            chunk = ids[start : start + size]
            raw = await self._get_markets(
                {
                    "vs_currency": self._config.vs_currency,
                    "ids": ",".join(chunk),
                    "per_page": size,
                    "page": 1,
                    "sparkline": "false",
                }
            )
            snapshot.update(self._adapter.adapt(raw))

        missing = set(ids) - snapshot.keys()
        if missing:
            logger.info("CoinGecko returned no price for: %s", ", ".join(sorted(missing)))
        return snapshot

    async def top_coins(self, limit: int = 50) -> list[PriceSnapshotEntry]:
        """List the most valuable coins by market cap, for picking what to track."""
        raw = await self._get_markets(
            {
                "vs_currency": self._config.vs_currency,
                "order": "market_cap_desc",
                "per_page": max(1, min(limit, 250)),
                "page": 1,
                "sparkline": "false",
            }
        )
        return list(self._adapter.adapt(raw).values())

    async def _get_markets(self, params: dict[str, Any]) -> Any:
        """GET /coins/markets and return the decoded JSON body."""
        url = f"{self._config.base_url}{_MARKETS_PATH}"
        try:
            resp = await self._client.get(_MARKETS_PATH, params=params)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "CoinGecko HTTP error: %s %s",
                e.response.status_code,
                e.response.text[:200],
            )
            raise ProviderUnavailable(
                f"HTTP {e.response.status_code} from {url}",
                context={"url": url, "status_code": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            logger.error("CoinGecko request error: %s", e)
            raise ProviderUnavailable(
                f"Request to {url} failed: {e}",
                context={"url": url, "status_code": None},
            ) from e

        try:
            return resp.json()
        except ValueError as e:
            raise ProviderUnavailable(
                f"Invalid JSON from {url}",
                context={"url": url, "status_code": resp.status_code},
            ) from e
