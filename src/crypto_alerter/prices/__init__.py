"""Price snapshot providers.

The checker depends on the ``PriceProvider`` protocol only. CoinGecko is the
built-in source; to add another, implement ``fetch_prices`` (and optionally
an adapter for its payload format).
"""

from crypto_alerter.prices.coingecko import CoinGeckoAdapter, CoinGeckoPriceProvider
from crypto_alerter.prices.provider import PriceAdapter, PriceProvider

__all__ = [
    "PriceAdapter",
    "PriceProvider",
    "CoinGeckoAdapter",
    "CoinGeckoPriceProvider",
]
