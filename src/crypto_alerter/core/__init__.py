"""crypto_alerter.core: foundation types, config, and exceptions."""

from crypto_alerter.core.config import (
    AlerterConfig,
    APIConfig,
    EmailConfig,
    ProviderConfig,
    StorageConfig,
    load_config,
)
from crypto_alerter.core.exceptions import (
    AuthorizationError,
    ConfigError,
    CryptoAlerterError,
    NotificationError,
    ProviderUnavailable,
    StorageError,
)
from crypto_alerter.core.models import (
    AlertRecord,
    AssetId,
    CheckResult,
    PriceSnapshotEntry,
    StorageBackend,
    Subscription,
    SubscriptionId,
    SubscriptionRequest,
    percentage_change,
)

__all__ = [
    # Type aliases
    "AssetId",
    "SubscriptionId",
    # Enums
    "StorageBackend",
    # Models
    "Subscription",
    "SubscriptionRequest",
    "PriceSnapshotEntry",
    "AlertRecord",
    "CheckResult",
    "percentage_change",
    # Config
    "AlerterConfig",
    "ProviderConfig",
    "StorageConfig",
    "EmailConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "CryptoAlerterError",
    "ConfigError",
    "AuthorizationError",
    "ProviderUnavailable",
    "StorageError",
    "NotificationError",
]
