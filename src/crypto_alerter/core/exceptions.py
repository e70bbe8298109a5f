"""Custom exception hierarchy for crypto-alerter."""

from typing import Any


class CryptoAlerterError(Exception):
    """Base exception for all crypto-alerter errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(CryptoAlerterError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field (str): the config field that failed validation
        value (Any): the invalid value (redacted for secrets)
    """


class AuthorizationError(CryptoAlerterError):
    """Trigger credential missing or invalid.

    Policy: reject immediately. No subscription is loaded and nothing is written.
    """


class ProviderUnavailable(CryptoAlerterError):
    """The price provider could not return a snapshot.

    Policy: abort the whole check. A partial snapshot would hide rises for
    every subscriber, so no state is written and no alert is recorded.

    Context keys:
        url (str): the endpoint that failed
        status_code (int | None): HTTP status if a response was received
    """


class StorageError(CryptoAlerterError):
    """Database operation failed.

    Policy: raise immediately. A failure mid-check can leave some
    subscriptions updated and others stale.

    Context keys:
        operation (str): "insert", "query", "update", etc.
        table (str): the table involved
    """


class NotificationError(CryptoAlerterError):
    """The mail transport rejected or failed to deliver a message.

    Policy: log and continue. Notifiers convert this into a False result; the
    alert record is kept.

    Context keys:
        recipient (str): the address being notified
    """
