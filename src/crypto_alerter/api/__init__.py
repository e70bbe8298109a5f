"""REST API: scheduler trigger, subscription settings, alert history."""

from crypto_alerter.api.app import create_app

__all__ = ["create_app"]
