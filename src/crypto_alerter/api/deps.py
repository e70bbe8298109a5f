"""Dependency injection for FastAPI routes."""

from __future__ import annotations

import hmac
from dataclasses import dataclass

from fastapi import Request

from crypto_alerter.checker import (
    NotifierFactory,
    ProviderFactory,
    default_notifier_factory,
    default_provider_factory,
)
from crypto_alerter.core.config import AlerterConfig
from crypto_alerter.core.exceptions import AuthorizationError
from crypto_alerter.storage.store import SqliteStore


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: AlerterConfig
    store: SqliteStore
    provider_factory: ProviderFactory
    notifier_factory: NotifierFactory

    @classmethod
    def build(cls, config: AlerterConfig, store: SqliteStore) -> AppState:
        return cls(
            config=config,
            store=store,
            provider_factory=default_provider_factory(config),
            notifier_factory=default_notifier_factory(config),
        )


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_config(request: Request) -> AlerterConfig:
    """Dependency: retrieve config."""
    return request.app.state.app_state.config


def get_store(request: Request) -> SqliteStore:
    """Dependency: retrieve storage backend."""
    return request.app.state.app_state.store


def verify_cron_secret(request: Request) -> None:
    """Dependency: require ``Authorization: Bearer <api.cron_secret>``.

    With no secret configured every request is rejected, so an unconfigured
    deployment cannot be triggered by anyone.
    """
    secret = request.app.state.app_state.config.api.cron_secret
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if (
        not secret
        or scheme.lower() != "bearer"
        or not hmac.compare_digest(token.strip().encode(), secret.encode())
    ):
        raise AuthorizationError(
            "Invalid or missing trigger credential",
            context={"path": request.url.path},
        )
