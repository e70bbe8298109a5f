"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from crypto_alerter.api.deps import AppState
from crypto_alerter.api.routes import router
from crypto_alerter.api.schemas import ErrorResponse
from crypto_alerter.core.config import AlerterConfig, load_config
from crypto_alerter.core.exceptions import (
    AuthorizationError,
    ConfigError,
    CryptoAlerterError,
    ProviderUnavailable,
    StorageError,
)
from crypto_alerter.storage.store import create_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config or load_config()
    store = await create_store(config.storage)

    app.state.app_state = AppState.build(config, store)

    yield

    await store.close()


def create_app(config: AlerterConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    import crypto_alerter

    app = FastAPI(
        title="Crypto Alerter API",
        description="Email alerts when tracked cryptocurrencies rise past a threshold",
        version=crypto_alerter.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    @app.exception_handler(CryptoAlerterError)
    async def alerter_exception_handler(request: Request, exc: CryptoAlerterError):
        status_map = {
            AuthorizationError: 401,
            ConfigError: 400,
            ProviderUnavailable: 502,
            StorageError: 500,
        }
        status = status_map.get(type(exc), 500)
        error = "Unauthorized" if status == 401 else type(exc).__name__
        return JSONResponse(
            status_code=status,
            content=ErrorResponse(error=error, detail=str(exc)).model_dump(),
        )

    return app
