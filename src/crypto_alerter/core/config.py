"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from crypto_alerter.core.exceptions import ConfigError
from crypto_alerter.core.models import StorageBackend

_COINGECKO_URL = "https://api.coingecko.com/api/v3"
_COINGECKO_PRO_URL = "https://pro-api.coingecko.com/api/v3"


class ProviderConfig(BaseModel):
    """CoinGecko price provider configuration."""

    model_config = ConfigDict(frozen=True)

    base_url: str = _COINGECKO_URL
    api_key: str | None = None
    vs_currency: str = "usd"
    request_timeout: float = 15.0
    page_size: int = 250

    @field_validator("page_size")
    @classmethod
    def page_size_within_api_limit(cls, v: int) -> int:
        if v < 1 or v > 250:
            raise ValueError("page_size must be between 1 and 250 (CoinGecko limit)")
        return v

    @field_validator("vs_currency")
    @classmethod
    def currency_lower(cls, v: str) -> str:
        return v.strip().lower()

    @property
    def api_key_header(self) -> str:
        """Header name CoinGecko expects for the configured endpoint."""
        if self.base_url.rstrip("/") == _COINGECKO_PRO_URL:
            return "x-cg-pro-api-key"
        return "x-cg-demo-api-key"


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: str = "./data/crypto_alerter.db"


class EmailConfig(BaseModel):
    """Outbound SMTP configuration."""

    model_config = ConfigDict(frozen=True)

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    username: str | None = None
    password: str | None = None
    sender: str | None = None
    use_tls: bool = True
    timeout: float = 30.0
    dry_run: bool = False

    @field_validator("smtp_port")
    @classmethod
    def port_in_range(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError(f"smtp_port must be in 1..65535, got {v}")
        return v

    @property
    def from_address(self) -> str:
        """Envelope sender; falls back to the SMTP login."""
        return self.sender or self.username or "crypto-alerter@localhost"


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8000
    cron_secret: str | None = None


class AlerterConfig(BaseModel):
    """Root configuration for the entire crypto-alerter system."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderConfig = ProviderConfig()
    storage: StorageConfig = StorageConfig()
    email: EmailConfig = EmailConfig()
    api: APIConfig = APIConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "CRYPTO_ALERTER_",
) -> AlerterConfig:
    """Build the effective configuration.

    Later sources win:

    1. Built-in defaults
    2. The YAML file (``config_path``, else ``$CRYPTO_ALERTER_CONFIG``,
       else ``./crypto-alerter.yml`` when present)
    3. ``CRYPTO_ALERTER_<SECTION>__<KEY>`` environment variables, e.g.
       ``CRYPTO_ALERTER_EMAIL__SMTP_PORT=465`` sets ``email.smtp_port``.

    Raises:
        ConfigError: The file is missing or unreadable, or a value fails
            validation.
    """
    try:
        path = _find_config_file(config_path)
        raw = _read_yaml(path) if path is not None else {}
        return AlerterConfig.model_validate(_apply_env_overrides(raw, env_prefix))
    except ConfigError:
        raise
    except Exception as e:
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _find_config_file(explicit: str | None) -> Path | None:
    candidates = (
        ("config_path", explicit),
        ("CRYPTO_ALERTER_CONFIG", os.environ.get("CRYPTO_ALERTER_CONFIG")),
    )
    for source, value in candidates:
        if not value:
            continue
        path = Path(value)
        if not path.is_file():
            raise ConfigError(
                f"Config file not found ({source}): {value}",
                context={"field": source, "value": value},
            )
        return path

    default = Path(_DEFAULT_CONFIG_FILE)
    return default if default.is_file() else None


def _read_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(
            f"Cannot read config file {path}: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Top level of {path} must be a mapping of sections, "
            f"got {type(data).__name__}",
            context={"field": "config_file", "value": str(path)},
        )
    return data


def _apply_env_overrides(raw: dict, prefix: str) -> dict:
    """Return a copy of ``raw`` with matching environment variables laid on top.

    ``__`` separates nesting levels. Values are coerced with ``_auto_cast``
    except for credentials, which are always kept as strings.
    """
    merged = {k: dict(v) if isinstance(v, dict) else v for k, v in raw.items()}

    for name, value in os.environ.items():
        if not name.startswith(prefix):
            continue
        path = name[len(prefix) :].lower().split("__")
        if path == ["config"]:
            continue

        *sections, leaf = path
        node = merged
        for section in sections:
            child = node.get(section)
            if not isinstance(child, dict):
                child = node[section] = {}
            node = child
        node[leaf] = value if leaf in _RAW_STRING_KEYS else _auto_cast(value)

    return merged


_DEFAULT_CONFIG_FILE = "crypto-alerter.yml"

_RAW_STRING_KEYS = frozenset({"password", "api_key", "cron_secret", "username", "sender"})

_BOOL_WORDS = {"true": True, "false": False}


def _auto_cast(value: str) -> str | int | float | bool:
    """Coerce an environment string to bool, int or float where it parses."""
    if value.lower() in _BOOL_WORDS:
        return _BOOL_WORDS[value.lower()]
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value
