"""Configuration loading for coinwatch.

Settings come from ``~/.config/coinwatch/config.toml`` with environment
variables taking precedence, so secrets can stay out of the file.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import toml
from pydantic import BaseModel, Field, ValidationError

from coinwatch.errors import ConfigurationError

CONFIG_DIR = Path.home() / ".config" / "coinwatch"
CONFIG_PATH = CONFIG_DIR / "config.toml"
DEFAULT_DB_PATH = CONFIG_DIR / "coinwatch.db"
DEFAULT_QUEUE_DB_PATH = CONFIG_DIR / "queue.db"


class ProviderType(str, Enum):
    """Supported price providers."""

    FREECRYPTOAPI = "freecryptoapi"
    COINMARKETCAP = "coinmarketcap"
    COINGECKO = "coingecko"


class ProviderSettings(BaseModel):
    """Connection settings for one price provider."""

    base_url: str
    api_key: str = ""
    timeout: float = Field(default=10.0, gt=0, description="Request timeout (s)")


def _default_providers() -> dict[ProviderType, ProviderSettings]:
    return {
        ProviderType.FREECRYPTOAPI: ProviderSettings(base_url="https://api.freecryptoapi.com"),
        ProviderType.COINMARKETCAP: ProviderSettings(base_url="https://pro-api.coinmarketcap.com"),
        ProviderType.COINGECKO: ProviderSettings(base_url="https://api.coingecko.com"),
    }


class PriceSettings(BaseModel):
    default_provider: ProviderType = ProviderType.COINGECKO
    fallback_providers: list[ProviderType] = Field(
        default_factory=lambda: [ProviderType.FREECRYPTOAPI, ProviderType.COINMARKETCAP]
    )
    providers: dict[ProviderType, ProviderSettings] = Field(default_factory=_default_providers)
    health_check_timeout: float = Field(default=5.0, gt=0)


class JobSettings(BaseModel):
    price_check_interval_minutes: int = Field(default=30, ge=1, le=1440)
    max_retries: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=5.0, ge=0, description="Base backoff delay (s)")


class QueueSettings(BaseModel):
    database_path: Optional[Path] = DEFAULT_QUEUE_DB_PATH
    poll_interval: float = Field(default=1.0, gt=0)


class FirebaseSettings(BaseModel):
    project_id: str = ""
    private_key: str = ""
    client_email: str = ""

    def is_complete(self) -> bool:
        return bool(self.project_id and self.private_key and self.client_email)


class Settings(BaseModel):
    database_path: Path = DEFAULT_DB_PATH
    log_level: str = "INFO"
    prices: PriceSettings = Field(default_factory=PriceSettings)
    jobs: JobSettings = Field(default_factory=JobSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    firebase: FirebaseSettings = Field(default_factory=FirebaseSettings)


# Environment variable -> (section path, key)
ENV_OVERRIDES = {
    "COINWATCH_DB_PATH": ((), "database_path"),
    "COINWATCH_LOG_LEVEL": ((), "log_level"),
    "COINWATCH_QUEUE_DB_PATH": (("queue",), "database_path"),
    "COINGECKO_API_KEY": (("prices", "providers", "coingecko"), "api_key"),
    "COINMARKETCAP_API_KEY": (("prices", "providers", "coinmarketcap"), "api_key"),
    "FREECRYPTOAPI_KEY": (("prices", "providers", "freecryptoapi"), "api_key"),
    "PRICE_CHECK_INTERVAL": (("jobs",), "price_check_interval_minutes"),
    "ALERT_MAX_RETRIES": (("jobs",), "max_retries"),
    "ALERT_RETRY_DELAY": (("jobs",), "retry_delay"),
    "FIREBASE_PROJECT_ID": (("firebase",), "project_id"),
    "FIREBASE_PRIVATE_KEY": (("firebase",), "private_key"),
    "FIREBASE_CLIENT_EMAIL": (("firebase",), "client_email"),
}


def _apply_env_overrides(raw: dict[str, Any], environ: dict[str, str]) -> dict[str, Any]:
    for env_name, (path, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if not value:
            continue
        section = raw
        for part in path:
            section = section.setdefault(part, {})
        section[key] = value
    return raw


def _merge_provider_defaults(raw: dict[str, Any]) -> dict[str, Any]:
    """Fill provider entries that only override some keys (e.g. api_key)."""
    providers = raw.get("prices", {}).get("providers")
    if not providers:
        return raw
    defaults = _default_providers()
    merged = {}
    for name, overrides in providers.items():
        try:
            base = defaults[ProviderType(name)].model_dump()
        except ValueError:
            raise ConfigurationError(f"Unknown price provider in config: {name}") from None
        base.update(overrides)
        merged[name] = base
    for provider_type, provider in defaults.items():
        merged.setdefault(provider_type.value, provider.model_dump())
    raw["prices"]["providers"] = merged
    return raw


def load_settings(
    path: Optional[Path] = None,
    environ: Optional[dict[str, str]] = None,
) -> Settings:
    """Load settings from the config file and environment.

    A missing config file is not an error; defaults plus environment apply.

    Args:
        path: Config file path (defaults to ~/.config/coinwatch/config.toml).
        environ: Environment mapping (defaults to os.environ).

    Returns:
        Parsed Settings.

    Raises:
        ConfigurationError: If the file cannot be parsed or values are invalid.
    """
    path = path or CONFIG_PATH
    environ = dict(os.environ) if environ is None else environ

    raw: dict[str, Any] = {}
    if path.exists():
        try:
            raw = toml.load(path)
        except (toml.TomlDecodeError, OSError) as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

    raw = _apply_env_overrides(raw, environ)
    raw = _merge_provider_defaults(raw)

    firebase = raw.get("firebase", {})
    if firebase.get("private_key"):
        # Keys pasted into env vars usually carry literal "\n" sequences
        firebase["private_key"] = firebase["private_key"].replace("\\n", "\n")

    try:
        return Settings.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def create_template_config(path: Optional[Path] = None) -> Path:
    """Write a template configuration file and return its path."""
    path = path or CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    template = {
        "database_path": str(DEFAULT_DB_PATH),
        "log_level": "INFO",
        "prices": {
            "default_provider": "coingecko",
            "fallback_providers": ["freecryptoapi", "coinmarketcap"],
            "providers": {
                "coingecko": {"api_key": ""},  # Optional for CoinGecko
                "coinmarketcap": {"api_key": "your-coinmarketcap-api-key"},
                "freecryptoapi": {"api_key": "your-freecryptoapi-key"},
            },
        },
        "jobs": {
            "price_check_interval_minutes": 30,
            "max_retries": 3,
            "retry_delay": 5.0,
        },
        "queue": {
            "database_path": str(DEFAULT_QUEUE_DB_PATH),
            "poll_interval": 1.0,
        },
        "firebase": {
            "project_id": "your-firebase-project-id",
            "private_key": "",  # Leave empty to use FIREBASE_PRIVATE_KEY env var
            "client_email": "your-service-account@your-project.iam.gserviceaccount.com",
        },
    }

    with open(path, "w") as f:
        toml.dump(template, f)

    return path


def validate_config(settings: Settings) -> list[str]:
    """Return the list of settings required to run alert checks that are missing."""
    missing = []

    if not settings.queue.database_path:
        missing.append("queue.database_path")

    firebase = settings.firebase
    if not firebase.project_id or firebase.project_id == "your-firebase-project-id":
        missing.append("firebase.project_id (or set FIREBASE_PROJECT_ID env var)")
    if not firebase.private_key:
        missing.append("firebase.private_key (or set FIREBASE_PRIVATE_KEY env var)")
    if not firebase.client_email:
        missing.append("firebase.client_email (or set FIREBASE_CLIENT_EMAIL env var)")

    configured = set(settings.prices.providers)
    if settings.prices.default_provider not in configured:
        missing.append(f"prices.providers.{settings.prices.default_provider.value}")

    return missing
