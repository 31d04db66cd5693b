"""Tests for configuration loading."""

import tempfile
from pathlib import Path

import pytest

from coinwatch.config import (
    ProviderType,
    Settings,
    create_template_config,
    load_settings,
    validate_config,
)
from coinwatch.errors import ConfigurationError
from conftest import firebase_settings


@pytest.fixture
def config_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestLoadSettings:
    def test_missing_file_uses_defaults(self, config_dir: Path):
        settings = load_settings(config_dir / "missing.toml", environ={})
        assert settings.jobs.price_check_interval_minutes == 30
        assert settings.jobs.max_retries == 3
        assert settings.jobs.retry_delay == 5.0
        assert settings.prices.default_provider == ProviderType.COINGECKO
        assert settings.prices.fallback_providers == [ProviderType.FREECRYPTOAPI, ProviderType.COINMARKETCAP]
        assert set(settings.prices.providers) == set(ProviderType)

    def test_environment_overrides_file(self, config_dir: Path):
        path = config_dir / "config.toml"
        path.write_text('[jobs]\nprice_check_interval_minutes = 10\n')
        settings = load_settings(path, environ={
            "PRICE_CHECK_INTERVAL": "15",
            "ALERT_RETRY_DELAY": "2.5",
            "COINMARKETCAP_API_KEY": "cmc-key",
            "FIREBASE_PRIVATE_KEY": "-----BEGIN-----\\nabc\\n-----END-----",
        })
        assert settings.jobs.price_check_interval_minutes == 15
        assert settings.jobs.retry_delay == 2.5
        assert settings.prices.providers[ProviderType.COINMARKETCAP].api_key == "cmc-key"
        assert settings.prices.providers[ProviderType.COINMARKETCAP].base_url == "https://pro-api.coinmarketcap.com"
        assert settings.firebase.private_key == "-----BEGIN-----\nabc\n-----END-----"

    def test_partial_provider_section_keeps_defaults(self, config_dir: Path):
        path = config_dir / "config.toml"
        path.write_text('[prices.providers.freecryptoapi]\napi_key = "free-key"\ntimeout = 3\n')
        settings = load_settings(path, environ={})
        free = settings.prices.providers[ProviderType.FREECRYPTOAPI]
        assert free.model_dump() == {
            "base_url": "https://api.freecryptoapi.com",
            "api_key": "free-key",
            "timeout": 3,
        }
        assert ProviderType.COINGECKO in settings.prices.providers

    @pytest.mark.parametrize(
        "content",
        [
            "not [valid toml",
            '[prices.providers.binance]\napi_key = "x"\n',
            "[jobs]\nprice_check_interval_minutes = 0\n",
        ],
    )
    def test_invalid_config_raises(self, config_dir: Path, content: str):
        path = config_dir / "config.toml"
        path.write_text(content)
        with pytest.raises(ConfigurationError):
            load_settings(path, environ={})


class TestTemplateConfig:
    def test_template_round_trip(self, config_dir: Path):
        path = create_template_config(config_dir / "nested" / "config.toml")
        assert path.exists()
        settings = load_settings(path, environ={})
        missing = validate_config(settings)
        assert any(key.startswith("firebase.project_id") for key in missing)
        assert any(key.startswith("firebase.private_key") for key in missing)

    def test_complete_settings_validate(self):
        assert validate_config(Settings(firebase=firebase_settings())) == []
