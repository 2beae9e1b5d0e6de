"""Unit tests for environment-driven settings."""

import pytest

from signalwatch.settings import Settings

pytestmark = pytest.mark.unit


def test_defaults():
    settings = Settings()
    assert settings.store_backend == "memory"
    assert settings.baseline_min_samples == 10
    assert settings.baseline_max_batch == 20
    assert settings.api_max_payload_bytes == 51200


def test_environment_aliases():
    settings = Settings.model_validate(
        {"STORE_BACKEND": "sql", "CYCLE_INTERVAL": "15", "SIGNAL_DEDUPE_MINUTES": "45"}
    )
    assert settings.store_backend == "sql"
    assert settings.cycle_interval_seconds == 15
    assert settings.signal_dedupe_minutes == 45


def test_api_runner_settings():
    settings = Settings.model_validate({"API_ENABLED": "true", "API_PORT": "9100"})
    assert settings.api_enabled is True
    assert settings.api_port == 9100
    assert settings.api_host == "127.0.0.1"
