import logging

import pytest

from coach_crm.core import config
from coach_crm.core.logging import configure_logging


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    monkeypatch.setattr(config, "load_dotenv", lambda: None)
    for name in (
        "SUPABASE_URL",
        "SUPABASE_ANON_KEY",
        "SUPABASE_SERVICE_KEY",
        "BOT_TOKEN",
        "ENVIRONMENT",
        "REFRESH_INTERVAL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    config.get_settings.cache_clear()
    yield
    config.get_settings.cache_clear()


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://demo.supabase.co/")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("REFRESH_INTERVAL_SECONDS", "15")

    settings = config.get_settings()

    assert settings.rest_url == "https://demo.supabase.co/rest/v1"
    assert settings.auth_url == "https://demo.supabase.co/auth/v1"
    assert settings.refresh_interval_seconds == 15
    assert not settings.is_debug
    assert config.get_settings() is settings


def test_missing_variables_are_named(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://demo.supabase.co")

    with pytest.raises(RuntimeError, match="SUPABASE_ANON_KEY"):
        config.get_settings()


def test_invalid_values_raise_runtime_error(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://demo.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")
    monkeypatch.setenv("ENVIRONMENT", "qa")

    with pytest.raises(RuntimeError, match="Invalid settings"):
        config.get_settings()


def test_configure_logging_quiets_request_logs(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "https://demo.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")

    logger = configure_logging()

    assert logger.name == "coach_crm"
    assert logger.level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
