"""Shared pytest configuration and fixtures."""

from collections.abc import Generator
from datetime import UTC, datetime

import pytest

from src.config import Settings, get_settings
from tests.fakes import FakeBackend, FrozenClock, RecordingSender


@pytest.fixture(autouse=True)
def _no_dotenv() -> Generator[None]:
    """Block .env loading so tests never depend on a developer's local settings."""
    get_settings.cache_clear()
    original = Settings.model_config.get("env_file")
    Settings.model_config["env_file"] = None

    try:
        yield
    finally:
        Settings.model_config["env_file"] = original
        get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Complete fake settings so tests don't need a .env file."""
    return Settings(
        agent_backend="foundry",
        project_connection_string="eastus.api.azureml.ms;sub-123;rg-soc;socbot-project",
        agent_id="asst_test",
        client_id="",
        identity_endpoint="http://identity.test/msi/token",
        identity_header="identity-header-fake",
        agent_poll_interval_seconds=0.0,
        agent_run_timeout_seconds=5.0,
        microsoft_app_id="00000000-0000-0000-0000-000000000001",
        microsoft_app_password="fake-password",
        microsoft_app_type="MultiTenant",
        microsoft_app_tenant_id="",
        notification_api_key="",
        session_max_age_hours=24,
        thread_cache_max_entries=100,
        maintenance_schedule_cron="",
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 2, 12, 0, tzinfo=UTC))


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()
