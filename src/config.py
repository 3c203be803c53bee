from functools import lru_cache
from typing import ClassVar

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(ValueError):
    """A required setting is missing or malformed. Raised at component construction."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file.

    Every field has a default so that importing the app never fails; components
    validate the settings they need when they are constructed.
    """

    # AI backend: "foundry" (hosted agent service)
    agent_backend: str = "foundry"

    # Hosted agent service
    project_connection_string: str = ""  # "<host>;<subscription>;<resource group>;<project>"
    agent_id: str = ""
    client_id: str = Field(default="", validation_alias=AliasChoices("CLIENT_ID", "clientId"))
    identity_endpoint: str = ""  # Set by App Service / Functions; empty = use IMDS
    identity_header: str = ""
    agent_poll_interval_seconds: float = 0.5
    agent_run_timeout_seconds: float = 120.0

    # Bot Framework registration
    microsoft_app_id: str = Field(
        default="", validation_alias=AliasChoices("MICROSOFT_APP_ID", "MicrosoftAppId", "BOT_ID")
    )
    microsoft_app_password: str = Field(
        default="",
        validation_alias=AliasChoices("MICROSOFT_APP_PASSWORD", "MicrosoftAppPassword", "BOT_PASSWORD"),
    )
    microsoft_app_type: str = Field(
        default="", validation_alias=AliasChoices("MICROSOFT_APP_TYPE", "MicrosoftAppType")
    )
    microsoft_app_tenant_id: str = Field(
        default="",
        validation_alias=AliasChoices("MICROSOFT_APP_TENANT_ID", "MicrosoftAppTenantId", "M365_TENANT_ID"),
    )

    # Shared key for /api/notification and /api/securityAlert (empty = endpoints are open)
    notification_api_key: str = ""
    notification_default_url: str = "https://docs.microsoft.com/en-us/security"

    # Conversation state
    session_max_age_hours: int = 24
    thread_cache_max_entries: int = 100

    # Eviction sweep schedule (optional, empty = scheduler disabled)
    maintenance_schedule_cron: str = ""  # e.g. "0 * * * *" (hourly)

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Lazily load and cache settings. Fails at first call, not at import time."""
    return Settings()
