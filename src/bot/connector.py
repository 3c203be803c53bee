"""Bot Framework connector client, the outbound send primitive.

Sends activities to ``{serviceUrl}/v3/conversations/{id}/activities`` with an
app-only bearer token from the Microsoft identity platform (client
credentials). The token is cached until shortly before it expires.
"""

import logging
import time
from typing import Any

import httpx

from src.config import ConfigurationError, Settings
from src.conversation.models import DeliveryHandle

logger = logging.getLogger(__name__)

TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
BOT_FRAMEWORK_SCOPE = "https://api.botframework.com/.default"
DEFAULT_TENANT = "botframework.com"
DEFAULT_TIMEOUT_SECONDS = 15
REFRESH_MARGIN_SECONDS = 300


class DeliveryError(RuntimeError):
    """The connector rejected or could not receive an outbound activity."""


class BotConnectorClient:
    def __init__(self, settings: Settings) -> None:
        if not settings.microsoft_app_id or not settings.microsoft_app_password:
            msg = (
                "Missing required bot configuration. Please set MicrosoftAppId and "
                "MicrosoftAppPassword environment variables."
            )
            raise ConfigurationError(msg)
        self._app_id = settings.microsoft_app_id
        self._app_password = settings.microsoft_app_password
        # Single-tenant registrations must request tokens from their own tenant
        tenant = DEFAULT_TENANT
        if settings.microsoft_app_type.lower() == "singletenant" and settings.microsoft_app_tenant_id:
            tenant = settings.microsoft_app_tenant_id
        self._token_url = TOKEN_URL_TEMPLATE.format(tenant=tenant)
        self._token: str | None = None
        self._expires_at = 0.0

    @property
    def app_id(self) -> str:
        return self._app_id

    async def _get_token(self) -> str:
        if self._token is not None and time.time() < self._expires_at - REFRESH_MARGIN_SECONDS:
            return self._token

        async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_SECONDS) as client:
            try:
                response = await client.post(
                    self._token_url,
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self._app_id,
                        "client_secret": self._app_password,
                        "scope": BOT_FRAMEWORK_SCOPE,
                    },
                )
                _ = response.raise_for_status()
            except httpx.HTTPStatusError as e:
                msg = f"Bot token request failed: HTTP {e.response.status_code} - {e.response.text[:500]}"
                raise DeliveryError(msg) from e
            except httpx.TransportError as e:
                msg = f"Cannot reach token endpoint {self._token_url}: {e}"
                raise DeliveryError(msg) from e
            data: dict[str, Any] = response.json()

        self._token = str(data["access_token"])
        self._expires_at = time.time() + float(data.get("expires_in", 3600))
        return self._token

    async def send(self, handle: DeliveryHandle, activity: dict[str, Any]) -> dict[str, Any]:
        """Post ``activity`` into the conversation addressed by ``handle``.

        The caller's dict is not modified; addressing fields are added to a copy.

        Raises:
            DeliveryError: On any non-2xx response or transport failure.
        """
        outbound: dict[str, Any] = {
            **activity,
            "from": {"id": handle.bot_id, "name": handle.bot_name},
            "recipient": {"id": handle.user_id, "name": handle.user_name},
            "conversation": {"id": handle.conversation_id},
            "channelId": handle.channel_id,
            "serviceUrl": handle.service_url,
        }
        url = f"{handle.service_url.rstrip('/')}/v3/conversations/{handle.conversation_id}/activities"
        headers = {"Authorization": f"Bearer {await self._get_token()}"}

        async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_SECONDS) as client:
            try:
                response = await client.post(url, json=outbound, headers=headers)
                _ = response.raise_for_status()
            except httpx.HTTPStatusError as e:
                msg = f"Connector rejected activity: HTTP {e.response.status_code} - {e.response.text[:500]}"
                raise DeliveryError(msg) from e
            except httpx.TransportError as e:
                msg = f"Cannot reach connector at {handle.service_url}: {e}"
                raise DeliveryError(msg) from e

        logger.debug("Sent %s activity to conversation '%s'", activity.get("type"), handle.conversation_id)
        if not response.content:
            return {}
        body: dict[str, Any] = response.json()
        return body
