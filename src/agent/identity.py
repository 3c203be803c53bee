"""Managed identity access tokens for the hosted agent service.

Inside App Service / Functions the platform exposes ``IDENTITY_ENDPOINT`` and
``IDENTITY_HEADER``; elsewhere (VMs, containers) the instance metadata service
is used. Tokens are cached until shortly before they expire.
"""

import logging
import time

import httpx

logger = logging.getLogger(__name__)

IMDS_TOKEN_URL = "http://169.254.169.254/metadata/identity/oauth2/token"
DEFAULT_TIMEOUT_SECONDS = 10
REFRESH_MARGIN_SECONDS = 300


class ManagedIdentityToken:
    def __init__(
        self,
        resource: str,
        client_id: str = "",
        identity_endpoint: str = "",
        identity_header: str = "",
    ) -> None:
        self._resource = resource
        self._client_id = client_id
        self._identity_endpoint = identity_endpoint
        self._identity_header = identity_header
        self._token: str | None = None
        self._expires_at = 0.0

    async def get(self) -> str:
        """Return a bearer token, fetching a new one when the cached one is near expiry."""
        if self._token is not None and time.time() < self._expires_at - REFRESH_MARGIN_SECONDS:
            return self._token

        params = {"resource": self._resource}
        if self._client_id:
            params["client_id"] = self._client_id

        if self._identity_endpoint:
            url = self._identity_endpoint
            params["api-version"] = "2019-08-01"
            headers = {"X-IDENTITY-HEADER": self._identity_header}
        else:
            url = IMDS_TOKEN_URL
            params["api-version"] = "2018-02-01"
            headers = {"Metadata": "true"}

        async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_SECONDS) as client:
            response = await client.get(url, params=params, headers=headers)
            _ = response.raise_for_status()
            data: dict[str, str] = response.json()

        self._token = data["access_token"]
        self._expires_at = float(data.get("expires_on") or time.time() + 3600)
        logger.debug("Acquired managed identity token for %s", self._resource)
        return self._token
