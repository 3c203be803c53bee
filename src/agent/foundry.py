"""Hosted agent service backend (threads / messages / runs REST API) over httpx."""

import asyncio
import logging
import time
from typing import Any

import httpx

from src.agent.backend import FALLBACK_RESPONSE, AgentBackendError, AgentRunError, ThreadNotFoundError
from src.agent.identity import ManagedIdentityToken
from src.config import ConfigurationError, Settings

logger = logging.getLogger(__name__)

API_VERSION = "2024-12-01-preview"
TOKEN_RESOURCE = "https://management.azure.com/"
DEFAULT_TIMEOUT_SECONDS = 30

TERMINAL_RUN_STATUSES = frozenset({"completed", "failed", "cancelled", "expired", "incomplete"})


def parse_connection_string(connection_string: str) -> str:
    """Turn ``host;subscription;resource_group;project`` into the agents base URL."""
    parts = [p.strip() for p in connection_string.split(";")]
    if len(parts) != 4 or not all(parts):
        msg = (
            "PROJECT_CONNECTION_STRING must have the form "
            "'<host>;<subscription id>;<resource group>;<project name>'"
        )
        raise ConfigurationError(msg)
    host, subscription, resource_group, project = parts
    host = host.removeprefix("https://").rstrip("/")
    return (
        f"https://{host}/agents/v1.0/subscriptions/{subscription}/resourceGroups/{resource_group}"
        f"/providers/Microsoft.MachineLearningServices/workspaces/{project}"
    )


class FoundryAgentBackend:
    name = "foundry"

    def __init__(self, settings: Settings) -> None:
        if not settings.project_connection_string:
            msg = "PROJECT_CONNECTION_STRING environment variable is required"
            raise ConfigurationError(msg)
        if not settings.agent_id:
            msg = "AGENT_ID environment variable is required"
            raise ConfigurationError(msg)

        self._base_url = parse_connection_string(settings.project_connection_string)
        self._agent_id = settings.agent_id
        self._poll_interval = settings.agent_poll_interval_seconds
        self._run_timeout = settings.agent_run_timeout_seconds
        self._token = ManagedIdentityToken(
            TOKEN_RESOURCE,
            client_id=settings.client_id,
            identity_endpoint=settings.identity_endpoint,
            identity_header=settings.identity_header,
        )

    def describe(self) -> dict[str, Any]:
        return {"backend": self.name, "agent_id": self._agent_id}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        thread_id: str | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request to the agents API and return the JSON body."""
        headers = {"Authorization": f"Bearer {await self._token.get()}", "Accept": "application/json"}
        query = {"api-version": API_VERSION, **(params or {})}
        async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_SECONDS) as client:
            try:
                response = await client.request(
                    method, f"{self._base_url}{path}", headers=headers, params=query, json=json
                )
                if response.status_code == 404 and thread_id is not None:
                    raise ThreadNotFoundError(thread_id)
                _ = response.raise_for_status()
            except httpx.HTTPStatusError as e:
                msg = f"Agent API error: HTTP {e.response.status_code} - {e.response.text[:500]}"
                raise AgentBackendError(msg) from e
            except httpx.TransportError as e:
                msg = f"Cannot reach agent API: {e}"
                raise AgentBackendError(msg) from e
            data: dict[str, Any] = response.json()
            return data

    async def create_thread(self) -> str:
        data = await self._request("POST", "/threads", json={})
        return str(data["id"])

    async def run(self, thread_id: str, prompt: str) -> str:
        """Post ``prompt`` to the thread, run the agent and return its reply text."""
        await self._request(
            "POST",
            f"/threads/{thread_id}/messages",
            json={"role": "user", "content": prompt},
            thread_id=thread_id,
        )
        run = await self._request(
            "POST",
            f"/threads/{thread_id}/runs",
            json={"assistant_id": self._agent_id},
            thread_id=thread_id,
        )
        run = await self._poll_run(thread_id, run)

        status = run.get("status")
        if status == "failed":
            last_error = run.get("last_error") or {}
            msg = f"Agent run failed: {last_error.get('message', 'Unknown error')}"
            raise AgentRunError(msg)
        if status != "completed":
            logger.warning("Agent run on thread '%s' ended with status '%s'", thread_id, status)
            return FALLBACK_RESPONSE

        messages = await self._request(
            "GET",
            f"/threads/{thread_id}/messages",
            params={"order": "desc", "limit": "1"},
            thread_id=thread_id,
        )
        return _latest_text(messages) or FALLBACK_RESPONSE

    async def _poll_run(self, thread_id: str, run: dict[str, Any]) -> dict[str, Any]:
        deadline = time.monotonic() + self._run_timeout
        while run.get("status") not in TERMINAL_RUN_STATUSES:
            if time.monotonic() > deadline:
                msg = f"Agent run '{run.get('id')}' did not finish within {self._run_timeout}s"
                raise AgentRunError(msg)
            await asyncio.sleep(self._poll_interval)
            run = await self._request("GET", f"/threads/{thread_id}/runs/{run['id']}", thread_id=thread_id)
        return run


def _latest_text(messages: dict[str, Any]) -> str | None:
    """Extract the text of the newest message from a list-messages response."""
    for message in messages.get("data", []):
        for content in message.get("content", []):
            if content.get("type") == "text":
                value = content.get("text", {}).get("value")
                if value:
                    return str(value)
        return None
    return None
