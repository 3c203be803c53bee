"""Post a test security alert to a running SOCBot instance and print the result.

Usage:
    python -m scripts.send_test_alert [base_url]
    # base_url defaults to http://localhost:8000
"""

import asyncio
import json
import logging
import sys
from uuid import uuid4

import httpx

from src.config import get_settings

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)


async def main() -> None:
    """Check health, then send one low-severity test alert."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
    headers: dict[str, str] = {}
    api_key = get_settings().notification_api_key
    if api_key:
        headers["x-functions-key"] = api_key

    alert = {
        "id": f"test-{uuid4().hex[:8]}",
        "title": "Test alert",
        "description": "Connectivity test from scripts/send_test_alert.py. No action required.",
        "severity": "low",
        "category": "threat",
        "source": "SOCBot integration test",
    }

    try:
        async with httpx.AsyncClient(base_url=base_url, timeout=30) as client:
            health = await client.get("/api/health")
            print(f"Health: HTTP {health.status_code}")
            print(json.dumps(health.json(), indent=2))

            resp = await client.post("/api/securityAlert", json=alert, headers=headers)
            print(f"\nSecurity alert: HTTP {resp.status_code}")
            print(json.dumps(resp.json(), indent=2))
    except httpx.HTTPError as e:
        print(f"Request failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
