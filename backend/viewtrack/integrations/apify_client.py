from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from viewtrack.errors import ConfigurationError, PlatformFetchError

logger = logging.getLogger(__name__)

APIFY_RUN_URL = "https://api.apify.com/v2/acts/{actor_id}/run-sync-get-dataset-items"


def _normalize_actor_id(actor_id: str) -> str:
    """Apify expects username~actor-name in URLs."""
    if "~" in actor_id:
        return actor_id
    if "/" in actor_id:
        return actor_id.replace("/", "~", 1)
    return actor_id


class ApifyClient:
    """Runs Apify actors synchronously and returns their dataset items."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        token: str | None,
        *,
        timeout_s: float = 300,
        attempts: int = 2,
        retry_delay_s: float = 1.0,
    ):
        self._http = http
        self._token = token
        self._timeout_s = timeout_s
        self._attempts = attempts
        self._retry_delay_s = retry_delay_s

    async def run_actor_get_items(
        self, actor_id: str, payload: dict[str, Any], *, platform: str = "apify"
    ) -> list[dict[str, Any]]:
        if not self._token:
            raise ConfigurationError("APIFY_TOKEN missing")

        normalized_id = _normalize_actor_id(actor_id)
        url = APIFY_RUN_URL.format(actor_id=normalized_id)
        params = {"token": self._token}

        last_exc: Exception | None = None
        for attempt in range(self._attempts):
            try:
                resp = await self._http.post(url, params=params, json=payload, timeout=self._timeout_s)
            except httpx.HTTPError as exc:
                last_exc = exc
                logger.warning(f"[apify] {normalized_id} attempt {attempt + 1} failed: {exc!r}")
                if attempt < self._attempts - 1:
                    await asyncio.sleep(self._retry_delay_s)
                continue

            if resp.status_code >= 400:
                raise PlatformFetchError(
                    platform,
                    f"Apify actor {normalized_id} failed with HTTP {resp.status_code}",
                    detail={
                        "status": resp.status_code,
                        "body": resp.text[:400],
                        "actor": normalized_id,
                        "input_keys": list(payload.keys()),
                    },
                )
            try:
                data = resp.json()
            except ValueError as exc:
                raise PlatformFetchError(platform, f"Apify actor {normalized_id} returned invalid JSON") from exc
            if isinstance(data, list):
                return data
            if isinstance(data, dict):
                items = data.get("items") or data.get("data")
                if isinstance(items, list):
                    return items
                if data.get("error"):
                    # run-level failure reported in a 2xx envelope
                    return [data]
                return []
            raise PlatformFetchError(platform, f"Apify actor {normalized_id} returned {type(data).__name__}")

        raise PlatformFetchError(
            platform,
            f"Apify request to {normalized_id} failed",
            detail={"reason": str(last_exc) if last_exc else "unknown"},
        )
