"""Ladderwatch — Blizzard Profile API Client.

Handles client-credentials OAuth, token caching, and retry with backoff.
"""

import asyncio
import time
from typing import Any, Dict, Optional

import httpx

from ladderwatch.config import settings
from ladderwatch.core.logging import get_logger

logger = get_logger("blizzard.client")

MAX_RETRIES = 3
RETRY_BASE_DELAY = 2  # seconds
TOKEN_REFRESH_MARGIN = 30  # seconds before expiry


class BlizzardAPIError(Exception):
    """Raised when the Blizzard API or OAuth endpoint returns an error."""

    def __init__(self, message: str, status_code: int = 0, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class BlizzardClient:
    """Async HTTP client for the WoW profile API."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        locale: str | None = None,
    ):
        self.client_id = client_id or settings.blizzard_client_id
        self.client_secret = client_secret or settings.blizzard_client_secret
        self.locale = locale or settings.blizzard_locale
        self._client: Optional[httpx.AsyncClient] = None
        self._access_token: Optional[str] = None
        self._token_expires_at: float = 0.0
        # The bundle fan-out asks for a token from ten coroutines at once
        self._token_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ── OAuth ──

    async def _get_access_token(self) -> str:
        async with self._token_lock:
            return await self._refresh_token_if_needed()

    async def _refresh_token_if_needed(self) -> str:
        if self._access_token and self._token_expires_at > time.time() + TOKEN_REFRESH_MARGIN:
            return self._access_token

        if not self.client_id or not self.client_secret:
            raise BlizzardAPIError(
                "BLIZZARD_CLIENT_ID and BLIZZARD_CLIENT_SECRET must be set"
            )

        client = await self._get_client()
        try:
            resp = await client.post(
                settings.blizzard_oauth_url,
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
            )
        except httpx.RequestError as e:
            raise BlizzardAPIError(f"OAuth request failed: {e}") from e

        if resp.status_code != 200:
            raise BlizzardAPIError(
                "Failed to get Blizzard OAuth token", resp.status_code, resp.text
            )

        payload = resp.json()
        self._access_token = payload["access_token"]
        self._token_expires_at = time.time() + float(payload.get("expires_in", 0))
        logger.info("🔑 Blizzard OAuth token refreshed")
        return self._access_token

    # ── Core Request Method ──

    async def get_json(
        self,
        region: str,
        path: str,
        namespace_kind: str = "profile",
        params: Dict[str, Any] | None = None,
    ) -> Any:
        """GET a region-scoped resource with retry + rate-limit handling."""
        token = await self._get_access_token()
        url = settings.blizzard_api_host.format(region=region.lower()) + path
        query = {
            "namespace": f"{namespace_kind}-{region.lower()}",
            "locale": self.locale,
            **(params or {}),
        }
        headers = {"Authorization": f"Bearer {token}"}

        client = await self._get_client()

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                resp = await client.get(url, params=query, headers=headers)

                # Rate limited
                if resp.status_code == 429 and attempt < MAX_RETRIES:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(
                        f"Rate limited (429). Retrying in {wait}s (attempt {attempt}/{MAX_RETRIES})",
                        extra={"endpoint": path},
                    )
                    await asyncio.sleep(wait)
                    continue

                if resp.status_code >= 500 and attempt < MAX_RETRIES:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(
                        f"Server error {resp.status_code}. Retrying in {wait}s",
                        extra={"endpoint": path},
                    )
                    await asyncio.sleep(wait)
                    continue

                if resp.status_code >= 400:
                    raise BlizzardAPIError(
                        f"Blizzard API request failed ({resp.status_code}) for {path}",
                        resp.status_code,
                        resp.text,
                    )
                return resp.json()

            except httpx.RequestError as e:
                if attempt < MAX_RETRIES:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(f"Request error: {e}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise BlizzardAPIError(
                    f"Connection failed after {MAX_RETRIES} retries: {e}"
                ) from e

        raise BlizzardAPIError("Max retries exhausted")

    async def profile_json(self, region: str, path: str, **kwargs: Any) -> Any:
        return await self.get_json(region, path, "profile", **kwargs)
