"""Ladderwatch — Telegram Bot API Client."""

from typing import Optional

import httpx

from ladderwatch.config import settings
from ladderwatch.core.logging import get_logger

logger = get_logger("telegram.client")


class TelegramAPIError(Exception):
    """Raised when sendMessage does not return ok=true with a message id."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class TelegramClient:
    """Sends plain-text messages. No retry: a failed send is a failed delivery."""

    def __init__(self, bot_token: str | None = None, api_base: str | None = None):
        self.bot_token = bot_token or settings.telegram_bot_token or ""
        self.api_base = api_base or settings.telegram_api_base
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def send_message(self, chat_id: str, text: str) -> str:
        """Send `text` to `chat_id` and return Telegram's message id as a string."""
        client = await self._get_client()
        try:
            resp = await client.post(
                f"{self.api_base}/bot{self.bot_token}/sendMessage",
                json={
                    "chat_id": chat_id,
                    "text": text,
                    "disable_web_page_preview": True,
                },
            )
        except httpx.RequestError as e:
            raise TelegramAPIError(f"Telegram sendMessage request failed: {e}") from e

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if resp.status_code >= 400 or not isinstance(payload, dict) or payload.get("ok") is not True:
            description = resp.text or resp.reason_phrase
            status_code = resp.status_code
            if isinstance(payload, dict):
                if isinstance(payload.get("description"), str):
                    description = payload["description"]
                if isinstance(payload.get("error_code"), int):
                    status_code = payload["error_code"]
            raise TelegramAPIError(
                f"Telegram sendMessage failed ({status_code}): {description}",
                status_code,
            )

        message_id = (payload.get("result") or {}).get("message_id")
        if message_id is None:
            raise TelegramAPIError(
                "Telegram sendMessage succeeded but response did not include result.message_id."
            )

        logger.info(f"📨 Telegram message sent to chat {chat_id}", extra={"status_code": resp.status_code})
        return str(message_id)
