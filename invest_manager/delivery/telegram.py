"""Telegram Bot delivery channel.

Setup:
    1. Create a bot via @BotFather on Telegram and copy the token.
    2. Start a conversation with your bot (send it any message).
    3. Get your chat_id by visiting:
       https://api.telegram.org/bot<YOUR_TOKEN>/getUpdates
       Look for "chat":{"id": <CHAT_ID>} in the response.
    4. Set TELEGRAM_TOKEN and TELEGRAM_CHAT_ID in your .env file.
"""

from typing import Any

import httpx
import structlog

from invest_manager.config import Settings
from invest_manager.delivery.base import BaseNotifier
from invest_manager.delivery.formatter import MAX_MESSAGE_LENGTH, chunk_message
from invest_manager.errors import DeliveryError

logger = structlog.get_logger()

TELEGRAM_API = "https://api.telegram.org"


class TelegramNotifier(BaseNotifier):
    max_length = MAX_MESSAGE_LENGTH

    def __init__(self, settings: Settings) -> None:
        self.token = settings.telegram_token
        self.chat_id = settings.telegram_chat_id
        self.timeout = settings.http_timeout

    async def call(
        self, method: str, payload: dict[str, Any], timeout: float | None = None
    ) -> Any:
        """Invoke a Bot API method and return its ``result`` field."""
        if not self.token:
            raise DeliveryError("TELEGRAM_TOKEN is not configured")

        url = f"{TELEGRAM_API}/bot{self.token}/{method}"
        try:
            async with httpx.AsyncClient(timeout=timeout or self.timeout) as client:
                response = await client.post(url, json=payload)
                data: dict[str, Any] = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise DeliveryError(f"telegram {method} failed: {exc}") from exc

        if not data.get("ok"):
            logger.warning("telegram_api_error", method=method, response=data)
            raise DeliveryError(
                f"telegram {method} rejected: {data.get('description', response.status_code)}"
            )
        return data.get("result")

    async def send(self, text: str, emphasis: bool = False) -> None:
        if not self.chat_id:
            raise DeliveryError("TELEGRAM_CHAT_ID is not configured")

        payload: dict[str, Any] = {"chat_id": self.chat_id, "text": text}
        if emphasis:
            payload["parse_mode"] = "Markdown"
        await self.call("sendMessage", payload)
        logger.info("telegram_sent", chat_id=self.chat_id, chars=len(text), emphasis=emphasis)

    async def send_text(self, text: str) -> None:
        """Send plain text, split into as many messages as needed."""
        chunks = chunk_message(text, self.max_length)
        for i, chunk in enumerate(chunks, start=1):
            if len(chunks) > 1:
                logger.info("telegram_sending_part", part=i, total=len(chunks))
            await self.send(chunk)

    async def get_updates(self, offset: int, poll_timeout: int = 60) -> list[dict[str, Any]]:
        result = await self.call(
            "getUpdates",
            {"offset": offset, "timeout": poll_timeout, "allowed_updates": ["message"]},
            timeout=poll_timeout + self.timeout,
        )
        return list(result or [])
