import logging
from typing import Optional

import httpx

from app.core.config import settings
from app.services.messaging.base import MessagingPlatform

logger = logging.getLogger(__name__)


class TelegramClient(MessagingPlatform):
    """Telegram Bot API client. Transport failures are logged, never raised."""

    def __init__(
        self,
        bot_token: Optional[str] = None,
        api_base: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = 10,
    ):
        self.bot_token = bot_token or settings.TELEGRAM_BOT_TOKEN
        self.api_base = (api_base or settings.TELEGRAM_API_BASE).rstrip("/")
        self.client = client
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.bot_token)

    def _method_url(self, method: str) -> str:
        return f"{self.api_base}/bot{self.bot_token}/{method}"

    def _call(self, method: str, payload: dict) -> Optional[dict]:
        """POST a Bot API method and return its `result`, or None on any failure."""
        if not self.configured:
            logger.warning(f"Telegram {method} skipped: bot token not configured")
            return None

        try:
            if self.client is not None:
                resp = self.client.post(self._method_url(method), json=payload, timeout=self.timeout)
            else:
                with httpx.Client() as client:
                    resp = client.post(self._method_url(method), json=payload, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Telegram {method} failed: {e}")
            return None

        if not data.get("ok"):
            logger.error(f"Telegram {method} rejected: {data.get('description')}")
            return None
        return data.get("result")

    def send_message(self, handle: str, text: str) -> bool:
        return self._call("sendMessage", {"chat_id": handle, "text": text}) is not None

    def get_verified_phone_number(self, handle: str) -> Optional[str]:
        chat = self._call("getChat", {"chat_id": handle})
        if not chat:
            return None
        return chat.get("phone_number")

    def set_webhook(self, url: str, secret_token: str) -> bool:
        """Register the update webhook; Telegram echoes the secret in every call."""
        payload = {
            "url": url,
            "secret_token": secret_token,
            "allowed_updates": ["message"],
        }
        return self._call("setWebhook", payload) is not None
