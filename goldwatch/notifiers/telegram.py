"""
Telegram Bot API channel.
"""

import logging
import time
from typing import Any

import requests

from goldwatch.database.models import ChannelKind
from .base import NotificationChannel, NotificationResult

logger = logging.getLogger(__name__)


class TelegramChannel(NotificationChannel):
    """Sends messages through a Telegram bot."""

    kind = ChannelKind.TELEGRAM
    message_style = "html"

    def __init__(
        self,
        bot_token: str,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10,
    ):
        """
        Initialize Telegram channel.

        Args:
            bot_token: Bot token from BotFather
            api_base: Bot API root URL
            timeout: Request timeout in seconds
        """
        self.bot_token = bot_token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        if not bot_token:
            logger.warning("Telegram bot token not configured; Telegram sends will fail")

    def is_ready(self) -> bool:
        return bool(self.bot_token)

    def send(self, destination: str, message: str) -> NotificationResult:
        """Send message to a chat."""
        if not self.bot_token:
            return NotificationResult.failed(
                self.name, "bot not authenticated: no bot token configured"
            )
        chat_id = str(destination or "").strip()
        if not chat_id:
            return NotificationResult.failed(self.name, "invalid chat id: empty")

        try:
            response = self._post(
                "sendMessage",
                {"chat_id": chat_id, "text": message, "parse_mode": "HTML"},
            )
        except requests.exceptions.ConnectionError as e:
            return NotificationResult.failed(self.name, f"transport error: {e}")
        except requests.exceptions.Timeout:
            return NotificationResult.failed(
                self.name, f"transport error: timeout after {self.timeout}s"
            )
        except requests.exceptions.RequestException as e:
            return NotificationResult.failed(self.name, f"transport error: {e}")

        if response.ok:
            return NotificationResult.sent(self.name)
        return NotificationResult.failed(self.name, self._describe_error(response))

    def _post(self, method: str, payload: dict[str, Any]) -> requests.Response:
        """Call a Bot API method with rate limit handling."""
        url = f"{self.api_base}/bot{self.bot_token}/{method}"
        response = requests.post(url, json=payload, timeout=self.timeout)

        # Handle rate limiting
        if response.status_code == 429:
            retry_after = self._retry_after(response)
            logger.info(f"Telegram rate limited; retrying after {retry_after}s")
            time.sleep(retry_after)
            response = requests.post(url, json=payload, timeout=self.timeout)

        return response

    def _retry_after(self, response: requests.Response) -> float:
        try:
            return float(response.json()["parameters"]["retry_after"])
        except (ValueError, KeyError, TypeError):
            return float(response.headers.get("Retry-After", "1"))

    def _describe_error(self, response: requests.Response) -> str:
        try:
            description = response.json().get("description", response.text)
        except ValueError:
            description = response.text

        if response.status_code == 401:
            return f"bot not authenticated: {description}"
        if response.status_code in (400, 403) and "chat" in description.lower():
            return f"invalid chat id: {description}"
        return f"HTTP {response.status_code}: {description}"
