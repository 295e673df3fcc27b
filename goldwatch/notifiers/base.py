"""
Base notification channel classes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from goldwatch.database.models import ChannelKind


@dataclass
class NotificationResult:
    """Result of a notification attempt."""

    success: bool
    channel: str
    error: Optional[str] = None

    @classmethod
    def sent(cls, channel: str) -> "NotificationResult":
        return cls(success=True, channel=channel)

    @classmethod
    def failed(cls, channel: str, reason: str) -> "NotificationResult":
        return cls(success=False, channel=channel, error=reason)


class NotificationChannel(ABC):
    """Delivers one message to one destination."""

    kind: ChannelKind
    # Markup flavour understood by the channel, see formatters
    message_style: str = "html"

    @property
    def name(self) -> str:
        return self.kind.value

    @abstractmethod
    def send(self, destination: str, message: str) -> NotificationResult:
        """
        Send a single message.

        Args:
            destination: Channel-specific contact (chat id, phone number)
            message: Rendered message text

        Returns:
            NotificationResult indicating success or failure
        """
        pass

    def is_ready(self) -> bool:
        """Whether the channel can currently attempt delivery."""
        return True


class ChannelFactory:
    """Factory for creating channel instances from configuration."""

    @staticmethod
    def create_all(notifications_config) -> dict[ChannelKind, NotificationChannel]:
        """
        Build every supported channel.

        Args:
            notifications_config: NotificationsConfig section

        Returns:
            Mapping of channel kind to channel instance
        """
        from .telegram import TelegramChannel
        from .whatsapp import WhatsAppChannel, WhatsAppSession

        telegram = notifications_config.telegram
        whatsapp = notifications_config.whatsapp

        return {
            ChannelKind.TELEGRAM: TelegramChannel(
                bot_token=telegram.bot_token,
                api_base=telegram.api_base,
            ),
            ChannelKind.WHATSAPP: WhatsAppChannel(
                session=WhatsAppSession(
                    gateway_url=whatsapp.gateway_url,
                    name=whatsapp.session,
                    api_key=whatsapp.api_key,
                ),
            ),
        }
