"""
Notification channel providers.

In-app notifications are delivered simply by existing in the store. E-mail
and push notifications are handed to an HTTP relay service which owns the
actual SMTP / push-gateway integration.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import httpx

from upkeep.config import Settings, settings as default_settings
from upkeep.exceptions import DeliveryError
from upkeep.models.notification import Notification, NotificationChannel

logger = logging.getLogger(__name__)


class DeliveryProvider(ABC):
    """
    Interface for a notification channel.

    Implementations either return normally (delivered) or raise
    DeliveryError; the dispatcher records the outcome on the notification.
    """

    @abstractmethod
    async def deliver(self, notification: Notification) -> None:
        """
        Deliver one notification.

        Args:
            notification: Notification with its user relationship loaded

        Raises:
            DeliveryError: If the channel could not accept the notification
        """
        pass


class InAppProvider(DeliveryProvider):
    """In-app delivery is satisfied as soon as the notification is stored."""

    async def deliver(self, notification: Notification) -> None:
        logger.debug(f"In-app notification {notification.id} available to user {notification.user_id}")


class RelayProvider(DeliveryProvider):
    """
    Hands e-mail / push notifications to an HTTP relay.

    The relay receives a JSON body with the channel, recipient and content and
    is expected to answer 2xx once it has accepted the message.
    """

    def __init__(
        self,
        channel: NotificationChannel,
        relay_url: str,
        token: str = "",
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.channel = channel
        self.relay_url = relay_url
        self.token = token
        self.timeout = timeout
        self._client = client

    def _recipient(self, notification: Notification) -> str:
        user = notification.user
        if self.channel == NotificationChannel.EMAIL:
            recipient = user.email if user is not None else None
        else:
            recipient = user.push_token if user is not None else None

        if not recipient:
            raise DeliveryError(
                f"User {notification.user_id} has no {self.channel.value} address"
            )
        return recipient

    def _payload(self, notification: Notification) -> dict:
        return {
            "channel": self.channel.value,
            "recipient": self._recipient(notification),
            "notification_id": notification.id,
            "type": notification.notification_type.value,
            "title": notification.title,
            "message": notification.message,
            "action_url": notification.action_url,
        }

    async def _post(self, client: httpx.AsyncClient, payload: dict) -> None:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        response = await client.post(self.relay_url, json=payload, headers=headers)
        response.raise_for_status()

    async def deliver(self, notification: Notification) -> None:
        if not self.relay_url:
            raise DeliveryError(f"No relay configured for {self.channel.value} notifications")

        payload = self._payload(notification)

        try:
            if self._client is not None:
                await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    await self._post(client, payload)
        except httpx.TimeoutException as e:
            raise DeliveryError(f"Relay timed out delivering notification {notification.id}") from e
        except httpx.HTTPStatusError as e:
            raise DeliveryError(f"Relay rejected notification: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise DeliveryError(f"Relay request failed: {e}") from e

        logger.info(
            f"Relayed {self.channel.value} notification {notification.id} to user {notification.user_id}"
        )


def build_default_providers(
    config: Optional[Settings] = None,
) -> Dict[NotificationChannel, DeliveryProvider]:
    """Provider per channel, wired from settings."""
    config = config or default_settings
    return {
        NotificationChannel.IN_APP: InAppProvider(),
        NotificationChannel.EMAIL: RelayProvider(
            NotificationChannel.EMAIL,
            config.NOTIFICATION_RELAY_URL,
            config.NOTIFICATION_RELAY_TOKEN,
            config.NOTIFICATION_HTTP_TIMEOUT,
        ),
        NotificationChannel.PUSH: RelayProvider(
            NotificationChannel.PUSH,
            config.NOTIFICATION_RELAY_URL,
            config.NOTIFICATION_RELAY_TOKEN,
            config.NOTIFICATION_HTTP_TIMEOUT,
        ),
    }
