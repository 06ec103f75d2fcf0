"""
Notification dispatcher backed by the notification delivery service.

Channel-specific delivery (e-mail, chat webhooks, ...) is owned by an external
service. This dispatcher only hands it the channel and the alert payload over
HTTP using the shared aiohttp ClientSession.
"""

import logging

import aiohttp

from check_engine.contracts import NotificationDispatcher
from check_engine.domain import AlertNotification, NotificationChannel
from check_engine.errors import NotificationDeliveryError

# Module logger
logger = logging.getLogger(__name__)


class HttpNotificationDispatcher(NotificationDispatcher):
    def __init__(
        self,
        session: aiohttp.ClientSession,
        endpoint: str,
        token: str,
        timeout_seconds: float = 30,
    ) -> None:
        """
        Initializes the dispatcher.

        Args:
            session: The shared HTTP session.
            endpoint: URL of the notification delivery service.
            token: Bearer token sent to the service.
            timeout_seconds: Total timeout of one delivery request.
        """
        self._session: aiohttp.ClientSession = session
        self._endpoint: str = endpoint
        self._token: str = token
        self._timeout: aiohttp.ClientTimeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def dispatch(self, channel: NotificationChannel, notification: AlertNotification) -> None:
        """
        Sends one notification to one channel.

        Raises:
            NotificationDeliveryError: If no endpoint is configured or the
                service answers with a non-2xx status.
            aiohttp.ClientError: If the service cannot be reached.
        """
        if not self._endpoint:
            raise NotificationDeliveryError(channel.channel_type, "no notification endpoint configured")

        payload = {
            "action": "send",
            "channelType": channel.channel_type,
            "channelConfig": channel.configuration,
            "alertData": notification.to_dict(),
        }
        headers = {"Authorization": f"Bearer {self._token}"}

        async with self._session.post(
            self._endpoint, json=payload, headers=headers, timeout=self._timeout
        ) as response:
            if not 200 <= response.status < 300:
                detail = await response.text()
                raise NotificationDeliveryError(channel.channel_type, detail or str(response.status))
            logger.debug(f"Notification service accepted {channel.channel_type} delivery")
