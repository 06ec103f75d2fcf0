"""
Fan-out of persisted alerts to notification channels.

Channels linked to the rules that apply to the alerted resource take
precedence; when none is linked, every globally enabled channel is notified.
A channel that fails is logged and counted, and never prevents delivery to
the remaining channels.
"""

import json
import logging
from typing import List, NamedTuple, Sequence

from check_engine.contracts import CheckStorage, NotificationDispatcher
from check_engine.domain import AlertNotification, AlertRule, NotificationChannel, StoredAlert

# Module logger
logger = logging.getLogger(__name__)


class FanoutOutcome(NamedTuple):
    sent: int = 0
    failed: int = 0


def deduplicate(channels: Sequence[NotificationChannel]) -> List[NotificationChannel]:
    """
    Removes channels with the same type and configuration, keeping the first one.
    """
    seen = set()
    unique: List[NotificationChannel] = []
    for channel in channels:
        key = (channel.channel_type, json.dumps(channel.configuration, sort_keys=True, default=str))
        if key in seen:
            continue
        seen.add(key)
        unique.append(channel)
    return unique


class NotificationFanout:
    def __init__(self, storage: CheckStorage, dispatcher: NotificationDispatcher) -> None:
        """
        Initializes the fan-out.

        Args:
            storage: Provides the rule-linked and global channels.
            dispatcher: Delivers one notification to one channel.
        """
        self._storage: CheckStorage = storage
        self._dispatcher: NotificationDispatcher = dispatcher

    async def resolve_channels(self, applicable_rules: Sequence[AlertRule]) -> List[NotificationChannel]:
        """
        Resolves the channels to notify for an alert.

        Args:
            applicable_rules: The rules that apply to the alerted resource.

        Returns:
            List[NotificationChannel]: De-duplicated channels to notify.
        """
        channels: List[NotificationChannel] = []
        if applicable_rules:
            channels = deduplicate(
                await self._storage.fetch_rule_channels([rule.id for rule in applicable_rules])
            )
        if not channels:
            channels = deduplicate(await self._storage.fetch_global_channels())
        return channels

    async def notify(
        self, stored_alert: StoredAlert, resource_name: str, applicable_rules: Sequence[AlertRule]
    ) -> FanoutOutcome:
        """
        Delivers a persisted alert to every channel resolved for it.

        Args:
            stored_alert: The persisted alert.
            resource_name: Display name of the alerted resource.
            applicable_rules: The rules that apply to the alerted resource.

        Returns:
            FanoutOutcome: How many deliveries succeeded and failed.
        """
        alert = stored_alert.alert
        if alert.notification_suppressed:
            logger.info(
                f"Skipping notification for alert {stored_alert.id} - {alert.suppression_reason}"
            )
            return FanoutOutcome()

        try:
            channels = await self.resolve_channels(applicable_rules)
        except Exception as e:
            logger.error(f"Error resolving notification channels for alert {stored_alert.id}: {e!r}")
            return FanoutOutcome(failed=1)

        notification = AlertNotification(
            title=f"Alert: {resource_name}",
            message=alert.message,
            severity=alert.severity,
            resource_name=resource_name,
        )

        sent = failed = 0
        for channel in channels:
            try:
                await self._dispatcher.dispatch(channel, notification)
                logger.info(f"Notification sent via {channel.channel_type}")
                sent += 1
            except Exception as e:
                logger.error(f"Error sending {channel.channel_type} notification: {e}")
                failed += 1
        return FanoutOutcome(sent=sent, failed=failed)
