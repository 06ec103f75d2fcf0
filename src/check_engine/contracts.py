"""
Core interfaces for the check execution engine.

This module defines the abstract base classes that form the seams of the
engine: probing a single check, reading and writing engine state, and handing
alerts to the external notification service. Concrete implementations are
injected into the engine, which keeps it persistence- and transport-agnostic.
"""

import abc
from datetime import datetime
from typing import Iterable, List, Optional, Set

from .domain import (
    Alert,
    AlertNotification,
    AlertRule,
    AzureResourceSnapshot,
    CheckDefinition,
    CheckResult,
    MetricSample,
    NotificationChannel,
    ResourceStatus,
    StoredAlert,
)


class CheckExecutor(abc.ABC):
    """
    Abstract interface for a component that runs one probe attempt.

    Its responsibility is to encapsulate the I/O for a given CheckDefinition
    and return a structured result. Retries are not its concern.
    """

    @abc.abstractmethod
    async def execute(self, definition: CheckDefinition, now: datetime) -> CheckResult:
        """
        Runs a single attempt of the given check.

        Args:
            definition: The check to run.
            now: The instant the attempt is evaluated at.

        Returns:
            CheckResult: The outcome of the attempt.

        Raises:
            Nothing: implementations must convert every failure mode into a
                result with status failure and a populated error_message.
        """
        pass


class CheckStorage(abc.ABC):
    """
    Abstract interface for the engine's persistence.

    The engine reads check definitions, rules, maintenance windows and Azure
    sync data through it, and writes results, failure streaks, resource
    statuses and alerts back. Any backing store can implement it.
    """

    @abc.abstractmethod
    async def fetch_enabled_checks(
        self, check_id: Optional[str] = None, resource_id: Optional[str] = None
    ) -> List[CheckDefinition]:
        """
        Reads the enabled checks, joined with their resource.

        When check_id is given only that check is returned; otherwise, when
        resource_id is given only the checks of that resource are returned.
        """
        pass

    @abc.abstractmethod
    async def increment_failure_count(self, check_id: str) -> int:
        """Atomically increments the failure streak and returns the new value."""
        pass

    @abc.abstractmethod
    async def reset_failure_count(self, check_id: str) -> None:
        pass

    @abc.abstractmethod
    async def is_in_maintenance_window(self, resource_id: str, now: datetime) -> bool:
        pass

    @abc.abstractmethod
    async def fetch_direct_rules(self, resource_id: str) -> List[AlertRule]:
        """Reads the enabled rules bound directly to a resource."""
        pass

    @abc.abstractmethod
    async def fetch_template_rules(self, resource_type: str) -> List[AlertRule]:
        """Reads the enabled template rules bound to a resource type."""
        pass

    @abc.abstractmethod
    async def fetch_excluded_rule_ids(self, resource_id: str, rule_ids: Iterable[str]) -> Set[str]:
        """Returns which of the given template rules exclude the resource."""
        pass

    @abc.abstractmethod
    async def insert_check_result(self, result: CheckResult) -> None:
        pass

    @abc.abstractmethod
    async def update_resource_status(
        self, resource_id: str, status: ResourceStatus, checked_at: datetime
    ) -> None:
        pass

    @abc.abstractmethod
    async def insert_alert(self, alert: Alert) -> StoredAlert:
        pass

    @abc.abstractmethod
    async def fetch_rule_channels(self, rule_ids: Iterable[str]) -> List[NotificationChannel]:
        """Reads the enabled notification channels linked to any of the given rules."""
        pass

    @abc.abstractmethod
    async def fetch_global_channels(self) -> List[NotificationChannel]:
        """Reads every enabled notification channel."""
        pass

    @abc.abstractmethod
    async def fetch_metric_samples(
        self, azure_resource_id: str, metric_name: str, since: datetime
    ) -> List[MetricSample]:
        """Reads the synced metric samples newer than 'since', most recent first."""
        pass

    @abc.abstractmethod
    async def fetch_azure_resource(self, azure_resource_id: str) -> Optional[AzureResourceSnapshot]:
        pass

    @abc.abstractmethod
    async def record_heartbeat(self, token: str, received_at: datetime) -> Optional[str]:
        """
        Records a heartbeat for the enabled heartbeat check owning the token.

        Returns:
            Optional[str]: The id of the updated check, or None if the token is
                unknown or the check is disabled.
        """
        pass


class NotificationDispatcher(abc.ABC):
    """
    Abstract interface for the external notification delivery service.

    The engine only builds the payload and the channel list; delivery
    mechanics (email, Slack, Teams, webhooks) live behind this interface.
    """

    @abc.abstractmethod
    async def dispatch(self, channel: NotificationChannel, notification: AlertNotification) -> None:
        """
        Delivers one notification through one channel.

        Raises:
            NotificationDeliveryError: If the delivery was rejected.
        """
        pass
