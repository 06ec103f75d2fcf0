"""
Unit tests for the CheckEngine class.

The engine runs against the in-memory storage fixture and a scripted
executor, so several invocations can be chained to exercise the persisted
failure streak. Retries are disabled unless a test needs them.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, List
from unittest.mock import AsyncMock

import pytest

from check_engine.alerting.failure_counter import FailureCounter
from check_engine.contracts import CheckExecutor, CheckStorage, NotificationDispatcher
from check_engine.domain import (
    AlertRule,
    CheckDefinition,
    CheckResult,
    CheckStatus,
    ComparisonOperator,
    NotificationChannel,
    QuietHours,
    ResourceStatus,
    RetryConfig,
    RuleType,
)
from check_engine.engine import MAINTENANCE_REASON, CheckEngine
from check_engine.notification.fanout import NotificationFanout
from check_engine.retry_controller import RetryController

INVOCATION_TIME = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
NO_RETRIES = RetryConfig(max_retries=0, retry_delay_ms=0, confirmation_delay_ms=0)


class ScriptedExecutor(CheckExecutor):
    """
    Returns a fixed status per check id and records every attempt.
    """

    def __init__(self, statuses: Dict[str, CheckStatus], delay: float = 0) -> None:
        self.statuses = statuses
        self.delay = delay
        self.executed: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def execute(self, definition: CheckDefinition, now: datetime) -> CheckResult:
        self.executed.append(definition.id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

        status = self.statuses.get(definition.id, CheckStatus.SUCCESS)
        return CheckResult(
            check_id=definition.id,
            status=status,
            response_time_ms=12,
            error_message="boom" if status == CheckStatus.FAILURE else None,
        )


class BlockingExecutor(CheckExecutor):
    """
    Never completes for the listed checks.
    """

    def __init__(self, blocked: List[str]) -> None:
        self.blocked = blocked

    async def execute(self, definition: CheckDefinition, now: datetime) -> CheckResult:
        if definition.id in self.blocked:
            await asyncio.Event().wait()
        return CheckResult(check_id=definition.id, status=CheckStatus.SUCCESS)


def build_engine(
    storage: CheckStorage,
    executor: CheckExecutor,
    dispatcher: AsyncMock,
    worker_number: int = 5,
    cycle_timeout: float = 0,
) -> CheckEngine:
    return CheckEngine(
        storage=storage,
        retry_controller=RetryController(executor, defaults=NO_RETRIES, sleep=AsyncMock()),
        failure_counter=FailureCounter(storage),
        fanout=NotificationFanout(storage, dispatcher),
        worker_number=worker_number,
        cycle_timeout=cycle_timeout,
        clock=lambda: INVOCATION_TIME,
    )


@pytest.fixture
def dispatcher() -> AsyncMock:
    return AsyncMock(spec=NotificationDispatcher)


@pytest.fixture
def email_channel() -> NotificationChannel:
    return NotificationChannel(channel_type="email", configuration={"to": "ops@example.com"})


@pytest.mark.asyncio
async def test_run_should_alert_on_third_consecutive_failure(
    storage: CheckStorage,
    http_definition: CheckDefinition,
    dispatcher: AsyncMock,
    email_channel: NotificationChannel,
) -> None:
    # Arrange
    storage.checks = [http_definition._replace(failure_threshold=5)]
    storage.rules = [
        AlertRule(
            id="rule-streak",
            rule_type=RuleType.CONSECUTIVE_FAILURES,
            comparison_operator=ComparisonOperator.GTE,
            threshold_value=3,
            resource_id="resource-1",
        )
    ]
    storage.rule_channels = {"rule-streak": [email_channel]}
    engine = build_engine(storage, ScriptedExecutor({"check-http": CheckStatus.FAILURE}), dispatcher)

    # Act
    first = await engine.run()
    second = await engine.run()
    third = await engine.run()

    # Assert
    assert [first.alerts_created, second.alerts_created, third.alerts_created] == [0, 0, 1]
    assert storage.failure_counts["check-http"] == 3
    assert len(storage.alerts) == 1
    alert = storage.alerts[0].alert
    assert alert.triggering_rule_id == "rule-streak"
    assert alert.message == "Check failed 3 consecutive time(s) (threshold: 3)"
    assert third.notifications_sent == 1
    dispatcher.dispatch.assert_awaited_once()
    assert dispatcher.dispatch.call_args[0][0] == email_channel


@pytest.mark.asyncio
async def test_run_should_reset_streak_and_mark_resource_up_on_success(
    storage: CheckStorage, http_definition: CheckDefinition, dispatcher: AsyncMock
) -> None:
    # Arrange
    storage.checks = [http_definition._replace(current_failure_count=2)]
    storage.failure_counts = {"check-http": 2}
    engine = build_engine(storage, ScriptedExecutor({}), dispatcher)

    # Act
    summary = await engine.run()

    # Assert
    assert summary.successful == 1
    assert summary.alerts_created == 0
    assert storage.failure_counts["check-http"] == 0
    assert storage.statuses == {"resource-1": ResourceStatus.UP}
    assert [r.check_id for r in storage.results] == ["check-http"]


@pytest.mark.asyncio
async def test_run_should_skip_checks_of_resources_in_maintenance(
    storage: CheckStorage, http_definition: CheckDefinition, dispatcher: AsyncMock
) -> None:
    # Arrange
    other = http_definition._replace(id="check-other", resource_id="resource-9")
    storage.checks = [http_definition, other]
    storage.maintenance = {"resource-1"}
    executor = ScriptedExecutor({})
    engine = build_engine(storage, executor, dispatcher)

    # Act
    summary = await engine.run()

    # Assert
    assert executor.executed == ["check-other"]
    assert summary.total_checks == 1
    assert summary.skipped_checks == 1
    assert summary.skipped[0].check_id == "check-http"
    assert summary.skipped[0].reason == MAINTENANCE_REASON
    assert "resource-1" not in storage.statuses


@pytest.mark.asyncio
async def test_run_should_prefer_check_id_over_resource_id(
    storage: CheckStorage, http_definition: CheckDefinition, dispatcher: AsyncMock
) -> None:
    # Arrange
    other = http_definition._replace(id="check-other", resource_id="resource-9")
    storage.checks = [http_definition, other]
    executor = ScriptedExecutor({})
    engine = build_engine(storage, executor, dispatcher)

    # Act
    by_check = await engine.run(check_id="check-http", resource_id="resource-9")
    by_resource = await engine.run(resource_id="resource-9")

    # Assert
    assert [r.check_id for r in by_check.results] == ["check-http"]
    assert [r.check_id for r in by_resource.results] == ["check-other"]


@pytest.mark.asyncio
async def test_run_should_aggregate_status_over_all_checks_of_a_resource(
    storage: CheckStorage, http_definition: CheckDefinition, dispatcher: AsyncMock
) -> None:
    # Arrange
    second = http_definition._replace(id="check-second", failure_threshold=10)
    storage.checks = [http_definition._replace(failure_threshold=10), second]
    engine = build_engine(storage, ScriptedExecutor({"check-second": CheckStatus.FAILURE}), dispatcher)

    # Act
    summary = await engine.run()

    # Assert
    assert summary.successful == 1
    assert summary.failures == 1
    assert storage.statuses == {"resource-1": ResourceStatus.DEGRADED}


@pytest.mark.asyncio
async def test_run_should_record_suppressed_alert_without_notifying(
    storage: CheckStorage,
    http_definition: CheckDefinition,
    dispatcher: AsyncMock,
    email_channel: NotificationChannel,
) -> None:
    # Arrange
    storage.checks = [http_definition]
    storage.rules = [
        AlertRule(
            id="rule-down",
            rule_type=RuleType.DOWNTIME,
            comparison_operator=ComparisonOperator.GT,
            threshold_value=50,
            resource_id="resource-1",
            quiet_hours=QuietHours(enabled=True, start="11:00", end="13:00", timezone="UTC"),
        )
    ]
    storage.global_channels = [email_channel]
    engine = build_engine(storage, ScriptedExecutor({"check-http": CheckStatus.FAILURE}), dispatcher)

    # Act
    summary = await engine.run()

    # Assert
    assert summary.alerts_created == 1
    assert summary.notifications_suppressed == 1
    assert summary.notifications_sent == 0
    alert = storage.alerts[0].alert
    assert alert.notification_suppressed is True
    assert alert.suppression_reason == "Quiet hours active (11:00-13:00 UTC)"
    dispatcher.dispatch.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_should_raise_fallback_alert_when_no_rule_fires(
    storage: CheckStorage,
    http_definition: CheckDefinition,
    dispatcher: AsyncMock,
    email_channel: NotificationChannel,
) -> None:
    # Arrange
    storage.checks = [http_definition]
    storage.global_channels = [email_channel, email_channel]
    engine = build_engine(storage, ScriptedExecutor({"check-http": CheckStatus.FAILURE}), dispatcher)

    # Act
    summary = await engine.run()

    # Assert
    assert summary.alerts_created == 1
    assert summary.alerts_persisted == 1
    assert summary.notifications_sent == 1
    alert = storage.alerts[0].alert
    assert alert.triggering_rule_id is None
    assert alert.message == "HTTP check failed: boom"
    notification = dispatcher.dispatch.call_args[0][1]
    assert notification.title == "Alert: Public API"


@pytest.mark.asyncio
async def test_run_should_count_best_effort_failures(
    storage: CheckStorage, http_definition: CheckDefinition, dispatcher: AsyncMock
) -> None:
    # Arrange
    storage.checks = [http_definition]
    storage.insert_check_result = AsyncMock(side_effect=RuntimeError("insert failed"))
    storage.update_resource_status = AsyncMock(side_effect=RuntimeError("update failed"))
    storage.increment_failure_count = AsyncMock(side_effect=RuntimeError("counter failed"))
    dispatcher.dispatch.side_effect = RuntimeError("service down")
    storage.global_channels = [NotificationChannel("slack", {"webhook": "https://hooks"})]
    engine = build_engine(storage, ScriptedExecutor({"check-http": CheckStatus.FAILURE}), dispatcher)

    # Act
    summary = await engine.run()

    # Assert
    assert summary.failures == 1
    assert summary.results_persisted == 0
    assert summary.result_persist_failures == 1
    assert summary.status_update_failures == 1
    assert summary.failure_count_errors == 1
    assert summary.alerts_created == 1
    assert summary.notification_failures == 1
    assert summary.has_partial_failures is True


@pytest.mark.asyncio
async def test_run_should_not_notify_alerts_that_failed_to_persist(
    storage: CheckStorage, http_definition: CheckDefinition, dispatcher: AsyncMock
) -> None:
    # Arrange
    storage.checks = [http_definition]
    storage.insert_alert = AsyncMock(side_effect=RuntimeError("insert failed"))
    storage.global_channels = [NotificationChannel("email", {"to": "ops@example.com"})]
    engine = build_engine(storage, ScriptedExecutor({"check-http": CheckStatus.FAILURE}), dispatcher)

    # Act
    summary = await engine.run()

    # Assert
    assert summary.alerts_created == 1
    assert summary.alert_persist_failures == 1
    dispatcher.dispatch.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_should_propagate_errors_loading_checks(
    storage: CheckStorage, dispatcher: AsyncMock
) -> None:
    # Arrange
    storage.fetch_enabled_checks = AsyncMock(side_effect=ConnectionError("database unreachable"))
    engine = build_engine(storage, ScriptedExecutor({}), dispatcher)

    # Act / Assert
    with pytest.raises(ConnectionError):
        await engine.run()


@pytest.mark.asyncio
async def test_run_should_fail_checks_left_unfinished_at_cycle_deadline(
    storage: CheckStorage, http_definition: CheckDefinition, dispatcher: AsyncMock
) -> None:
    # Arrange
    fast = http_definition._replace(id="check-fast", resource_id="resource-9", failure_threshold=10)
    storage.checks = [http_definition._replace(failure_threshold=10), fast]
    engine = build_engine(
        storage, BlockingExecutor(["check-http"]), dispatcher, worker_number=2, cycle_timeout=0.05
    )

    # Act
    summary = await engine.run()

    # Assert
    results = {r.check_id: r for r in summary.results}
    assert results["check-fast"].status == CheckStatus.SUCCESS
    assert results["check-http"].status == CheckStatus.FAILURE
    assert results["check-http"].error_message == "Check cycle deadline of 0.05s exceeded"
    assert storage.statuses["resource-1"] == ResourceStatus.DOWN


@pytest.mark.asyncio
async def test_run_should_bound_concurrent_checks_by_worker_number(
    storage: CheckStorage, http_definition: CheckDefinition, dispatcher: AsyncMock
) -> None:
    # Arrange
    storage.checks = [http_definition._replace(id=f"check-{i}") for i in range(6)]
    executor = ScriptedExecutor({}, delay=0.01)
    engine = build_engine(storage, executor, dispatcher, worker_number=2)

    # Act
    summary = await engine.run()

    # Assert
    assert summary.total_checks == 6
    assert executor.max_in_flight == 2
    assert [r.check_id for r in summary.results] == [f"check-{i}" for i in range(6)]


@pytest.mark.asyncio
async def test_receive_heartbeat_should_record_with_engine_clock(
    storage: CheckStorage, heartbeat_definition: CheckDefinition, dispatcher: AsyncMock
) -> None:
    # Arrange
    storage.checks = [heartbeat_definition]
    storage.heartbeat_tokens = {"token-1": heartbeat_definition.id}
    storage.failure_counts[heartbeat_definition.id] = 4
    engine = build_engine(storage, ScriptedExecutor({}), dispatcher)

    # Act
    check_id = await engine.receive_heartbeat("token-1")
    unknown = await engine.receive_heartbeat("token-unknown")

    # Assert
    assert check_id == heartbeat_definition.id
    assert unknown is None
    assert storage.heartbeats == {heartbeat_definition.id: INVOCATION_TIME}
    assert storage.failure_counts[heartbeat_definition.id] == 0
