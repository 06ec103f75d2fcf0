"""
Batch orchestration of one engine invocation.

An invocation loads the enabled checks, skips those whose resource is in a
maintenance window, runs the rest through the retry controller with bounded
parallelism, and then persists results, resource statuses and alerts before
fanning alerts out to notification channels. Every step after loading is
best-effort: its failures are logged and counted in the summary instead of
aborting the invocation.
"""

import asyncio
import logging
from asyncio import Queue, Task
from datetime import datetime
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from .alerting.failure_counter import FailureCounter
from .alerting.quiet_hours import is_suppressed
from .alerting.rule_evaluator import evaluate, fallback_alert, resolve_applicable_rules, rule_alert
from .contracts import CheckStorage
from .domain import (
    Alert,
    AlertRule,
    CheckDefinition,
    CheckResult,
    CheckStatus,
    InvocationSummary,
    SkippedCheck,
    value_of,
)
from .executor.outcome import describe_error, failure_result
from .notification.fanout import NotificationFanout
from .retry_controller import Clock, RetryController, utc_now
from .status import aggregate, group_by_resource

MAINTENANCE_REASON = "Resource in maintenance window"


class _PendingAlert(NamedTuple):
    definition: CheckDefinition
    alert: Alert
    applicable_rules: List[AlertRule]


class CheckEngine:
    """
    Runs one batch of checks from loading to notification.

    Checks are handed to a fixed number of executor tasks through a queue, so
    at most worker_number retry sequences are in flight at any time. All
    per-resource lookups (maintenance windows, applicable rules) are cached for
    the duration of one invocation.
    """

    def __init__(
        self,
        storage: CheckStorage,
        retry_controller: RetryController,
        failure_counter: FailureCounter,
        fanout: NotificationFanout,
        worker_number: int,
        cycle_timeout: float = 0,
        clock: Clock = utc_now,
    ) -> None:
        """
        Initializes a new CheckEngine.

        Args:
            storage: Source of definitions and sink of results, statuses and alerts.
            retry_controller: Runs the retry/confirmation protocol of one check.
            failure_counter: Tracks the consecutive-failure streak of each check.
            fanout: Delivers persisted alerts to notification channels.
            worker_number: Maximum number of checks executed concurrently.
            cycle_timeout: Seconds after which unfinished checks are failed; 0 disables it.
            clock: Returns the current instant.
        """
        self._storage: CheckStorage = storage
        self._retry_controller: RetryController = retry_controller
        self._failure_counter: FailureCounter = failure_counter
        self._fanout: NotificationFanout = fanout
        self._worker_number: int = max(worker_number, 1)
        self._cycle_timeout: float = cycle_timeout
        self._clock: Clock = clock
        self._logger: logging.Logger = logging.getLogger(__name__)

    async def run(
        self, check_id: Optional[str] = None, resource_id: Optional[str] = None
    ) -> InvocationSummary:
        """
        Runs one invocation.

        Args:
            check_id: Restricts the invocation to one check; takes precedence over resource_id.
            resource_id: Restricts the invocation to the checks of one resource.

        Returns:
            InvocationSummary: Counts, results and partial-failure counters.

        Raises:
            Exception: If the check definitions cannot be loaded.
        """
        now = self._clock()

        definitions = await self._storage.fetch_enabled_checks(
            check_id=check_id, resource_id=None if check_id else resource_id
        )
        self._logger.info(f"Loaded {len(definitions)} enabled checks")

        to_run, skipped = await self._filter_maintenance(definitions, now)
        if skipped:
            self._logger.info(f"Skipped {len(skipped)} checks due to maintenance windows")

        results = await self._execute_all(to_run, now)
        pairs = list(zip(to_run, results))

        results_persisted, result_persist_failures = await self._persist_results(results)
        status_update_failures = await self._update_statuses(pairs, now)

        pending, failure_count_errors = await self._evaluate_alerts(pairs, now)
        (
            alerts_persisted,
            alert_persist_failures,
            notifications_sent,
            notification_failures,
        ) = await self._persist_and_notify(pending)

        summary = InvocationSummary(
            total_checks=len(results),
            skipped_checks=len(skipped),
            successful=sum(1 for r in results if r.status == CheckStatus.SUCCESS),
            warnings=sum(1 for r in results if r.status == CheckStatus.WARNING),
            failures=sum(1 for r in results if r.status == CheckStatus.FAILURE),
            alerts_created=len(pending),
            notifications_suppressed=sum(1 for p in pending if p.alert.notification_suppressed),
            results=results,
            skipped=skipped,
            results_persisted=results_persisted,
            result_persist_failures=result_persist_failures,
            status_update_failures=status_update_failures,
            failure_count_errors=failure_count_errors,
            alerts_persisted=alerts_persisted,
            alert_persist_failures=alert_persist_failures,
            notifications_sent=notifications_sent,
            notification_failures=notification_failures,
        )

        self._logger.info(
            f"Invocation complete: {summary.total_checks} executed, {summary.skipped_checks} skipped, "
            f"{summary.failures} failed, {summary.alerts_created} alerts"
        )
        if summary.has_partial_failures:
            self._logger.warning("Invocation completed with partial failures")
        return summary

    async def receive_heartbeat(self, token: str) -> Optional[str]:
        """
        Records a heartbeat sent by a monitored job, timestamped with the engine clock.

        Returns:
            Optional[str]: The id of the updated check, or None if the token is
                unknown or its check is disabled.
        """
        check_id = await self._storage.record_heartbeat(token, self._clock())
        if check_id is None:
            self._logger.warning("Heartbeat rejected: unknown token or disabled check")
        else:
            self._logger.info(f"Heartbeat recorded for check {check_id}")
        return check_id

    async def _filter_maintenance(
        self, definitions: Sequence[CheckDefinition], now: datetime
    ) -> Tuple[List[CheckDefinition], List[SkippedCheck]]:
        in_maintenance: Dict[str, bool] = {}
        to_run: List[CheckDefinition] = []
        skipped: List[SkippedCheck] = []

        for definition in definitions:
            resource_id = definition.resource_id
            if resource_id not in in_maintenance:
                try:
                    in_maintenance[resource_id] = await self._storage.is_in_maintenance_window(
                        resource_id, now
                    )
                except Exception as e:
                    self._logger.error(f"Error checking maintenance for resource {resource_id}: {e!r}")
                    in_maintenance[resource_id] = False

            if in_maintenance[resource_id]:
                self._logger.info(f"Skipping check {definition.id} - resource in maintenance")
                skipped.append(SkippedCheck(check_id=definition.id, reason=MAINTENANCE_REASON))
            else:
                to_run.append(definition)
        return to_run, skipped

    async def _execute_all(
        self, definitions: Sequence[CheckDefinition], now: datetime
    ) -> List[CheckResult]:
        """
        Runs every check through the retry controller with bounded parallelism.

        Args:
            definitions: The checks to run.
            now: The instant of the invocation.

        Returns:
            List[CheckResult]: One final result per definition, in the same order.
        """
        if not definitions:
            return []

        queue: Queue = Queue()
        for index, definition in enumerate(definitions):
            queue.put_nowait((index, definition))

        results: List[Optional[CheckResult]] = [None] * len(definitions)
        num_workers = min(self._worker_number, len(definitions))
        self._logger.info(f"Executing {len(definitions)} checks with {num_workers} workers")
        worker_tasks: List[Task] = [
            asyncio.create_task(self._executor(i + 1, queue, results, now)) for i in range(num_workers)
        ]

        try:
            if self._cycle_timeout > 0:
                await asyncio.wait_for(queue.join(), timeout=self._cycle_timeout)
            else:
                await queue.join()
        except asyncio.TimeoutError:
            self._logger.warning(f"Check cycle deadline of {self._cycle_timeout:g}s exceeded")
        finally:
            for task in worker_tasks:
                task.cancel()
            await asyncio.gather(*worker_tasks, return_exceptions=True)

        deadline_message = f"Check cycle deadline of {self._cycle_timeout:g}s exceeded"
        return [
            result if result is not None else failure_result(definition, deadline_message)
            for definition, result in zip(definitions, results)
        ]

    async def _executor(
        self,
        worker_num: int,
        queue: Queue,
        results: List[Optional[CheckResult]],
        now: datetime,
    ) -> None:
        """
        Consumer task running the retry sequence of one check at a time.
        """
        worker_logger: logging.Logger = logging.getLogger(f"executor-{worker_num}")

        while True:
            try:
                index, definition = await queue.get()
                try:
                    results[index] = await self._retry_controller.run_cycle(definition, now)
                except Exception as e:
                    worker_logger.exception(f"Retry sequence failed for check {definition.id}: {e}")
                    results[index] = failure_result(
                        definition, describe_error(e, definition.timeout_seconds)
                    )
                queue.task_done()

            except asyncio.CancelledError:
                worker_logger.debug("Stopping.")
                break

    async def _persist_results(self, results: Sequence[CheckResult]) -> Tuple[int, int]:
        persisted = failed = 0
        for result in results:
            try:
                await self._storage.insert_check_result(result)
                persisted += 1
            except Exception as e:
                self._logger.error(f"Error inserting result of check {result.check_id}: {e!r}")
                failed += 1
        self._logger.info(f"Inserted {persisted} check results")
        return persisted, failed

    async def _update_statuses(
        self, pairs: Sequence[Tuple[CheckDefinition, CheckResult]], now: datetime
    ) -> int:
        failed = 0
        grouped = group_by_resource(pairs)
        for resource_id, resource_results in grouped.items():
            status = aggregate(resource_results)
            try:
                await self._storage.update_resource_status(resource_id, status, now)
            except Exception as e:
                self._logger.error(f"Error updating resource {resource_id}: {e!r}")
                failed += 1
        self._logger.info(f"Updated {len(grouped) - failed} resource statuses")
        return failed

    async def _evaluate_alerts(
        self, pairs: Sequence[Tuple[CheckDefinition, CheckResult]], now: datetime
    ) -> Tuple[List[_PendingAlert], int]:
        """
        Updates failure streaks and evaluates the applicable rules of every result.

        Returns:
            Tuple[List[_PendingAlert], int]: The alerts to persist, and how many
            streak updates failed.
        """
        rules_by_resource: Dict[str, List[AlertRule]] = {}
        pending: List[_PendingAlert] = []
        failure_count_errors = 0

        for definition, result in pairs:
            is_failure = result.is_failure
            try:
                count = await self._failure_counter.update(definition.id, is_failure)
            except Exception as e:
                self._logger.error(f"Error updating failure count for check {definition.id}: {e!r}")
                count = definition.current_failure_count + 1 if is_failure else 0
                failure_count_errors += 1

            if definition.resource_id not in rules_by_resource:
                rules_by_resource[definition.resource_id] = await resolve_applicable_rules(
                    self._storage, definition.resource_id, definition.resource_type
                )
            rules = rules_by_resource[definition.resource_id]

            fired = False
            for rule in rules:
                if not evaluate(rule, result, count):
                    continue
                fired = True
                self._logger.info(
                    f"Alert rule {rule.id} ({value_of(rule.rule_type)}) triggered for check {definition.id}"
                )
                decision = is_suppressed(rule, now)
                pending.append(
                    _PendingAlert(definition, rule_alert(rule, definition, result, count, decision), rules)
                )

            if not fired and FailureCounter.threshold_reached(definition, is_failure, count):
                pending.append(_PendingAlert(definition, fallback_alert(definition, result), rules))

        return pending, failure_count_errors

    async def _persist_and_notify(self, pending: Sequence[_PendingAlert]) -> Tuple[int, int, int, int]:
        persisted = persist_failed = sent = notify_failed = 0

        for item in pending:
            try:
                stored = await self._storage.insert_alert(item.alert)
            except Exception as e:
                self._logger.error(f"Error creating alert for resource {item.alert.resource_id}: {e!r}")
                persist_failed += 1
                continue
            persisted += 1

            outcome = await self._fanout.notify(
                stored, item.definition.resource_name, item.applicable_rules
            )
            sent += outcome.sent
            notify_failed += outcome.failed

        if pending:
            self._logger.info(f"Created {persisted} alerts")
        return persisted, persist_failed, sent, notify_failed
