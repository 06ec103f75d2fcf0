"""
Probes backed by the Azure sync data.

These probes make no network call of their own; they read metric samples and
resource sync snapshots written by the Azure sync job through the engine's
storage. Note the inverted semantics of the metric probe: a breached
threshold is a failure, whereas for every other probe reaching the target is
the success condition.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from check_engine.comparison import compare_values, format_number, operator_symbol
from check_engine.contracts import CheckExecutor, CheckStorage
from check_engine.domain import (
    Aggregation,
    AzureResourceSnapshot,
    CheckDefinition,
    CheckResult,
    CheckStatus,
    ComparisonOperator,
    MetricSample,
)
from check_engine.executor.outcome import failure_result

# Module logger
logger = logging.getLogger(__name__)

DEFAULT_TIMEFRAME_MINUTES = 5
STALE_AFTER = timedelta(hours=1)


def aggregate_samples(samples: List[MetricSample], aggregation: Optional[str]) -> float:
    """
    Reduces metric samples to a single value.

    Missing per-sample extremes and totals fall back to the sample average,
    then to zero.

    Args:
        samples: A non-empty list of samples.
        aggregation: average (the default), max, min or total.

    Returns:
        float: The aggregated value.
    """
    if aggregation == Aggregation.MAX:
        return max(_first_set(s.maximum, s.average) for s in samples)
    if aggregation == Aggregation.MIN:
        return min(_first_set(s.minimum, s.average) for s in samples)
    if aggregation == Aggregation.TOTAL:
        return sum(_first_set(s.total, s.average) for s in samples)
    values = [_first_set(s.average) for s in samples]
    return sum(values) / len(values)


def _first_set(*values: Optional[float]) -> float:
    for value in values:
        if value is not None:
            return value
    return 0.0


def evaluate_metric_breach(
    metric_name: Optional[str], value: float, operator: str, threshold: float
) -> Tuple[CheckStatus, Optional[str]]:
    """
    Decides the outcome of a metric check: a breached threshold is a failure.

    Args:
        metric_name: The metric, used in the message.
        value: The aggregated value.
        operator: The comparison operator defining a breach.
        threshold: The threshold value.

    Returns:
        Tuple[CheckStatus, Optional[str]]: The status and diagnostic message.
    """
    if not compare_values(value, operator, threshold):
        return CheckStatus.SUCCESS, None
    return (
        CheckStatus.FAILURE,
        f"{metric_name} is {value:.2f} (threshold: {operator_symbol(operator)} {format_number(threshold)})",
    )


def evaluate_sync_freshness(
    snapshot: AzureResourceSnapshot, now: datetime
) -> Tuple[CheckStatus, Optional[str]]:
    if snapshot.synced_at is None or now - snapshot.synced_at > STALE_AFTER:
        return CheckStatus.FAILURE, "Azure resource data is stale (>1 hour old)"
    return CheckStatus.SUCCESS, None


class AzureMetricProbe(CheckExecutor):
    """
    Compares an aggregate of recent metric samples against a threshold.
    """

    def __init__(self, storage: CheckStorage) -> None:
        self._storage: CheckStorage = storage

    async def execute(self, definition: CheckDefinition, now: datetime) -> CheckResult:
        if not definition.azure_resource_id:
            return failure_result(definition, "No Azure resource linked to this resource")

        timeframe = definition.timeframe_minutes or DEFAULT_TIMEFRAME_MINUTES
        since = now - timedelta(minutes=timeframe)
        try:
            samples = await self._storage.fetch_metric_samples(
                definition.azure_resource_id, definition.azure_metric_name, since
            )
        except Exception as e:
            logger.error(f"Error fetching Azure metrics for check {definition.id}: {e}")
            return failure_result(definition, f"Error fetching metrics: {e}")

        if not samples:
            return failure_result(
                definition, f"No metric data available for {definition.azure_metric_name}"
            )

        value = aggregate_samples(samples, definition.aggregation or Aggregation.AVERAGE)
        threshold = (
            definition.metric_threshold_value
            if definition.metric_threshold_value is not None
            else 0.0
        )
        operator = definition.metric_comparison_operator or ComparisonOperator.GT
        status, message = evaluate_metric_breach(
            definition.azure_metric_name, value, operator, threshold
        )
        return CheckResult(
            check_id=definition.id,
            status=status,
            response_time_ms=round(value, 2),
            error_message=message,
        )


class AzureHealthProbe(CheckExecutor):
    """
    Fails when the linked Azure resource has not been synced within the last hour.
    """

    def __init__(self, storage: CheckStorage) -> None:
        self._storage: CheckStorage = storage

    async def execute(self, definition: CheckDefinition, now: datetime) -> CheckResult:
        if not definition.azure_resource_id:
            return failure_result(definition, "No Azure resource linked")

        try:
            snapshot = await self._storage.fetch_azure_resource(definition.azure_resource_id)
        except Exception as e:
            logger.error(f"Error fetching Azure resource for check {definition.id}: {e}")
            return failure_result(definition, f"Error fetching Azure resource: {e}")

        if snapshot is None:
            return failure_result(definition, "Azure resource not found in sync data")

        status, message = evaluate_sync_freshness(snapshot, now)
        return CheckResult(
            check_id=definition.id,
            status=status,
            response_time_ms=snapshot.optimization_score,
            error_message=message,
        )
