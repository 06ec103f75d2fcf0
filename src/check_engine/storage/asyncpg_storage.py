"""
PostgreSQL implementation of the CheckStorage interface.

All reads and writes go through an asyncpg connection pool. Identifiers are
handled as strings in the domain and compared as text in SQL, so that callers
never need to care about the UUID representation used by the database.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, List, Optional, Set, Type

from asyncpg import Pool, Record

from check_engine.contracts import CheckStorage
from check_engine.domain import (
    Aggregation,
    Alert,
    AlertRule,
    AzureResourceSnapshot,
    CheckDefinition,
    CheckResult,
    CheckStatus,
    CheckType,
    ComparisonOperator,
    HttpAuthType,
    KeywordMatchMode,
    MetricSample,
    NotificationChannel,
    QuietHours,
    ResourceStatus,
    RetryConfig,
    RuleType,
    StoredAlert,
    value_of,
)

# Module logger
logger = logging.getLogger(__name__)

FETCH_ENABLED_CHECKS_QUERY = """
    SELECT mc.*,
           r.name              AS resource_name,
           r.resource_type     AS resource_type,
           r.azure_resource_id AS linked_azure_resource_id
    FROM monitoring_checks mc
             JOIN resources r ON r.id = mc.resource_id
    WHERE mc.is_enabled
      AND ($1::text IS NULL OR mc.id::text = $1)
      AND ($2::text IS NULL OR mc.resource_id::text = $2)
    ORDER BY mc.created_at;
"""

INCREMENT_FAILURE_COUNT_QUERY = """
    UPDATE monitoring_checks
    SET current_failure_count = COALESCE(current_failure_count, 0) + 1
    WHERE id::text = $1
    RETURNING current_failure_count;
"""

RESET_FAILURE_COUNT_QUERY = """
    UPDATE monitoring_checks SET current_failure_count = 0 WHERE id::text = $1;
"""

IN_MAINTENANCE_QUERY = """
    SELECT EXISTS (SELECT 1
                   FROM maintenance_windows
                   WHERE resource_id::text = $1
                     AND starts_at <= $2
                     AND ends_at >= $2);
"""

FETCH_DIRECT_RULES_QUERY = """
    SELECT * FROM alert_rules WHERE resource_id::text = $1 AND is_enabled ORDER BY created_at;
"""

FETCH_TEMPLATE_RULES_QUERY = """
    SELECT *
    FROM alert_rules
    WHERE resource_type = $1
      AND is_template
      AND is_enabled
    ORDER BY created_at;
"""

FETCH_EXCLUDED_RULE_IDS_QUERY = """
    SELECT alert_rule_id::text AS alert_rule_id
    FROM alert_rule_exclusions
    WHERE resource_id::text = $1
      AND alert_rule_id::text = ANY ($2::text[]);
"""

INSERT_CHECK_RESULT_QUERY = """
    INSERT INTO check_results (monitoring_check_id, status, response_time_ms, status_code,
                               ssl_expiry_date, ssl_days_remaining, error_message, checked_at)
    VALUES ($1::uuid, $2, $3, $4, $5, $6, $7, NOW());
"""

UPDATE_RESOURCE_STATUS_QUERY = """
    UPDATE resources SET status = $2, last_checked_at = $3 WHERE id::text = $1;
"""

INSERT_ALERT_QUERY = """
    INSERT INTO alerts (resource_id, severity, message, alert_rule_id,
                        notification_suppressed, suppression_reason, triggered_at)
    VALUES ($1::uuid, $2, $3, $4::uuid, $5, $6, NOW())
    RETURNING id::text;
"""

FETCH_RULE_CHANNELS_QUERY = """
    SELECT nc.channel_type, nc.configuration
    FROM alert_notification_channels anc
             JOIN notification_channels nc ON nc.id = anc.notification_channel_id
    WHERE anc.alert_rule_id::text = ANY ($1::text[])
      AND nc.is_enabled
    ORDER BY nc.created_at;
"""

FETCH_GLOBAL_CHANNELS_QUERY = """
    SELECT channel_type, configuration FROM notification_channels WHERE is_enabled ORDER BY created_at;
"""

FETCH_METRIC_SAMPLES_QUERY = """
    SELECT average, minimum, maximum, total
    FROM azure_metrics
    WHERE azure_resource_id::text = $1
      AND metric_name = $2
      AND timestamp_utc >= $3
    ORDER BY timestamp_utc DESC;
"""

FETCH_AZURE_RESOURCE_QUERY = """
    SELECT synced_at, optimization_score FROM azure_resources WHERE id::text = $1;
"""

FIND_HEARTBEAT_CHECK_QUERY = """
    SELECT id::text AS id, resource_id::text AS resource_id, is_enabled
    FROM monitoring_checks
    WHERE heartbeat_token::text = $1
      AND check_type = 'heartbeat';
"""

RECORD_HEARTBEAT_QUERY = """
    UPDATE monitoring_checks SET last_heartbeat_at = $2, current_failure_count = 0 WHERE id::text = $1;
"""


def _enum_or_raw(enum_type: Type[Enum], value: Any) -> Any:
    if value is None:
        return None
    try:
        return enum_type(value)
    except ValueError:
        return value


def _json_value(value: Any) -> Any:
    # json/jsonb columns arrive as text unless a type codec is registered
    if isinstance(value, str):
        return json.loads(value)
    return value


def _number(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return float(value)
    return value


def _id(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _whole_milliseconds(value: Optional[float]) -> Optional[int]:
    # check_results.response_time_ms is an INTEGER column
    return None if value is None else int(round(value))


def _time_text(value: Any) -> Optional[str]:
    # quiet hours are TIME columns; the evaluator works on "HH:MM[:SS]" text
    if value is None or isinstance(value, str):
        return value
    return value.strftime("%H:%M:%S")


def map_check_definition(record: Record) -> CheckDefinition:
    """
    Converts a monitoring_checks row joined with its resource to a CheckDefinition.

    Args:
        record: A row of FETCH_ENABLED_CHECKS_QUERY.

    Returns:
        CheckDefinition: The domain definition.
    """
    return CheckDefinition(
        id=str(record["id"]),
        resource_id=str(record["resource_id"]),
        check_type=_enum_or_raw(CheckType, record["check_type"]),
        resource_name=record.get("resource_name") or "Unknown Resource",
        resource_type=record.get("resource_type") or "unknown",
        url=record.get("url"),
        ip_address=record.get("ip_address"),
        port=record.get("port"),
        expected_status_code=record.get("expected_status_code"),
        http_method=(record.get("http_method") or "GET").upper(),
        http_auth_type=_enum_or_raw(HttpAuthType, record.get("http_auth_type")),
        http_auth_credentials=_json_value(record.get("http_auth_credentials")),
        custom_headers=_json_value(record.get("custom_headers")),
        keyword_value=record.get("keyword_value"),
        keyword_match_mode=_enum_or_raw(KeywordMatchMode, record.get("keyword_type")),
        timeout_seconds=record.get("timeout_seconds") or 30,
        retry_config=RetryConfig(
            max_retries=record.get("retry_count"),
            retry_delay_ms=record.get("retry_delay_ms"),
            confirmation_delay_ms=record.get("confirmation_delay_ms"),
        ),
        failure_threshold=record.get("failure_threshold") or 1,
        current_failure_count=record.get("current_failure_count") or 0,
        heartbeat_interval_seconds=record.get("heartbeat_interval_seconds"),
        last_heartbeat_at=record.get("last_heartbeat_at"),
        azure_resource_id=_id(record.get("linked_azure_resource_id")),
        azure_metric_name=record.get("azure_metric_name"),
        azure_metric_namespace=record.get("azure_metric_namespace"),
        timeframe_minutes=record.get("timeframe_minutes"),
        aggregation=_enum_or_raw(Aggregation, record.get("aggregation_type")),
        metric_comparison_operator=_enum_or_raw(
            ComparisonOperator, record.get("metric_comparison_operator")
        ),
        metric_threshold_value=_number(record.get("metric_threshold_value")),
        enabled=record.get("is_enabled", True),
    )


def map_alert_rule(record: Record) -> AlertRule:
    """
    Converts an alert_rules row to an AlertRule, including its quiet hours.
    """
    return AlertRule(
        id=str(record["id"]),
        rule_type=_enum_or_raw(RuleType, record["rule_type"]),
        comparison_operator=_enum_or_raw(ComparisonOperator, record["comparison_operator"]),
        threshold_value=_number(record["threshold_value"]),
        resource_id=_id(record.get("resource_id")),
        resource_type=record.get("resource_type"),
        is_template=bool(record.get("is_template")),
        enabled=record.get("is_enabled", True),
        quiet_hours=QuietHours(
            enabled=bool(record.get("quiet_hours_enabled")),
            start=_time_text(record.get("quiet_hours_start")),
            end=_time_text(record.get("quiet_hours_end")),
            days=frozenset(record.get("quiet_hours_days") or ()),
            timezone=record.get("quiet_hours_timezone"),
        ),
    )


def map_channel(record: Record) -> NotificationChannel:
    return NotificationChannel(
        channel_type=record["channel_type"],
        configuration=_json_value(record["configuration"]) or {},
    )


def map_metric_sample(record: Record) -> MetricSample:
    return MetricSample(
        average=_number(record["average"]),
        minimum=_number(record["minimum"]),
        maximum=_number(record["maximum"]),
        total=_number(record["total"]),
    )


def map_azure_resource(record: Record) -> AzureResourceSnapshot:
    return AzureResourceSnapshot(
        synced_at=record["synced_at"],
        optimization_score=_number(record["optimization_score"]),
    )


class PostgresCheckStorage(CheckStorage):
    """
    A PostgreSQL-based implementation of the CheckStorage interface.

    Every operation acquires its own connection from the pool, so the storage
    can be shared by all executor tasks of an invocation.
    """

    def __init__(self, pool: Pool) -> None:
        """
        Initializes a new PostgresCheckStorage instance.

        Args:
            pool: A connection pool to the PostgreSQL database.
        """
        self._pool: Pool = pool

    async def fetch_enabled_checks(
        self, check_id: Optional[str] = None, resource_id: Optional[str] = None
    ) -> List[CheckDefinition]:
        async with self._pool.acquire() as conn:
            records = await conn.fetch(FETCH_ENABLED_CHECKS_QUERY, check_id, resource_id)
        return [map_check_definition(record) for record in records]

    async def increment_failure_count(self, check_id: str) -> int:
        async with self._pool.acquire() as conn:
            count = await conn.fetchval(INCREMENT_FAILURE_COUNT_QUERY, check_id)
        if count is None:
            logger.warning(f"Check {check_id} no longer exists, failure count not updated")
            return 0
        return count

    async def reset_failure_count(self, check_id: str) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(RESET_FAILURE_COUNT_QUERY, check_id)

    async def is_in_maintenance_window(self, resource_id: str, now: datetime) -> bool:
        async with self._pool.acquire() as conn:
            return bool(await conn.fetchval(IN_MAINTENANCE_QUERY, resource_id, now))

    async def fetch_direct_rules(self, resource_id: str) -> List[AlertRule]:
        async with self._pool.acquire() as conn:
            records = await conn.fetch(FETCH_DIRECT_RULES_QUERY, resource_id)
        return [map_alert_rule(record) for record in records]

    async def fetch_template_rules(self, resource_type: str) -> List[AlertRule]:
        async with self._pool.acquire() as conn:
            records = await conn.fetch(FETCH_TEMPLATE_RULES_QUERY, resource_type)
        return [map_alert_rule(record) for record in records]

    async def fetch_excluded_rule_ids(self, resource_id: str, rule_ids: Iterable[str]) -> Set[str]:
        ids = list(rule_ids)
        if not ids:
            return set()
        async with self._pool.acquire() as conn:
            records = await conn.fetch(FETCH_EXCLUDED_RULE_IDS_QUERY, resource_id, ids)
        return {record["alert_rule_id"] for record in records}

    async def insert_check_result(self, result: CheckResult) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                INSERT_CHECK_RESULT_QUERY,
                result.check_id,
                value_of(result.status),
                _whole_milliseconds(result.response_time_ms),
                result.status_code,
                result.ssl_expiry_date,
                result.ssl_days_remaining,
                result.error_message,
            )

    async def update_resource_status(
        self, resource_id: str, status: ResourceStatus, checked_at: datetime
    ) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(UPDATE_RESOURCE_STATUS_QUERY, resource_id, value_of(status), checked_at)

    async def insert_alert(self, alert: Alert) -> StoredAlert:
        async with self._pool.acquire() as conn:
            alert_id = await conn.fetchval(
                INSERT_ALERT_QUERY,
                alert.resource_id,
                value_of(alert.severity),
                alert.message,
                alert.triggering_rule_id,
                alert.notification_suppressed,
                alert.suppression_reason,
            )
        return StoredAlert(id=alert_id, alert=alert)

    async def fetch_rule_channels(self, rule_ids: Iterable[str]) -> List[NotificationChannel]:
        ids = list(rule_ids)
        if not ids:
            return []
        async with self._pool.acquire() as conn:
            records = await conn.fetch(FETCH_RULE_CHANNELS_QUERY, ids)
        return [map_channel(record) for record in records]

    async def fetch_global_channels(self) -> List[NotificationChannel]:
        async with self._pool.acquire() as conn:
            records = await conn.fetch(FETCH_GLOBAL_CHANNELS_QUERY)
        return [map_channel(record) for record in records]

    async def fetch_metric_samples(
        self, azure_resource_id: str, metric_name: str, since: datetime
    ) -> List[MetricSample]:
        async with self._pool.acquire() as conn:
            records = await conn.fetch(FETCH_METRIC_SAMPLES_QUERY, azure_resource_id, metric_name, since)
        return [map_metric_sample(record) for record in records]

    async def fetch_azure_resource(self, azure_resource_id: str) -> Optional[AzureResourceSnapshot]:
        async with self._pool.acquire() as conn:
            record = await conn.fetchrow(FETCH_AZURE_RESOURCE_QUERY, azure_resource_id)
        return map_azure_resource(record) if record is not None else None

    async def record_heartbeat(self, token: str, received_at: datetime) -> Optional[str]:
        """
        Records a heartbeat for the enabled heartbeat check owning the token.

        The check's last heartbeat is set and its failure streak reset; a
        success result is recorded and the resource is marked up, all in one
        transaction.

        Args:
            token: The heartbeat token sent by the monitored job.
            received_at: When the heartbeat was received.

        Returns:
            Optional[str]: The id of the updated check, or None if the token is
                unknown or the check is disabled.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                record = await conn.fetchrow(FIND_HEARTBEAT_CHECK_QUERY, token)
                if record is None:
                    logger.warning("Heartbeat token not found")
                    return None
                if not record["is_enabled"]:
                    logger.info(f"Heartbeat check {record['id']} is disabled")
                    return None

                check_id = record["id"]
                await conn.execute(RECORD_HEARTBEAT_QUERY, check_id, received_at)
                await conn.execute(
                    INSERT_CHECK_RESULT_QUERY,
                    check_id,
                    CheckStatus.SUCCESS.value,
                    0,
                    None,
                    None,
                    None,
                    None,
                )
                await conn.execute(
                    UPDATE_RESOURCE_STATUS_QUERY,
                    record["resource_id"],
                    ResourceStatus.UP.value,
                    received_at,
                )

        logger.info(f"Heartbeat recorded for check {check_id}")
        return check_id
