"""
Domain models for the check execution engine.

This module defines the core data structures used throughout the engine,
including check definitions, probe results, alert rules, alerts, and the
summary returned by an invocation. These models serve as the foundation for
the engine's data flow and mirror the columns of the backing tables.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, NamedTuple, Optional


class CheckType(str, Enum):
    """
    Defines the supported probe kinds as a type-safe enumeration.

    Inheriting from 'str' allows enum members to behave like strings,
    making them directly comparable with the values stored in the database.
    """

    HTTP = "http"
    KEYWORD = "keyword"
    SSL = "ssl"
    PORT = "port"
    PING = "ping"
    HEARTBEAT = "heartbeat"
    AZURE_METRIC = "azure_metric"
    AZURE_HEALTH = "azure_health"


class CheckStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    WARNING = "warning"


class ResourceStatus(str, Enum):
    UP = "up"
    DEGRADED = "degraded"
    DOWN = "down"
    UNKNOWN = "unknown"


class ComparisonOperator(str, Enum):
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    EQ = "eq"
    NEQ = "neq"


class Aggregation(str, Enum):
    AVERAGE = "average"
    MAX = "max"
    MIN = "min"
    TOTAL = "total"


class KeywordMatchMode(str, Enum):
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"


class HttpAuthType(str, Enum):
    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class RuleType(str, Enum):
    """
    Alert rule kinds known to the platform.

    Only the first four are evaluated against check results; the Azure
    variants belong to the Azure cost and metric pipeline and are carried
    here so that rules read from storage always map to a known member.
    """

    DOWNTIME = "downtime"
    SSL_EXPIRY = "ssl_expiry"
    RESPONSE_TIME = "response_time"
    CONSECUTIVE_FAILURES = "consecutive_failures"
    AZURE_COST_THRESHOLD = "azure_cost_threshold"
    AZURE_COST_ANOMALY = "azure_cost_anomaly"
    AZURE_CPU_USAGE = "azure_cpu_usage"
    AZURE_MEMORY_USAGE = "azure_memory_usage"
    AZURE_DTU_USAGE = "azure_dtu_usage"
    AZURE_STORAGE_USAGE = "azure_storage_usage"
    AZURE_NETWORK_IN = "azure_network_in"
    AZURE_NETWORK_OUT = "azure_network_out"
    AZURE_HTTP_ERRORS = "azure_http_errors"
    AZURE_RESPONSE_TIME = "azure_response_time"
    AZURE_REQUESTS = "azure_requests"
    AZURE_DISK_READ = "azure_disk_read"
    AZURE_DISK_WRITE = "azure_disk_write"
    AZURE_TRANSACTIONS = "azure_transactions"
    AZURE_AVAILABILITY = "azure_availability"


class RetryConfig(NamedTuple):
    """
    Per-check retry configuration.

    Any attribute may be None, meaning "use the engine default". An explicit
    zero is a real value: max_retries=0 disables retries entirely.

    Attributes:
        max_retries: Number of retries after the initial failing attempt.
        retry_delay_ms: Delay before each retry, in milliseconds.
        confirmation_delay_ms: Delay before the confirmation attempt, in milliseconds.
    """

    max_retries: Optional[int] = None
    retry_delay_ms: Optional[int] = None
    confirmation_delay_ms: Optional[int] = None

    def resolve(self, defaults: "RetryConfig") -> "RetryConfig":
        """
        Fills unset attributes from the given defaults.

        Args:
            defaults: A fully populated configuration used as fallback.

        Returns:
            RetryConfig: A configuration with no None attributes.
        """
        return RetryConfig(
            max_retries=self.max_retries if self.max_retries is not None else defaults.max_retries,
            retry_delay_ms=(
                self.retry_delay_ms if self.retry_delay_ms is not None else defaults.retry_delay_ms
            ),
            confirmation_delay_ms=(
                self.confirmation_delay_ms
                if self.confirmation_delay_ms is not None
                else defaults.confirmation_delay_ms
            ),
        )


class CheckDefinition(NamedTuple):
    """
    Represents a single configured probe against a resource.

    This data structure corresponds to a row of the 'monitoring_checks' table
    joined with its owning resource. Only the fields relevant to check_type
    are consulted by the executor; the others are ignored.

    Attributes:
        id: The unique identifier of the check.
        resource_id: The resource this check belongs to.
        check_type: The probe kind.
        resource_name: Display name of the owning resource.
        resource_type: Type of the owning resource, used to match template rules.
        url: Target URL for http, keyword and ssl checks.
        ip_address: Target host for port and ping checks.
        port: Target port for port and ping checks.
        expected_status_code: Expected HTTP status (defaults to 200 when unset).
        http_method: HTTP method (defaults to GET when unset).
        http_auth_type: Authentication scheme for HTTP requests.
        http_auth_credentials: username/password or token, depending on the scheme.
        custom_headers: Extra HTTP headers.
        keyword_value: Keyword searched in the response body.
        keyword_match_mode: Whether the keyword must or must not be present.
        timeout_seconds: Client-side timeout for a single network attempt.
        retry_config: Per-check retry configuration.
        failure_threshold: Consecutive failures required before the fallback alert.
        current_failure_count: Persisted consecutive-failure streak.
        heartbeat_interval_seconds: Expected heartbeat interval.
        last_heartbeat_at: When the last heartbeat was received.
        azure_resource_id: Linked Azure resource, for azure checks.
        azure_metric_name: Metric evaluated by azure_metric checks.
        azure_metric_namespace: Namespace of the metric.
        timeframe_minutes: Window of samples considered by azure_metric checks.
        aggregation: Reduction applied to the samples.
        metric_comparison_operator: Operator used to detect a breach.
        metric_threshold_value: Threshold used to detect a breach.
        enabled: Whether the check is enabled.
    """

    id: str
    resource_id: str
    check_type: CheckType
    resource_name: str = "Unknown Resource"
    resource_type: str = "unknown"
    url: Optional[str] = None
    ip_address: Optional[str] = None
    port: Optional[int] = None
    expected_status_code: Optional[int] = None
    http_method: Optional[str] = None
    http_auth_type: Optional[HttpAuthType] = None
    http_auth_credentials: Optional[Dict[str, Any]] = None
    custom_headers: Optional[Dict[str, str]] = None
    keyword_value: Optional[str] = None
    keyword_match_mode: Optional[KeywordMatchMode] = None
    timeout_seconds: int = 30
    retry_config: RetryConfig = RetryConfig()
    failure_threshold: int = 1
    current_failure_count: int = 0
    heartbeat_interval_seconds: Optional[int] = None
    last_heartbeat_at: Optional[datetime] = None
    azure_resource_id: Optional[str] = None
    azure_metric_name: Optional[str] = None
    azure_metric_namespace: Optional[str] = None
    timeframe_minutes: Optional[int] = None
    aggregation: Optional[Aggregation] = None
    metric_comparison_operator: Optional[ComparisonOperator] = None
    metric_threshold_value: Optional[float] = None
    enabled: bool = True


class CheckResult(NamedTuple):
    """
    The outcome of a single probe attempt, or of a full retry cycle.

    Attributes:
        check_id: The check that produced this result.
        status: success, failure or warning.
        response_time_ms: Elapsed milliseconds for network probes; for heartbeat
            checks the time since the last heartbeat, for azure_metric checks the
            aggregated metric value, for azure_health checks the optimization score.
        status_code: The HTTP status code received, if any.
        ssl_expiry_date: Reserved, always None.
        ssl_days_remaining: Reserved, always None.
        error_message: Human-readable diagnostic, or None.
    """

    check_id: str
    status: CheckStatus
    response_time_ms: Optional[float] = None
    status_code: Optional[int] = None
    ssl_expiry_date: Optional[datetime] = None
    ssl_days_remaining: Optional[int] = None
    error_message: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status == CheckStatus.SUCCESS

    @property
    def is_failure(self) -> bool:
        return self.status == CheckStatus.FAILURE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "check_id": self.check_id,
            "status": CheckStatus(self.status).value,
            "response_time_ms": self.response_time_ms,
            "status_code": self.status_code,
            "ssl_expiry_date": self.ssl_expiry_date.isoformat() if self.ssl_expiry_date else None,
            "ssl_days_remaining": self.ssl_days_remaining,
            "error_message": self.error_message,
        }


class QuietHours(NamedTuple):
    """
    A suppression window attached to an alert rule.

    Attributes:
        enabled: Whether the window is active at all.
        start: Local start time, "HH:MM" or "HH:MM:SS".
        end: Local end time; an end before the start spans midnight.
        days: Lower-case weekday names the window applies to; empty means every day.
        timezone: IANA timezone name the times are expressed in.
    """

    enabled: bool = False
    start: Optional[str] = None
    end: Optional[str] = None
    days: FrozenSet[str] = frozenset()
    timezone: Optional[str] = None


class AlertRule(NamedTuple):
    """
    A direct rule bound to one resource, or a template bound to a resource type.

    Attributes:
        id: The unique identifier of the rule.
        rule_type: What the rule measures.
        comparison_operator: Operator applied between the measured value and the threshold.
        threshold_value: The threshold.
        resource_id: The resource of a direct rule.
        resource_type: The resource type of a template rule.
        is_template: Whether this is a template rule.
        enabled: Whether the rule is enabled.
        quiet_hours: Notification suppression window.
    """

    id: str
    rule_type: RuleType
    comparison_operator: ComparisonOperator
    threshold_value: float
    resource_id: Optional[str] = None
    resource_type: Optional[str] = None
    is_template: bool = False
    enabled: bool = True
    quiet_hours: QuietHours = QuietHours()


class SuppressionDecision(NamedTuple):
    suppressed: bool
    reason: Optional[str] = None


class Alert(NamedTuple):
    """
    One notification-worthy event produced by the engine.

    Attributes:
        resource_id: The resource the alert is about.
        severity: Always critical in the current scope.
        message: Rendered alert message.
        triggering_rule_id: The rule that fired, or None for a fallback threshold alert.
        notification_suppressed: Whether notifications are suppressed by quiet hours.
        suppression_reason: Why notifications are suppressed, if they are.
    """

    resource_id: str
    severity: Severity
    message: str
    triggering_rule_id: Optional[str] = None
    notification_suppressed: bool = False
    suppression_reason: Optional[str] = None


class StoredAlert(NamedTuple):
    id: str
    alert: Alert


class MetricSample(NamedTuple):
    average: Optional[float] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    total: Optional[float] = None


class AzureResourceSnapshot(NamedTuple):
    synced_at: Optional[datetime]
    optimization_score: Optional[float] = None


class NotificationChannel(NamedTuple):
    channel_type: str
    configuration: Dict[str, Any]


class AlertNotification(NamedTuple):
    """
    The structured payload handed to the notification dispatcher.
    """

    title: str
    message: str
    severity: Severity
    resource_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "message": self.message,
            "severity": Severity(self.severity).value,
            "resourceName": self.resource_name,
        }


class SkippedCheck(NamedTuple):
    check_id: str
    reason: str


class InvocationSummary(NamedTuple):
    """
    The outcome of one engine invocation.

    Besides the per-status counts, the summary carries counters for every
    best-effort step so that partial failures are never reported as success.

    Attributes:
        total_checks: Number of checks executed (skipped ones excluded).
        skipped_checks: Number of checks skipped.
        successful: Number of final results with status success.
        warnings: Number of final results with status warning.
        failures: Number of final results with status failure.
        alerts_created: Number of alerts produced by rule evaluation and fallback.
        notifications_suppressed: Number of produced alerts suppressed by quiet hours.
        results: The final result of every executed check.
        skipped: The skipped checks and why.
        results_persisted: Results successfully written to storage.
        result_persist_failures: Results that could not be written.
        status_update_failures: Resources whose status could not be written.
        failure_count_errors: Checks whose failure streak could not be updated.
        alerts_persisted: Alerts successfully written to storage.
        alert_persist_failures: Alerts that could not be written.
        notifications_sent: Channel deliveries that succeeded.
        notification_failures: Channel deliveries that failed.
    """

    total_checks: int
    skipped_checks: int
    successful: int
    warnings: int
    failures: int
    alerts_created: int
    notifications_suppressed: int
    results: List[CheckResult]
    skipped: List[SkippedCheck]
    results_persisted: int = 0
    result_persist_failures: int = 0
    status_update_failures: int = 0
    failure_count_errors: int = 0
    alerts_persisted: int = 0
    alert_persist_failures: int = 0
    notifications_sent: int = 0
    notification_failures: int = 0

    @property
    def has_partial_failures(self) -> bool:
        return any(
            (
                self.result_persist_failures,
                self.status_update_failures,
                self.failure_count_errors,
                self.alert_persist_failures,
                self.notification_failures,
            )
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_checks": self.total_checks,
            "skipped_checks": self.skipped_checks,
            "successful": self.successful,
            "warnings": self.warnings,
            "failures": self.failures,
            "alerts_created": self.alerts_created,
            "notifications_suppressed": self.notifications_suppressed,
            "results_persisted": self.results_persisted,
            "result_persist_failures": self.result_persist_failures,
            "status_update_failures": self.status_update_failures,
            "failure_count_errors": self.failure_count_errors,
            "alerts_persisted": self.alerts_persisted,
            "alert_persist_failures": self.alert_persist_failures,
            "notifications_sent": self.notifications_sent,
            "notification_failures": self.notification_failures,
            "partial_failure": self.has_partial_failures,
            "results": [result.to_dict() for result in self.results],
            "skipped": [{"check_id": s.check_id, "reason": s.reason} for s in self.skipped],
        }


def value_of(member: Any) -> Any:
    """Returns the raw value of an enum member, or the argument itself."""
    return getattr(member, "value", member)
