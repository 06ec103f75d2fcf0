"""
Alert rule evaluation.

Rules apply to a resource either directly or as templates for its resource
type. A fired rule produces an alert whose notifications may be suppressed by
the rule's quiet hours; a failing check that reached its failure threshold
without firing any rule produces a fallback alert.
"""

import logging
from typing import List

from check_engine.comparison import compare_values, format_number
from check_engine.contracts import CheckStorage
from check_engine.domain import (
    Alert,
    AlertRule,
    CheckDefinition,
    CheckResult,
    CheckStatus,
    RuleType,
    Severity,
    SuppressionDecision,
    value_of,
)

# Module logger
logger = logging.getLogger(__name__)

ALERT_SEVERITY = Severity.CRITICAL


def evaluate(rule: AlertRule, result: CheckResult, consecutive_failures: int) -> bool:
    """
    Tells whether a rule fires for a final check result.

    Args:
        rule: The rule to evaluate.
        result: The final result of the check cycle.
        consecutive_failures: The failure streak after this cycle.

    Returns:
        bool: True if the rule fires.
    """
    operator = value_of(rule.comparison_operator)
    rule_type = value_of(rule.rule_type)

    if rule_type == RuleType.CONSECUTIVE_FAILURES:
        return compare_values(consecutive_failures, operator, rule.threshold_value)

    if rule_type == RuleType.RESPONSE_TIME:
        if result.response_time_ms is None:
            return False
        return compare_values(result.response_time_ms, operator, rule.threshold_value)

    if rule_type == RuleType.SSL_EXPIRY:
        if result.ssl_days_remaining is None:
            return False
        return compare_values(result.ssl_days_remaining, operator, rule.threshold_value)

    if rule_type == RuleType.DOWNTIME:
        downtime_percent = 100 if result.status == CheckStatus.FAILURE else 0
        return compare_values(downtime_percent, operator, rule.threshold_value)

    logger.debug(f"Rule {rule.id} of type '{rule_type}' is not evaluated against check results")
    return False


def render_message(
    rule: AlertRule, definition: CheckDefinition, result: CheckResult, consecutive_failures: int
) -> str:
    rule_type = value_of(rule.rule_type)
    threshold = format_number(rule.threshold_value)

    if rule_type == RuleType.CONSECUTIVE_FAILURES:
        return f"Check failed {consecutive_failures} consecutive time(s) (threshold: {threshold})"
    if rule_type == RuleType.RESPONSE_TIME:
        return (
            f"Response time {format_number(result.response_time_ms)}ms "
            f"exceeded threshold {threshold}ms"
        )
    if rule_type == RuleType.SSL_EXPIRY:
        return (
            f"SSL certificate expires in {result.ssl_days_remaining} days "
            f"(threshold: {threshold} days)"
        )
    check_type = value_of(definition.check_type).upper()
    return f"{check_type} check alert: {result.error_message or 'Threshold exceeded'}"


def rule_alert(
    rule: AlertRule,
    definition: CheckDefinition,
    result: CheckResult,
    consecutive_failures: int,
    decision: SuppressionDecision,
) -> Alert:
    """
    Builds the alert of a fired rule, carrying its quiet-hours decision.
    """
    return Alert(
        resource_id=definition.resource_id,
        severity=ALERT_SEVERITY,
        message=render_message(rule, definition, result, consecutive_failures),
        triggering_rule_id=rule.id,
        notification_suppressed=decision.suppressed,
        suppression_reason=decision.reason,
    )


def fallback_alert(definition: CheckDefinition, result: CheckResult) -> Alert:
    """
    Builds the alert raised when a check reached its failure threshold but no rule fired.

    Fallback alerts reference no rule and are never suppressed.
    """
    check_type = value_of(definition.check_type).upper()
    return Alert(
        resource_id=definition.resource_id,
        severity=ALERT_SEVERITY,
        message=f"{check_type} check failed: {result.error_message or 'Unknown error'}",
    )


async def resolve_applicable_rules(
    storage: CheckStorage, resource_id: str, resource_type: str
) -> List[AlertRule]:
    """
    Resolves the enabled rules that apply to a resource.

    The applicable set is the enabled rules bound to the resource, followed by
    the enabled templates of its resource type that are not excluded for it.
    A storage error on either lookup is logged and that part is treated as empty.

    Args:
        storage: The storage holding rules and exclusions.
        resource_id: The resource to resolve rules for.
        resource_type: The type of that resource.

    Returns:
        List[AlertRule]: Direct rules first, then the applicable templates.
    """
    try:
        direct_rules = await storage.fetch_direct_rules(resource_id)
    except Exception as e:
        logger.error(f"Error fetching direct rules for resource {resource_id}: {e!r}")
        direct_rules = []

    try:
        template_rules = await storage.fetch_template_rules(resource_type)
    except Exception as e:
        logger.error(f"Error fetching template rules for type '{resource_type}': {e!r}")
        template_rules = []

    excluded = set()
    if template_rules:
        try:
            excluded = await storage.fetch_excluded_rule_ids(
                resource_id, [rule.id for rule in template_rules]
            )
        except Exception as e:
            logger.error(f"Error fetching rule exclusions for resource {resource_id}: {e!r}")

    applicable = [rule for rule in direct_rules if rule.enabled]
    applicable.extend(rule for rule in template_rules if rule.enabled and rule.id not in excluded)
    return applicable
