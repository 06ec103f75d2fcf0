"""
Threshold comparison shared by metric checks and alert rules.
"""

from typing import Dict

from .domain import ComparisonOperator

OPERATOR_SYMBOLS: Dict[str, str] = {
    ComparisonOperator.GT.value: ">",
    ComparisonOperator.GTE.value: "≥",
    ComparisonOperator.LT.value: "<",
    ComparisonOperator.LTE.value: "≤",
    ComparisonOperator.EQ.value: "=",
    ComparisonOperator.NEQ.value: "≠",
}


def compare_values(actual: float, operator: str, threshold: float) -> bool:
    """
    Compares a measured value against a threshold.

    Args:
        actual: The measured value.
        operator: One of the ComparisonOperator values.
        threshold: The threshold to compare against.

    Returns:
        bool: The result of 'actual <operator> threshold'; False for an unknown operator.
    """
    if operator == ComparisonOperator.GT:
        return actual > threshold
    if operator == ComparisonOperator.GTE:
        return actual >= threshold
    if operator == ComparisonOperator.LT:
        return actual < threshold
    if operator == ComparisonOperator.LTE:
        return actual <= threshold
    if operator == ComparisonOperator.EQ:
        return actual == threshold
    if operator == ComparisonOperator.NEQ:
        return actual != threshold
    return False


def operator_symbol(operator: str) -> str:
    return OPERATOR_SYMBOLS.get(str(getattr(operator, "value", operator)), str(operator))


def format_number(value: float) -> str:
    """Renders a number without a trailing '.0' when it is integral."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
