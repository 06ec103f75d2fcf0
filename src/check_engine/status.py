"""
Resource status aggregation.

A resource's status is derived from the final results of all its checks in
one invocation, never from a partial set.
"""

from collections import OrderedDict
from typing import Dict, Iterable, List, Sequence, Tuple

from .domain import CheckDefinition, CheckResult, CheckStatus, ResourceStatus


def aggregate(results: Sequence[CheckResult]) -> ResourceStatus:
    """
    Reduces the final results of a resource's checks into one status.

    Rules, evaluated in order:
    - no results: unknown
    - every result failed: down
    - any failure or warning: degraded
    - otherwise: up

    Args:
        results: The final results of the checks of one resource.

    Returns:
        ResourceStatus: The aggregated status.
    """
    if not results:
        return ResourceStatus.UNKNOWN

    failures = sum(1 for r in results if r.status == CheckStatus.FAILURE)
    warnings = sum(1 for r in results if r.status == CheckStatus.WARNING)

    if failures == len(results):
        return ResourceStatus.DOWN
    if failures > 0 or warnings > 0:
        return ResourceStatus.DEGRADED
    return ResourceStatus.UP


def group_by_resource(
    pairs: Iterable[Tuple[CheckDefinition, CheckResult]],
) -> Dict[str, List[CheckResult]]:
    """
    Groups final results by the resource their check belongs to.

    Args:
        pairs: (definition, final result) pairs of one invocation.

    Returns:
        Dict[str, List[CheckResult]]: Results keyed by resource id, in first-seen order.
    """
    grouped: Dict[str, List[CheckResult]] = OrderedDict()
    for definition, result in pairs:
        grouped.setdefault(definition.resource_id, []).append(result)
    return grouped
