"""
Heartbeat liveness probe.

No network call is made: the probe compares the time elapsed since the last
heartbeat written by the receiver against the expected interval, with a 50%
grace period reported as a warning.
"""

from datetime import datetime
from typing import Optional, Tuple

from check_engine.contracts import CheckExecutor
from check_engine.domain import CheckDefinition, CheckResult, CheckStatus

DEFAULT_HEARTBEAT_INTERVAL_SECONDS = 300
GRACE_FACTOR = 1.5


def evaluate_heartbeat(elapsed_ms: float, interval_seconds: int) -> Tuple[CheckStatus, Optional[str]]:
    """
    Decides the outcome of a heartbeat check from the elapsed time.

    Args:
        elapsed_ms: Milliseconds since the last heartbeat.
        interval_seconds: The expected interval between heartbeats.

    Returns:
        Tuple[CheckStatus, Optional[str]]: The status and diagnostic message.
    """
    expected_ms = interval_seconds * 1000
    elapsed_s = round(elapsed_ms / 1000)

    if elapsed_ms <= expected_ms:
        return CheckStatus.SUCCESS, None
    if elapsed_ms <= expected_ms * GRACE_FACTOR:
        return CheckStatus.WARNING, f"Heartbeat delayed - last received {elapsed_s}s ago"
    return (
        CheckStatus.FAILURE,
        f"Heartbeat missed - last received {elapsed_s}s ago (expected every {interval_seconds}s)",
    )


class HeartbeatProbe(CheckExecutor):
    async def execute(self, definition: CheckDefinition, now: datetime) -> CheckResult:
        if definition.last_heartbeat_at is None:
            return CheckResult(
                check_id=definition.id,
                status=CheckStatus.FAILURE,
                error_message="No heartbeat received yet",
            )

        elapsed_ms = (now - definition.last_heartbeat_at).total_seconds() * 1000
        interval = definition.heartbeat_interval_seconds or DEFAULT_HEARTBEAT_INTERVAL_SECONDS
        status, message = evaluate_heartbeat(elapsed_ms, interval)
        return CheckResult(
            check_id=definition.id,
            status=status,
            response_time_ms=elapsed_ms,
            error_message=message,
        )
