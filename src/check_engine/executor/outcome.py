"""
Helpers shared by the probe implementations to build results.
"""

import asyncio
from typing import Optional

from check_engine.domain import CheckDefinition, CheckResult, CheckStatus


def failure_result(
    definition: CheckDefinition,
    error_message: str,
    response_time_ms: Optional[float] = None,
    status_code: Optional[int] = None,
) -> CheckResult:
    return CheckResult(
        check_id=definition.id,
        status=CheckStatus.FAILURE,
        response_time_ms=response_time_ms,
        status_code=status_code,
        error_message=error_message,
    )


def describe_error(error: BaseException, timeout_seconds: float) -> str:
    """
    Turns an exception raised by a probe into a human-readable diagnostic.

    Timeouts carry no message of their own, so they are described from the
    configured timeout instead.

    Args:
        error: The exception raised during the attempt.
        timeout_seconds: The timeout that was in force.

    Returns:
        str: A non-empty description of the error.
    """
    if isinstance(error, asyncio.TimeoutError):
        return f"Request timed out after {timeout_seconds}s"
    message = str(error)
    return message if message else type(error).__name__


def elapsed_ms(start: float, end: float) -> int:
    return int((end - start) * 1000)
