"""
TCP reachability probes for port and ping checks.

A ping check is approximated by a TCP connect (port 80 unless configured):
ICMP needs raw sockets and elevated privileges, which a batch worker does not
have. Both probes succeed iff the connection opens within the check timeout.
"""

import asyncio
import logging
import time
from datetime import datetime

from check_engine.contracts import CheckExecutor
from check_engine.domain import CheckDefinition, CheckResult, CheckStatus, CheckType, value_of
from check_engine.executor.outcome import describe_error, elapsed_ms, failure_result

# Module logger
logger = logging.getLogger(__name__)

DEFAULT_PING_PORT = 80


class TcpConnectProbe(CheckExecutor):
    """
    Opens and immediately closes a TCP connection to (ip_address, port).
    """

    async def execute(self, definition: CheckDefinition, now: datetime) -> CheckResult:
        host = definition.ip_address
        port = definition.port
        if definition.check_type == CheckType.PING:
            port = port or DEFAULT_PING_PORT

        if not host:
            return failure_result(
                definition, f"No IP address configured for {value_of(definition.check_type)} check"
            )
        if not port:
            return failure_result(definition, "No port configured for port check")

        start_time = time.monotonic()
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=definition.timeout_seconds
            )
        except Exception as e:
            logger.debug(f"TCP connect to {host}:{port} failed for check {definition.id}: {e!r}")
            return failure_result(
                definition,
                describe_error(e, definition.timeout_seconds),
                response_time_ms=elapsed_ms(start_time, time.monotonic()),
            )

        response_time_ms = elapsed_ms(start_time, time.monotonic())
        writer.close()
        try:
            await writer.wait_closed()
        except Exception as e:
            # The connection was established, which is all this probe asserts.
            logger.debug(f"Error closing connection to {host}:{port}: {e!r}")

        return CheckResult(
            check_id=definition.id,
            status=CheckStatus.SUCCESS,
            response_time_ms=response_time_ms,
        )
