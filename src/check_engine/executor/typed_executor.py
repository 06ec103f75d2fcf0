"""
Check executor dispatching on the check type.

This module provides the composite CheckExecutor used by the engine: it holds
one probe per check type and delegates each attempt to the matching probe.
It guarantees the executor contract: whatever a probe does, the caller always
receives a result and never an exception.
"""

import logging
from datetime import datetime
from typing import Dict

import aiohttp

from check_engine.contracts import CheckExecutor, CheckStorage
from check_engine.domain import CheckDefinition, CheckResult, CheckType, value_of
from check_engine.executor.aiohttp_probes import HttpProbe, KeywordProbe, SslProbe
from check_engine.executor.azure_probes import AzureHealthProbe, AzureMetricProbe
from check_engine.executor.heartbeat_probe import HeartbeatProbe
from check_engine.executor.outcome import failure_result
from check_engine.executor.tcp_probe import TcpConnectProbe

# Module logger
logger = logging.getLogger(__name__)


class TypedCheckExecutor(CheckExecutor):
    """
    A CheckExecutor that follows the Composite pattern.

    Each check type is mapped to the probe that knows how to execute it. An
    unmapped type produces a failure result instead of an error.
    """

    def __init__(self, probes: Dict[str, CheckExecutor]) -> None:
        """
        Initializes the executor with the probes to delegate to.

        Args:
            probes: Probes keyed by check type value.
        """
        self._probes: Dict[str, CheckExecutor] = {
            value_of(check_type): probe for check_type, probe in probes.items()
        }

    async def execute(self, definition: CheckDefinition, now: datetime) -> CheckResult:
        check_type = value_of(definition.check_type)
        probe = self._probes.get(check_type)
        if probe is None:
            return failure_result(definition, f"Unknown check type: {check_type}")

        try:
            return await probe.execute(definition, now)
        except Exception as e:
            logger.exception(f"Probe '{type(probe).__name__}' raised for check {definition.id}")
            return failure_result(definition, str(e) or f"{check_type} check failed")


def build_default_executor(
    session: aiohttp.ClientSession, storage: CheckStorage
) -> TypedCheckExecutor:
    """
    Wires the standard probe for every supported check type.

    Args:
        session: The shared HTTP session used by the HTTP-based probes.
        storage: The storage read by the Azure probes.

    Returns:
        TypedCheckExecutor: An executor covering every CheckType.
    """
    tcp_probe = TcpConnectProbe()
    return TypedCheckExecutor(
        {
            CheckType.HTTP: HttpProbe(session),
            CheckType.KEYWORD: KeywordProbe(session),
            CheckType.SSL: SslProbe(session),
            CheckType.PORT: tcp_probe,
            CheckType.PING: tcp_probe,
            CheckType.HEARTBEAT: HeartbeatProbe(),
            CheckType.AZURE_METRIC: AzureMetricProbe(storage),
            CheckType.AZURE_HEALTH: AzureHealthProbe(storage),
        }
    )
