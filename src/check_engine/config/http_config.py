"""
HTTP client configuration module for the check execution engine.
"""

import logging

import aiohttp

from check_engine.config import EngineContext

# Module logger
logger = logging.getLogger(__name__)


def get_http_session(context: EngineContext) -> aiohttp.ClientSession:
    """
    Create the HTTP client session shared by the probes and the notification dispatcher.

    Per-request timeouts are set by each caller, so the session itself has no
    total timeout. The connection limit follows the number of concurrent checks.

    Args:
        context: Configuration context of the invocation.

    Returns:
        aiohttp.ClientSession: The shared HTTP client session.
    """
    connector = aiohttp.TCPConnector(limit=max(context.worker_number, 1) * 2)
    logger.debug(f"HTTP session created for worker {context.worker_id}")
    return aiohttp.ClientSession(connector=connector, timeout=aiohttp.ClientTimeout(total=None))
