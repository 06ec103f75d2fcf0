"""
Main entry point for the check execution engine.

Each run is one scheduled invocation: it sets up logging, creates the database
pool and the HTTP session, wires the engine components, runs every enabled
check once and prints the invocation summary as JSON on stdout. Given a
heartbeat token, it records that heartbeat instead and prints the outcome.
"""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, Optional

import aiohttp
import asyncpg

from check_engine.alerting.failure_counter import FailureCounter
from check_engine.config import EngineContext, get_context
from check_engine.config.db_config import initiate_db_pool
from check_engine.config.http_config import get_http_session
from check_engine.config.logging_config import configure_logging
from check_engine.domain import InvocationSummary, RetryConfig
from check_engine.engine import CheckEngine
from check_engine.executor.typed_executor import build_default_executor
from check_engine.notification.fanout import NotificationFanout
from check_engine.notification.http_dispatcher import HttpNotificationDispatcher
from check_engine.retry_controller import RetryController
from check_engine.storage.asyncpg_storage import PostgresCheckStorage


async def main(context: EngineContext) -> Dict[str, Any]:
    """
    Set up the engine, run one invocation and release every resource.

    With a heartbeat token in the context, the heartbeat is recorded and no
    check is executed.

    Args:
        context: Configuration context containing all application settings.

    Returns:
        Dict[str, Any]: The invocation summary, or the heartbeat outcome.
    """
    logger: logging.Logger = logging.getLogger(__name__)
    logger.info("Starting check invocation...")

    http_session: aiohttp.ClientSession = get_http_session(context)
    logger.info("configured: http_session")

    db_pool: Optional[asyncpg.pool.Pool] = None
    try:
        db_pool = await initiate_db_pool(context)
        logger.info("initialized: db_pool")

        storage = PostgresCheckStorage(db_pool)
        if not context.notification_url:
            logger.warning("No notification endpoint configured, alerts will not be delivered")

        engine = CheckEngine(
            storage=storage,
            retry_controller=RetryController(
                build_default_executor(http_session, storage),
                RetryConfig(
                    max_retries=context.retry_count,
                    retry_delay_ms=context.retry_delay_ms,
                    confirmation_delay_ms=context.confirmation_delay_ms,
                ),
            ),
            failure_counter=FailureCounter(storage),
            fanout=NotificationFanout(
                storage,
                HttpNotificationDispatcher(
                    http_session, context.notification_url, context.notification_token
                ),
            ),
            worker_number=context.worker_number,
            cycle_timeout=context.cycle_timeout,
        )

        if context.heartbeat_token:
            check_id = await engine.receive_heartbeat(context.heartbeat_token)
            return {"success": check_id is not None, "check_id": check_id}

        summary: InvocationSummary = await engine.run(
            check_id=context.check_id, resource_id=context.resource_id
        )
        return summary.to_dict()
    finally:
        logger.info("Shutting down resources...")
        await http_session.close()
        if db_pool:
            await db_pool.close()
        logger.info("Shutdown complete.")


if __name__ == "__main__":
    try:
        # Parse command-line arguments and environment variables
        engine_context: EngineContext = get_context()

        # Configure logging based on the context
        configure_logging(engine_context)

        output = asyncio.run(main(engine_context))
        print(json.dumps(output, default=str))
    except KeyboardInterrupt:
        logging.info("Shutdown initiated by user (Ctrl+C).")
    except Exception:
        logging.exception("Check invocation failed")
        sys.exit(1)
