"""
Configuration module for the check execution engine.

This module parses command-line arguments and environment variables to create
the configuration context of one engine invocation. Every option falls back to
a CHECK_ENGINE_* environment variable and then to a default from constants.py.
"""

import argparse
import os
from typing import Any, Optional
from uuid import uuid4

from check_engine.config.constants import (
    DEFAULT_CONFIRMATION_DELAY_MS,
    DEFAULT_CYCLE_TIMEOUT,
    DEFAULT_DB_POOL_SIZE,
    DEFAULT_DSN,
    DEFAULT_LOGGING_CONFIG_FILE,
    DEFAULT_LOGGING_TYPE,
    DEFAULT_NOTIFICATION_TOKEN,
    DEFAULT_NOTIFICATION_URL,
    DEFAULT_RETRY_COUNT,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_WORKER_ID_PREFIX,
    DEFAULT_WORKER_NUMBER,
    ENV_PREFIX,
)
from check_engine.config.engine_context import EngineContext


def _env(name: str, default: Any) -> Any:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def get_context() -> EngineContext:
    """
    Parse command-line arguments and environment variables to create a configuration context.

    For each option, a command-line argument wins, then the CHECK_ENGINE_*
    environment variable, and finally the default value.

    Returns:
        EngineContext: A configuration context object containing all parsed settings.
    """
    parser = argparse.ArgumentParser(
        description="Runs one batch of monitoring checks, evaluates alert rules and sends notifications."
    )

    parser.add_argument(
        "-dsn",
        type=str,
        default=_env("DSN", DEFAULT_DSN),
        help="Specifies the DSN (connection string) for the PostgreSQL database.\n"
        f"If not provided, the value is read from the {ENV_PREFIX}DSN environment variable.\n"
        f"If that is also absent, a default value for a local database is used: {DEFAULT_DSN}",
    )

    parser.add_argument(
        "-wid",
        "--worker-id",
        type=str,
        default=_env("WORKER_ID", f"{DEFAULT_WORKER_ID_PREFIX}{uuid4()}"),
        help="Specifies the identifier of this engine instance, added to every log record.\n"
        f"If not provided, the value is read from the {ENV_PREFIX}WORKER_ID environment variable.\n"
        f"If that is also absent, the default value will be {DEFAULT_WORKER_ID_PREFIX}-uuid4().",
    )

    parser.add_argument(
        "-ps",
        "--db-pool-size",
        type=int,
        default=int(_env("DB_POOL_SIZE", DEFAULT_DB_POOL_SIZE)),
        help="Specifies the maximum number of connections in the database connection pool.\n"
        f"If not provided, the value is read from the {ENV_PREFIX}DB_POOL_SIZE environment variable.\n"
        f"If that is also absent, a default value of {DEFAULT_DB_POOL_SIZE} is used.",
    )

    parser.add_argument(
        "-wn",
        "--worker-number",
        type=int,
        default=int(_env("WORKER_NUMBER", DEFAULT_WORKER_NUMBER)),
        help="Specifies the maximum number of checks executed concurrently.\n"
        f"If not provided, the value is read from the {ENV_PREFIX}WORKER_NUMBER environment variable.\n"
        f"If that is also absent, a default value of {DEFAULT_WORKER_NUMBER} is used.",
    )

    parser.add_argument(
        "-rc",
        "--retry-count",
        type=int,
        default=int(_env("RETRY_COUNT", DEFAULT_RETRY_COUNT)),
        help="Default number of retries after a failing first attempt.\n"
        f"If not provided, the value is read from the {ENV_PREFIX}RETRY_COUNT environment variable.\n"
        f"If that is also absent, a default value of {DEFAULT_RETRY_COUNT} is used.",
    )

    parser.add_argument(
        "-rd",
        "--retry-delay-ms",
        type=int,
        default=int(_env("RETRY_DELAY_MS", DEFAULT_RETRY_DELAY_MS)),
        help="Default delay in milliseconds before each retry.\n"
        f"If not provided, the value is read from the {ENV_PREFIX}RETRY_DELAY_MS environment variable.\n"
        f"If that is also absent, a default value of {DEFAULT_RETRY_DELAY_MS} is used.",
    )

    parser.add_argument(
        "-cd",
        "--confirmation-delay-ms",
        type=int,
        default=int(_env("CONFIRMATION_DELAY_MS", DEFAULT_CONFIRMATION_DELAY_MS)),
        help="Default delay in milliseconds before the confirmation attempt.\n"
        f"If not provided, the value is read from the {ENV_PREFIX}CONFIRMATION_DELAY_MS environment variable.\n"
        f"If that is also absent, a default value of {DEFAULT_CONFIRMATION_DELAY_MS} is used.",
    )

    parser.add_argument(
        "-ct",
        "--cycle-timeout",
        type=float,
        default=float(_env("CYCLE_TIMEOUT", DEFAULT_CYCLE_TIMEOUT)),
        help="Seconds after which checks still running are reported as failed; 0 disables the deadline.\n"
        f"If not provided, the value is read from the {ENV_PREFIX}CYCLE_TIMEOUT environment variable.\n"
        f"If that is also absent, a default value of {DEFAULT_CYCLE_TIMEOUT} is used.",
    )

    parser.add_argument(
        "-nu",
        "--notification-url",
        type=str,
        default=_env("NOTIFICATION_URL", DEFAULT_NOTIFICATION_URL),
        help="Endpoint of the notification delivery service.\n"
        f"If not provided, the value is read from the {ENV_PREFIX}NOTIFICATION_URL environment variable.\n"
        "If that is also absent, notifications are not sent.",
    )

    parser.add_argument(
        "-nt",
        "--notification-token",
        type=str,
        default=_env("NOTIFICATION_TOKEN", DEFAULT_NOTIFICATION_TOKEN),
        help="Bearer token sent to the notification delivery service.\n"
        f"If not provided, the value is read from the {ENV_PREFIX}NOTIFICATION_TOKEN environment variable.",
    )

    parser.add_argument(
        "-lt",
        "--logging-type",
        type=str,
        default=_env("LOGGING_TYPE", DEFAULT_LOGGING_TYPE),
        help="Specifies the logging configuration type to use.\n"
        "Allowed values: dev, prod, custom (case insensitive).\n"
        "For 'dev' and 'prod', system will use built-in configurations.\n"
        "For 'custom', the --logging-config-file argument is required.",
    )

    parser.add_argument(
        "-lcf",
        "--logging-config-file",
        type=str,
        default=_env("LOGGING_CONFIG_FILE", DEFAULT_LOGGING_CONFIG_FILE),
        help="Path to custom logging configuration file.\n"
        "Required when --logging-type is set to 'custom'.",
    )

    parser.add_argument(
        "--check-id",
        type=str,
        default=_env("CHECK_ID", None),
        help="Runs only the given check. Takes precedence over --resource-id.",
    )

    parser.add_argument(
        "--resource-id",
        type=str,
        default=_env("RESOURCE_ID", None),
        help="Runs only the checks of the given resource.",
    )

    parser.add_argument(
        "--heartbeat-token",
        type=str,
        default=_env("HEARTBEAT_TOKEN", None),
        help="Records a heartbeat for the heartbeat check owning the token, then exits.\n"
        "No check is executed in this mode.",
    )

    # Parse the command-line arguments
    args: Any = parser.parse_args()

    return EngineContext(
        dsn=args.dsn,
        worker_id=args.worker_id,
        logging_type=args.logging_type,
        logging_config_file=args.logging_config_file,
        db_pool_size=args.db_pool_size,
        worker_number=args.worker_number,
        retry_count=args.retry_count,
        retry_delay_ms=args.retry_delay_ms,
        confirmation_delay_ms=args.confirmation_delay_ms,
        cycle_timeout=args.cycle_timeout,
        notification_url=args.notification_url,
        notification_token=args.notification_token,
        check_id=_blank_to_none(args.check_id),
        resource_id=_blank_to_none(args.resource_id),
        heartbeat_token=_blank_to_none(args.heartbeat_token),
    )


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    return value if value else None
