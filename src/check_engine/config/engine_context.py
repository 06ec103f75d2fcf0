"""
Configuration context for the check execution engine.

This module defines the immutable data structure that holds all configuration
parameters of one engine invocation.
"""

from typing import NamedTuple, Optional


class EngineContext(NamedTuple):
    """
    A data structure containing all configuration parameters of the engine.

    It is created by parsing command-line arguments and environment variables.

    Attributes:
        dsn: Database connection string for PostgreSQL.
        worker_id: Identifier of this engine instance, injected into log records.
        logging_type: Type of logging configuration to use (dev, prod, or custom).
        logging_config_file: Path to custom logging configuration file (if logging_type is 'custom').
        db_pool_size: Maximum number of connections in the database connection pool.
        worker_number: Maximum number of checks executed concurrently.
        retry_count: Default number of retries after a failing first attempt.
        retry_delay_ms: Default delay before each retry, in milliseconds.
        confirmation_delay_ms: Default delay before the confirmation attempt, in milliseconds.
        cycle_timeout: Seconds after which unfinished checks are failed; 0 disables it.
        notification_url: Endpoint of the notification delivery service.
        notification_token: Bearer token sent to the notification delivery service.
        check_id: Restricts the invocation to a single check.
        resource_id: Restricts the invocation to the checks of a single resource.
        heartbeat_token: When set, records a heartbeat for the check owning this token instead of running checks.
    """

    dsn: str
    worker_id: str
    logging_type: str
    logging_config_file: str
    db_pool_size: int
    worker_number: int
    retry_count: int
    retry_delay_ms: int
    confirmation_delay_ms: int
    cycle_timeout: float
    notification_url: str
    notification_token: str
    check_id: Optional[str] = None
    resource_id: Optional[str] = None
    heartbeat_token: Optional[str] = None
