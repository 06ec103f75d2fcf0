"""
Logging configuration module for the check execution engine.

Logging is configured from a JSON dictConfig document: one of the two built-in
documents shipped with this package (dev, prod) or a custom file. Every record
carries the worker_id of the engine instance so that the formatters can use it.
"""

import json
import logging.config
import os
from typing import Any, Dict

from check_engine.config import EngineContext

BUILT_IN_CONFIGS: Dict[str, str] = {
    "dev": "logging-config-dev.json",
    "prod": "logging-config-prod.json",
}


def configure_logging(context: EngineContext) -> None:
    """
    Configure logging for the application based on the provided configuration.

    Supported logging types:
    - dev: built-in human-readable configuration at DEBUG level
    - prod: built-in JSON-lines configuration at INFO level
    - custom: configuration read from context.logging_config_file

    Args:
        context: Configuration context containing logging settings.

    Raises:
        ValueError: If the logging type is invalid or if a custom logging
            configuration file is not provided when using the 'custom' type.
        RuntimeError: If the configuration file cannot be loaded.
    """
    _load_logging_config(resolve_config_file(context))

    # Handlers receive records propagated from every module logger, so the
    # filter goes on them as well as on the root logger.
    worker_filter = _WorkerIdFilter(worker_id=context.worker_id)
    root_logger = logging.getLogger()
    root_logger.addFilter(worker_filter)
    for handler in root_logger.handlers:
        handler.addFilter(worker_filter)

    logging.getLogger(__name__).debug("Logging configured and WorkerIdFilter added.")


def resolve_config_file(context: EngineContext) -> str:
    """
    Returns the path of the logging configuration document to load.

    Raises:
        ValueError: If the logging type is missing or invalid, or if the custom
            type is requested without a configuration file.
    """
    logging_type = (context.logging_type or "").lower()
    if not logging_type:
        raise ValueError("Logging type must be provided.")
    if logging_type in BUILT_IN_CONFIGS:
        return _get_local_package_file_path(BUILT_IN_CONFIGS[logging_type])
    if logging_type == "custom":
        if not context.logging_config_file:
            raise ValueError("Custom logging configuration file must be provided.")
        return context.logging_config_file
    raise ValueError(
        f"Invalid logging type: {context.logging_type}. Allowed values are: dev, prod, custom"
    )


def _load_logging_config(config_file: str) -> None:
    """
    Load a dictConfig document from a JSON file and apply it.

    Raises:
        RuntimeError: If the file is not found, contains invalid JSON, or
            if there is any other error loading the configuration.
    """
    try:
        with open(config_file) as f:
            config: Dict[str, Any] = json.load(f)
        logging.config.dictConfig(config)
    except FileNotFoundError as err:
        raise RuntimeError(f"Logging config file not found: {config_file}") from err
    except json.JSONDecodeError as err:
        raise RuntimeError(f"Invalid JSON format in logging config file: {config_file}") from err
    except Exception as err:
        raise RuntimeError(f"Error loading logging config: {str(err)}") from err


def _get_local_package_file_path(config_file: str) -> str:
    return os.path.join(os.path.dirname(__file__), config_file)


class JsonLinesFormatter(logging.Formatter):
    """
    Formatter that renders every record as one JSON object per line.

    Used by the prod configuration; messages, reprs and tracebacks are escaped
    by json.dumps, so each line stays a valid JSON document.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "worker_id": getattr(record, "worker_id", None),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record, default=str)


class _WorkerIdFilter(logging.Filter):
    """
    A logging filter that injects the worker ID into every log record.
    """

    def __init__(self, worker_id: str) -> None:
        super().__init__()
        self._worker_id: str = worker_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.worker_id = self._worker_id
        return True
