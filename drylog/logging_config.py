import logging.config
import sys
import time
import uuid
from typing import Optional

import structlog

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _handlers(log_level: str, log_file: Optional[str]) -> dict:
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": "plain",
            "stream": sys.stdout,
        }
    }
    if log_file:
        # Records are already JSON by the time they reach the handler
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "raw",
            "filename": log_file,
            "maxBytes": LOG_FILE_MAX_BYTES,
            "backupCount": LOG_FILE_BACKUPS,
        }
    return handlers


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Configure structured logging for the application.

    Every structlog event is rendered as one JSON object. Console output
    prefixes it with time, logger and level; the optional rotating file
    receives the bare JSON lines.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path. If None, logs to stdout only.
    """
    log_level = log_level.upper()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers = _handlers(log_level, log_file)
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
            "raw": {"format": "%(message)s"},
        },
        "handlers": handlers,
        # drylog.* loggers propagate here
        "root": {"level": log_level, "handlers": list(handlers)},
    })

    logger = structlog.get_logger("drylog")
    logger.info("Logging configured", level=log_level, file=log_file)
    return logger


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class OperationContext:
    """
    Log the start and the outcome of a multi-step operation under one short ID.

    Exceptions are logged as "Operation failed" and then propagate.
    """

    def __init__(self, operation_type: str, operation_id: Optional[str] = None, **context):
        self.operation_type = operation_type
        self.operation_id = operation_id or uuid.uuid4().hex[:8]
        self.logger = get_logger("drylog.operations").bind(
            operation_type=operation_type, operation_id=self.operation_id, **context
        )
        self._started = None

    def __enter__(self):
        self._started = time.monotonic()
        self.logger.info("Operation started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = round(time.monotonic() - self._started, 3)
        if exc_type is None:
            self.logger.info("Operation completed", duration_seconds=duration, status="success")
        else:
            self.logger.error(
                "Operation failed",
                duration_seconds=duration,
                status="error",
                error_type=exc_type.__name__,
                error_message=str(exc_val),
            )
        return False
