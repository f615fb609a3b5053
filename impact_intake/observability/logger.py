"""
Logging setup for impact-intake

Log lines are JSON objects (python-json-logger) unless LOG_FORMAT=text.
Report text can carry survivor details, so the JSON formatter masks those
fields whenever they are passed as `extra`.
"""
import logging
import os
import sys
import time

from pythonjsonlogger import jsonlogger

APP_LOGGER = "impact-intake"

REDACTED_FIELDS = frozenset({
    "content",
    "transcribed_content",
    "translated_content",
    "description",
    "notes",
})
REDACTED = "[redacted]"

TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class IntakeJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with call-site fields and masked report text."""

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        for field in REDACTED_FIELDS.intersection(log_record):
            log_record[field] = REDACTED


def build_formatter(format_type: str = "json") -> logging.Formatter:
    if format_type == "text":
        return logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    return IntakeJsonFormatter(
        "%(levelname)s %(name)s %(message)s",
        rename_fields={"levelname": "level", "name": "logger"},
        timestamp=True,
    )


def configure_logging(level: str | None = None, format_type: str | None = None) -> logging.Logger:
    """
    (Re)configure the application logger.

    Args:
        level: Level name; defaults to $LOG_LEVEL, then INFO
        format_type: "json" or "text"; defaults to $LOG_FORMAT, then "json"

    Returns:
        The application logger
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    log_level = logging.getLevelNamesMapping().get(level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(build_formatter(format_type or os.getenv("LOG_FORMAT", "json")))

    app_logger = logging.getLogger(APP_LOGGER)
    app_logger.handlers = [handler]
    app_logger.setLevel(log_level)
    app_logger.propagate = False
    return app_logger


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Logger for a module, nested under the application logger.

    The application logger is configured from the environment on first use.
    """
    app_logger = logging.getLogger(APP_LOGGER)
    if not app_logger.handlers:
        configure_logging()
    if not name:
        return app_logger
    return app_logger.getChild(name)


class log_operation:
    """
    Log the start and end of a unit of work with its elapsed time.

    Exceptions are logged with their type and re-raised.

    Usage:
        with log_operation("Processing submission", logger=logger, submission_id=sid):
            ...
    """

    def __init__(self, operation: str, logger: logging.Logger | None = None, **fields):
        self.operation = operation
        self.logger = logger or get_logger()
        self.fields = {"operation": operation, **fields}
        self.elapsed_ms: float | None = None
        self._started: float | None = None

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.debug(f"{self.operation} started", extra=self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = round((time.perf_counter() - self._started) * 1000, 3)
        fields = {**self.fields, "elapsed_ms": self.elapsed_ms}

        if exc_type is None:
            self.logger.info(f"{self.operation} finished", extra={**fields, "outcome": "success"})
        else:
            self.logger.error(
                f"{self.operation} failed: {exc_val}",
                extra={**fields, "outcome": "error", "error_type": exc_type.__name__},
                exc_info=(exc_type, exc_val, exc_tb),
            )
        return False
