"""Structured logging setup for the context engine.

Every event carries the service name and environment so engine logs can be
told apart from the host application's. Chatty third-party loggers
(ChromaDB, httpx) are held at WARNING unless the engine itself runs at DEBUG.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

SERVICE_NAME = "meeting-context"

NOISY_LOGGERS = ("chromadb", "httpx", "httpcore")


def add_exception_info(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Flatten ``exc_info`` into ``exception_type`` and ``exception_message``."""
    exc_info = event_dict.get('exc_info')
    if exc_info:
        if exc_info is True:
            exc_info = sys.exc_info()
        if isinstance(exc_info, tuple) and len(exc_info) == 3:
            exc_type, exc_value, _ = exc_info
            if exc_type is not None:
                event_dict['exception_type'] = exc_type.__name__
                event_dict['exception_message'] = str(exc_value)
    return event_dict


def service_context(environment: str) -> Processor:
    """Processor adding the service name and environment to every event."""

    def add_service_context(
        logger: logging.Logger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        event_dict.setdefault('service', SERVICE_NAME)
        event_dict.setdefault('environment', environment)
        return event_dict

    return add_service_context


def setup_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None,
    environment: str = "development",
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    enable_console: bool = True,
) -> None:
    """Configure structlog over stdlib logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, render JSON; otherwise console format
        log_file: Optional path of a rotating log file
        environment: Environment name stamped on every event
        max_bytes: Maximum bytes per log file
        backup_count: Number of rotated files to keep
        enable_console: If True, also log to stdout
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        service_context(environment),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        add_exception_info,
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handlers = []

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        handlers.append(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            filename=log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8',
        )
        file_handler.setLevel(numeric_level)
        handlers.append(file_handler)

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        handlers=handlers,
        force=True,
    )

    third_party_level = numeric_level if numeric_level <= logging.DEBUG else max(numeric_level, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)


def get_logger(name: str, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger, optionally bound to context such as ``room`` or ``meeting_id``.

    Examples:
        >>> logger = get_logger(__name__)
        >>> logger.info("context_retrieval_started", room="standup-alpha")
        >>> meeting_log = get_logger(__name__, meeting_id="01HV...")
    """
    logger = structlog.get_logger(name)
    if initial_context:
        return logger.bind(**initial_context)
    return logger


def log_exception(
    logger: structlog.stdlib.BoundLogger,
    event: str,
    exception: Exception,
    **context: Any
) -> None:
    """Log an exception with structured context.

    Examples:
        >>> try:
        ...     await store.store_meeting_embeddings(meeting_id, rows)
        ... except StoreUnavailable as e:
        ...     log_exception(logger, "embedding_write_failed", e, meeting_id=meeting_id)
    """
    logger.error(
        event,
        exception_type=type(exception).__name__,
        exception_message=str(exception),
        exc_info=True,
        **context
    )
