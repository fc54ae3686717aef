"""
Logging system using structlog.
Provides structured logging with JSON or console output and per-request context.
"""

import logging
import sys
import time
import uuid
from pathlib import Path
from typing import Optional

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    debug: bool = False
) -> None:
    """
    Set up structured logging with configurable output formats.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_file: Optional log file path
        debug: Add call-site information to every event
    """

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    # Set up file logging if specified
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(logging.Formatter('%(message)s'))
        logging.getLogger().addHandler(file_handler)

    logger = structlog.get_logger(__name__)
    logger.info(
        "Logging system initialized",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
        debug=debug
    )


class RequestLogger:
    """
    Binds request context into structlog and logs request completion.

    One instance per request; the bound context is cleared when the
    request finishes so it never leaks into the next one.
    """

    def __init__(self, method: str, path: str, name: str = "books_api.requests"):
        self.logger = structlog.get_logger(name)
        self.request_id = uuid.uuid4().hex
        self.method = method
        self.path = path
        self.started = time.perf_counter()

    def __enter__(self) -> 'RequestLogger':
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=self.request_id,
            method=self.method,
            path=self.path,
        )
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        structlog.contextvars.clear_contextvars()

    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.started) * 1000, 2)

    def log_completed(self, status_code: int) -> None:
        """Log request completion; server errors are logged as errors."""
        level = "error" if status_code >= 500 else "info"
        getattr(self.logger, level)(
            "Request completed",
            status_code=status_code,
            duration_ms=self.elapsed_ms(),
        )

    def log_failed(self, error: str) -> None:
        self.logger.error(
            "Request failed",
            error=error,
            duration_ms=self.elapsed_ms(),
        )
