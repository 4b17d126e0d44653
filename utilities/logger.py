"""
Structured logging for the course watcher using structlog.
Provides output format selection, optional file logging and a
cycle-scoped logger with bound course context.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.stdlib import LoggerFactory


def _build_processors(log_format: str, debug: bool) -> List:
    """Processor chain shared by every logger."""
    processors = [
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
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    return processors


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    debug: bool = False
) -> None:
    """
    Set up structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_file: Optional log file path, receives the same lines as stdout
        debug: Add call site information to every event
    """
    level = getattr(logging, log_level.upper())

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    structlog.configure(
        processors=_build_processors(log_format, debug),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter('%(message)s'))
        logging.getLogger().addHandler(file_handler)

    structlog.get_logger(__name__).info(
        "Logging system initialized",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
        debug=debug
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class CycleLogger:
    """
    Logger for poll cycles with bound course context.
    """

    def __init__(self, name: str = "watcher"):
        self.logger = structlog.get_logger(name)
        self.context = {}

    def bind_context(self, **kwargs) -> 'CycleLogger':
        """
        Bind context variables to the logger.

        Args:
            **kwargs: Context variables to bind

        Returns:
            Self for method chaining
        """
        self.context.update(kwargs)
        return self

    def log_cycle_start(self, course_name: str) -> None:
        """Log poll cycle start."""
        self.logger.info("Checking course", course_name=course_name, **self.context)

    def log_cycle_complete(
        self,
        new_items: int,
        deadline_items: int,
        bytes_fetched: int,
        duration_seconds: float
    ) -> None:
        """Log poll cycle completion."""
        self.logger.info(
            "Poll cycle completed",
            new_items=new_items,
            deadline_items=deadline_items,
            traffic_kb=round(bytes_fetched / 1000, 1),
            duration_seconds=round(duration_seconds, 3),
            **self.context
        )

    def log_cycle_skipped(self, reason: str) -> None:
        """Log a cycle that ended without touching the snapshot."""
        self.logger.warning("Poll cycle skipped", reason=reason, **self.context)

    def log_notification_error(self, event: str, error: str) -> None:
        """Log a failed notification."""
        self.logger.error("Notification failed", notification=event, error=error, **self.context)

    def log_store_operation(self, operation: str, success: bool, error: Optional[str] = None) -> None:
        """Log snapshot store operation."""
        level = "debug" if success else "error"
        getattr(self.logger, level)(
            "Snapshot store operation",
            operation=operation,
            success=success,
            error=error,
            **self.context
        )
