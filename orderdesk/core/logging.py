"""
Structured logging for the order desk.

All modules log through structlog with keyword context. Two context variables
tie log lines together: ``action_id`` identifies one staff action (a confirm,
a save, a reload) across every gateway call it causes, and ``operator`` names
the signed-in user. Development gets a colored console renderer; every other
environment gets one JSON object per line.
"""

import logging
import sys
import time
from contextvars import ContextVar
from typing import Any, Optional
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from orderdesk.core.config import Settings, get_settings

action_id_ctx: ContextVar[str] = ContextVar("action_id", default="")
operator_ctx: ContextVar[Optional[str]] = ContextVar("operator", default=None)

# Libraries whose debug output drowns the order desk's own lines.
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def add_action_id(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Attach the current staff action's correlation id, when one is set."""
    action_id = action_id_ctx.get()
    if action_id:
        event_dict["action_id"] = action_id
    return event_dict


def add_operator(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Attach the signed-in operator, when one is set."""
    operator = operator_ctx.get()
    if operator:
        event_dict["operator"] = operator
    return event_dict


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_action_id,
        add_operator,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        settings: Settings to read environment and level from, defaults to
            the cached settings
    """
    settings = settings or get_settings()

    renderer: Processor
    if settings.is_development:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*_shared_processors(), renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_action_id(action_id: Optional[str] = None) -> str:
    """
    Start a new correlated action.

    Args:
        action_id: Explicit id, a random UUID when omitted

    Returns:
        The id now in effect
    """
    action_id = action_id or str(uuid4())
    action_id_ctx.set(action_id)
    return action_id


def get_action_id() -> str:
    return action_id_ctx.get()


def set_operator(operator: Optional[str]) -> None:
    operator_ctx.set(operator)


def get_operator() -> Optional[str]:
    return operator_ctx.get()


def clear_context() -> None:
    action_id_ctx.set("")
    operator_ctx.set(None)


class PerformanceLogger:
    """
    Times a block and logs how it went.

    Completion is logged at info level, or warning past ``SLOW_OPERATION_MS``.
    A block that raises is logged at error level and the exception propagates.
    """

    SLOW_OPERATION_MS = 500

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        **context: Any,
    ):
        self.logger = logger.bind(operation=operation, **context)
        self.operation = operation
        self.start_time: Optional[float] = None

    @property
    def elapsed_ms(self) -> float:
        if self.start_time is None:
            return 0.0
        return round((time.perf_counter() - self.start_time) * 1000, 2)

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        self.logger.debug("Operation started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is None:
            return

        duration_ms = self.elapsed_ms
        if exc_type is not None:
            self.logger.error(
                "Operation failed",
                duration_ms=duration_ms,
                error_type=exc_type.__name__,
            )
        elif duration_ms > self.SLOW_OPERATION_MS:
            self.logger.warning("Slow operation", duration_ms=duration_ms)
        else:
            self.logger.info("Operation completed", duration_ms=duration_ms)


def log_performance(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    **context: Any,
) -> PerformanceLogger:
    """
    Time a block of code.

    Example:
        >>> with log_performance(logger, "load_orders"):
        ...     await coordinator.load_all()
    """
    return PerformanceLogger(logger, operation, **context)
