"""Structured logging utilities for the subgraph allowlist gate.

Every admission decision and every reload attempt is logged through structlog
so operators can audit what the gate permitted, what it refused, and which
snapshot version it used.
"""

import logging
import sys
import time
from contextvars import ContextVar, Token
from typing import Optional

import structlog
from structlog.types import EventDict, Processor

# Context variable for correlating the log lines of one gated operation
operation_id_var: ContextVar[Optional[str]] = ContextVar("operation_id", default=None)


def add_operation_id(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add operation_id to log context if available."""
    operation_id = operation_id_var.get()
    if operation_id:
        event_dict["operation_id"] = operation_id
    return event_dict


def add_timestamp(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add epoch timestamp to log entries."""
    event_dict["timestamp"] = time.time()
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = True
) -> None:
    """Configure structured logging for the gate.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON format. If False, use console format.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_operation_id,
        add_timestamp,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.extend([
            structlog.dev.ConsoleRenderer(colors=True),
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "subgraph_gate") -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance.

    Args:
        name: Logger name (typically module name)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def set_operation_id(operation_id: str) -> Token[Optional[str]]:
    """Set operation ID in context for all subsequent logs.

    Args:
        operation_id: Unique identifier for the gated operation

    Returns:
        Token to pass to reset_operation_id() once the operation is done.
    """
    return operation_id_var.set(operation_id)


def reset_operation_id(token: Token[Optional[str]]) -> None:
    """Restore the operation ID that was bound before set_operation_id()."""
    operation_id_var.reset(token)


# Initialize logging with sensible defaults
# This will be reconfigured by main.py based on environment
configure_logging()
