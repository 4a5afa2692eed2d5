"""Structured logging configuration with structlog.

Log Entry Format (production):
    {
        "timestamp": "2024-01-01T00:00:00.000000Z",
        "level": "info",
        "event": "contribution_recorded",
        "correlation_id": "uuid",
        "constituency_id": 7,
        ...additional context
    }

Environment Variables:
- LOG_LEVEL: Minimum level to emit (default: INFO)
- NAGRIK_ENV: "production" for JSON output, anything else for console
  output (used when configure_structlog is called without an environment)
"""

import logging
import os
from typing import cast

import structlog
from structlog.typing import Processor

from src.infrastructure.observability.correlation import correlation_id_processor

LOG_LEVEL_ENV = "LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"
ENVIRONMENT_ENV = "NAGRIK_ENV"


def _get_log_level() -> int:
    level_name = os.getenv(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).upper()
    return getattr(logging, level_name, logging.INFO)


def configure_structlog(environment: str | None = None) -> None:
    """Configure structlog for the process.

    Should be called once at startup (service bootstrap or CLI entry).

    Args:
        environment: 'production' for JSON output, anything else for
            colored console output. Defaults to $NAGRIK_ENV, then
            'production'.
    """
    if environment is None:
        environment = os.getenv(ENVIRONMENT_ENV, "production")

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        cast(Processor, correlation_id_processor),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if environment == "production":
        final_processor: Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False
        )
    else:
        final_processor = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.make_filtering_bound_logger(_get_log_level()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger_for_service(
    service_name: str, component: str = "ledger"
) -> structlog.BoundLogger:
    """Get a logger with service and component already bound.

    Args:
        service_name: The name of the service (typically class name).
        component: "identity", "ledger" or "maintenance".
    """
    return structlog.get_logger().bind(
        service=service_name,
        component=component,
    )
