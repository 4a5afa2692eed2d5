"""Observability infrastructure for structured logging and correlation.

This module provides cross-cutting observability concerns:
- Structured logging with structlog (JSON in production, console otherwise)
- Correlation IDs that tie every log line of one operation together

Usage:
    from src.infrastructure.observability import (
        configure_structlog,
        correlation_scope,
    )

    configure_structlog(environment="production")

    with correlation_scope() as correlation_id:
        await service.recompute(7)
"""

from src.infrastructure.observability.correlation import (
    correlation_id_processor,
    correlation_scope,
    generate_correlation_id,
    get_correlation_id,
    set_correlation_id,
)
from src.infrastructure.observability.logging import (
    configure_structlog,
    get_logger_for_service,
)

__all__: list[str] = [
    "configure_structlog",
    "correlation_id_processor",
    "correlation_scope",
    "generate_correlation_id",
    "get_correlation_id",
    "get_logger_for_service",
    "set_correlation_id",
]
