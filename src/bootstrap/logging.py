"""Bootstrap wiring for logging configuration."""

from __future__ import annotations

from src.infrastructure.observability import configure_structlog as _configure_structlog


def configure_logging(environment: str | None = None) -> None:
    """Configure structlog once at process start.

    Args:
        environment: 'production' or 'development'; None reads $NAGRIK_ENV.
    """
    _configure_structlog(environment=environment)


__all__ = ["configure_logging"]
