"""
Domain layer - Pure business logic for the Nagrik Ledger.

This layer contains:
- Domain models (Participant, Contribution, ConstituencyAggregate)
- Pure folding rules for aggregate statistics
- Domain exceptions

CRITICAL: This layer must NOT import from application, infrastructure, or bootstrap.
"""

from src.domain.exceptions import NagrikError, RetryableError
from src.domain.models import ConstituencyAggregate, Contribution, MetricKind

__all__: list[str] = [
    "ConstituencyAggregate",
    "Contribution",
    "MetricKind",
    "NagrikError",
    "RetryableError",
]
