"""Domain errors for the Nagrik Ledger.

Provides specific exception classes for different failure scenarios.
All exceptions inherit from NagrikError.
"""

from src.domain.errors.aggregate import (
    AggregateContentionError,
    AggregateError,
    ContributionLogUnreadableError,
)
from src.domain.errors.pseudonym import (
    AllocationDegradedError,
    AllocationError,
    AllocationFailedError,
)
from src.domain.errors.store import (
    ConcurrentModificationError,
    DocumentExistsError,
    DocumentNotFoundError,
    StoreError,
    StoreUnavailableError,
)

__all__: list[str] = [
    "AggregateContentionError",
    "AggregateError",
    "AllocationDegradedError",
    "AllocationError",
    "AllocationFailedError",
    "ContributionLogUnreadableError",
    "ConcurrentModificationError",
    "DocumentExistsError",
    "DocumentNotFoundError",
    "StoreError",
    "StoreUnavailableError",
]
