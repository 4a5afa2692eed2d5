"""Application services - Use case orchestration.

This module contains application services that orchestrate domain
operations and coordinate with infrastructure adapters.

Available services:
- PseudonymAllocatorService: Nagrik number allocation, backfill, uniqueness scan
- ContributionSubmissionService: At-most-once contribution intake with fold
- AggregateReconciliationService: Aggregate reads, recompute and maintenance
"""

from src.application.services.aggregate_reconciliation_service import (
    AggregateReconciliationService,
)
from src.application.services.contribution_submission_service import (
    ContributionSubmissionService,
)
from src.application.services.optimistic_retry import (
    backoff_delay,
    sleep_before_retry,
)
from src.application.services.pseudonym_allocator_service import (
    PseudonymAllocatorService,
)

__all__: list[str] = [
    "AggregateReconciliationService",
    "ContributionSubmissionService",
    "PseudonymAllocatorService",
    "backoff_delay",
    "sleep_before_retry",
]
