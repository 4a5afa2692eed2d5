"""Application ports - Abstract interfaces for infrastructure adapters.

This module defines the contracts that infrastructure adapters must implement.
Ports enable dependency inversion and make the application layer testable.

Available ports:
- DocumentStoreProtocol: Conditional-write document store collaborator
- PseudonymAllocatorProtocol: Nagrik number allocation
- ContributionSubmissionProtocol: At-most-once contribution intake
- AggregateReconciliationProtocol: Aggregate reads and recomputation
"""

from src.application.ports.aggregate_reconciliation import (
    AggregateHealthReport,
    AggregateReconciliationProtocol,
    AggregateVerificationResult,
    SchemaMigrationReport,
)
from src.application.ports.contribution_submission import (
    ALREADY_RESPONDED_MESSAGE,
    ContributionSubmissionProtocol,
    SubmissionOutcome,
    SubmissionResult,
)
from src.application.ports.document_store import (
    AGGREGATES_COLLECTION,
    CONTRIBUTIONS_COLLECTION,
    COUNTERS_COLLECTION,
    FOLD_STATE_DEFERRED,
    FOLD_STATE_FIELD,
    FOLD_STATE_FOLDED,
    PARTICIPANTS_COLLECTION,
    PSEUDONYM_CLAIMS_COLLECTION,
    DocumentStoreProtocol,
    StoredDocument,
)
from src.application.ports.pseudonym_allocator import (
    PseudonymAllocation,
    PseudonymAllocatorProtocol,
    PseudonymBackfillReport,
    PseudonymUniquenessReport,
)

__all__: list[str] = [
    "AGGREGATES_COLLECTION",
    "ALREADY_RESPONDED_MESSAGE",
    "CONTRIBUTIONS_COLLECTION",
    "COUNTERS_COLLECTION",
    "FOLD_STATE_DEFERRED",
    "FOLD_STATE_FIELD",
    "FOLD_STATE_FOLDED",
    "PARTICIPANTS_COLLECTION",
    "PSEUDONYM_CLAIMS_COLLECTION",
    "AggregateHealthReport",
    "AggregateReconciliationProtocol",
    "AggregateVerificationResult",
    "ContributionSubmissionProtocol",
    "DocumentStoreProtocol",
    "PseudonymAllocation",
    "PseudonymAllocatorProtocol",
    "PseudonymBackfillReport",
    "PseudonymUniquenessReport",
    "SchemaMigrationReport",
    "StoredDocument",
    "SubmissionOutcome",
    "SubmissionResult",
]
