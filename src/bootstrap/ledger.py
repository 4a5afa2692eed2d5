"""Bootstrap wiring for identity and aggregate ledger dependencies.

Environment Variables:
- NAGRIK_DOCUMENT_STORE: "memory" (default) for the in-memory stub,
  "postgres" for the SQLAlchemy adapter on DATABASE_URL
"""

from __future__ import annotations

import os

from src.application.ports.document_store import DocumentStoreProtocol
from src.application.services.aggregate_reconciliation_service import (
    AggregateReconciliationService,
)
from src.application.services.contribution_submission_service import (
    ContributionSubmissionService,
)
from src.application.services.pseudonym_allocator_service import (
    PseudonymAllocatorService,
)
from src.bootstrap.database import get_session_factory
from src.config.ledger_config import LedgerConfig, PseudonymConfig
from src.infrastructure.adapters.persistence.sql_document_store import (
    SqlDocumentStore,
)
from src.infrastructure.stubs.document_store_stub import DocumentStoreStub

DOCUMENT_STORE_ENV = "NAGRIK_DOCUMENT_STORE"

_document_store: DocumentStoreProtocol | None = None
_pseudonym_config: PseudonymConfig | None = None
_ledger_config: LedgerConfig | None = None
_pseudonym_allocator: PseudonymAllocatorService | None = None
_submission_service: ContributionSubmissionService | None = None
_reconciliation_service: AggregateReconciliationService | None = None


def get_document_store() -> DocumentStoreProtocol:
    """Get document store instance."""
    global _document_store
    if _document_store is None:
        backend = os.environ.get(DOCUMENT_STORE_ENV, "memory").lower()
        if backend == "postgres":
            _document_store = SqlDocumentStore(get_session_factory())
        elif backend == "memory":
            _document_store = DocumentStoreStub()
        else:
            raise ValueError(
                f"{DOCUMENT_STORE_ENV} must be 'memory' or 'postgres', got {backend!r}"
            )
    return _document_store


def get_pseudonym_config() -> PseudonymConfig:
    global _pseudonym_config
    if _pseudonym_config is None:
        _pseudonym_config = PseudonymConfig.from_environment()
    return _pseudonym_config


def get_ledger_config() -> LedgerConfig:
    global _ledger_config
    if _ledger_config is None:
        _ledger_config = LedgerConfig.from_environment()
    return _ledger_config


def get_pseudonym_allocator() -> PseudonymAllocatorService:
    """Get pseudonym allocator instance."""
    global _pseudonym_allocator
    if _pseudonym_allocator is None:
        _pseudonym_allocator = PseudonymAllocatorService(
            store=get_document_store(),
            config=get_pseudonym_config(),
        )
    return _pseudonym_allocator


def get_contribution_submission_service() -> ContributionSubmissionService:
    """Get contribution submission service instance."""
    global _submission_service
    if _submission_service is None:
        _submission_service = ContributionSubmissionService(
            store=get_document_store(),
            config=get_ledger_config(),
        )
    return _submission_service


def get_aggregate_reconciliation_service() -> AggregateReconciliationService:
    """Get aggregate reconciliation service instance."""
    global _reconciliation_service
    if _reconciliation_service is None:
        _reconciliation_service = AggregateReconciliationService(
            store=get_document_store(),
            config=get_ledger_config(),
        )
    return _reconciliation_service


def reset_ledger_dependencies() -> None:
    """Reset all singleton instances for testing."""
    global _document_store
    global _pseudonym_config
    global _ledger_config
    global _pseudonym_allocator
    global _submission_service
    global _reconciliation_service

    _document_store = None
    _pseudonym_config = None
    _ledger_config = None
    _pseudonym_allocator = None
    _submission_service = None
    _reconciliation_service = None


def set_document_store(store: DocumentStoreProtocol) -> None:
    """Set custom document store; services built afterwards use it."""
    global _document_store, _pseudonym_allocator
    global _submission_service, _reconciliation_service
    _document_store = store
    _pseudonym_allocator = None
    _submission_service = None
    _reconciliation_service = None


def set_pseudonym_config(config: PseudonymConfig) -> None:
    global _pseudonym_config, _pseudonym_allocator
    _pseudonym_config = config
    _pseudonym_allocator = None


def set_ledger_config(config: LedgerConfig) -> None:
    global _ledger_config, _submission_service, _reconciliation_service
    _ledger_config = config
    _submission_service = None
    _reconciliation_service = None


__all__ = [
    "DOCUMENT_STORE_ENV",
    "get_aggregate_reconciliation_service",
    "get_contribution_submission_service",
    "get_document_store",
    "get_ledger_config",
    "get_pseudonym_allocator",
    "get_pseudonym_config",
    "reset_ledger_dependencies",
    "set_document_store",
    "set_ledger_config",
    "set_pseudonym_config",
]
