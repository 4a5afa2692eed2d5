"""Document store protocol.

This module defines the storage collaborator the identity and aggregation
core runs on: a key-value document store with single-document conditional
writes and no cross-document locking. Follows hexagonal architecture with
port/adapter pattern.

Required semantics:
- Read by key with existence check
- Create-if-absent (unique key constraint)
- Update-if-version-matches (compare-and-swap)
- Equality query over top-level fields
- All-or-nothing batch create

Every implementation MUST raise StoreUnavailableError for transport or
availability failures, and MUST NOT apply a partial write when it raises.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

# Collections used by the core
PARTICIPANTS_COLLECTION = "participants"
COUNTERS_COLLECTION = "counters"
PSEUDONYM_CLAIMS_COLLECTION = "pseudonym_claims"
CONTRIBUTIONS_COLLECTION = "contributions"
AGGREGATES_COLLECTION = "constituency_aggregates"

# Contribution body field recording what became of its incremental fold;
# absent while the fold is still outstanding
FOLD_STATE_FIELD = "fold_state"
FOLD_STATE_FOLDED = "folded"
FOLD_STATE_DEFERRED = "deferred"


@dataclass(frozen=True)
class StoredDocument:
    """A document as read from the store.

    Attributes:
        collection: Collection holding the document.
        key: Document key, unique within the collection.
        data: Document body (JSON-compatible values only).
        version: Monotonic version, 1 on creation, +1 per update.
    """

    collection: str
    key: str
    data: dict[str, Any] = field(default_factory=dict)
    version: int = 1


class DocumentStoreProtocol(Protocol):
    """Protocol for the transactional document store collaborator.

    Implementations:
    - DocumentStoreStub: in-memory, for tests and development
    - SqlDocumentStore: SQLAlchemy async adapter over a documents table
    """

    @abstractmethod
    async def get(self, collection: str, key: str) -> StoredDocument | None:
        """Read a document by key.

        Returns:
            The document, or None if it does not exist.

        Raises:
            StoreUnavailableError: Store could not be reached.
        """
        ...

    @abstractmethod
    async def create(
        self, collection: str, key: str, data: Mapping[str, Any]
    ) -> StoredDocument:
        """Create a document only if the key is absent.

        Returns:
            The created document at version 1.

        Raises:
            DocumentExistsError: A document with this key already exists.
            StoreUnavailableError: Store could not be reached.
        """
        ...

    @abstractmethod
    async def update(
        self,
        collection: str,
        key: str,
        data: Mapping[str, Any],
        expected_version: int,
    ) -> StoredDocument:
        """Replace a document body only if its version still matches.

        Returns:
            The updated document with version expected_version + 1.

        Raises:
            ConcurrentModificationError: Version no longer matches.
            DocumentNotFoundError: No document with this key.
            StoreUnavailableError: Store could not be reached.
        """
        ...

    @abstractmethod
    async def query(self, collection: str, **equals: Any) -> list[StoredDocument]:
        """Return every document whose top-level fields equal the given values.

        Raises:
            StoreUnavailableError: Store could not be reached.
        """
        ...

    @abstractmethod
    async def batch_create(
        self, collection: str, items: Mapping[str, Mapping[str, Any]]
    ) -> int:
        """Create several documents atomically.

        Either every document is created or none is.

        Args:
            collection: Target collection.
            items: Document key -> body.

        Returns:
            Number of documents created.

        Raises:
            DocumentExistsError: Any key already exists (nothing written).
            StoreUnavailableError: Store could not be reached.
        """
        ...
