"""In-memory stub for DocumentStoreProtocol.

This stub provides an in-memory implementation for testing and development.
It simulates the hosted document store including:
- Create-if-absent (unique key per collection)
- Compare-and-swap updates on a per-document version
- Equality queries over top-level fields
- All-or-nothing batch creation
- Failure injection for unavailability scenarios

Every operation yields to the event loop once, as a network round trip
would, so concurrent callers interleave between reads and writes.

WARNING: This stub is for development/testing only.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Mapping
from typing import Any

from src.application.ports.document_store import StoredDocument
from src.domain.errors.store import (
    ConcurrentModificationError,
    DocumentExistsError,
    DocumentNotFoundError,
    StoreUnavailableError,
)


class DocumentStoreStub:
    """In-memory stub implementation of DocumentStoreProtocol.

    This stub maintains:
    - A dictionary per collection mapping key -> (data, version)
    - A lock simulating single-document atomicity of conditional writes

    Attributes:
        latency_seconds: Simulated round-trip delay per operation.
    """

    def __init__(self, latency_seconds: float = 0.0) -> None:
        """Initialize empty stub.

        Args:
            latency_seconds: Simulated round-trip delay per operation.
                Zero still yields to the event loop once.
        """
        self.latency_seconds = latency_seconds
        # Key: collection, Value: {key: (data, version)}
        self._collections: dict[str, dict[str, tuple[dict[str, Any], int]]] = {}
        # Lock for simulating atomic conditional writes
        self._lock = asyncio.Lock()
        self._unavailable = False
        # Key: (operation, collection or None), Value: remaining failures
        self._scheduled_failures: dict[tuple[str, str | None], int] = {}
        self.operation_counts: dict[str, int] = {}

    async def _round_trip(self, operation: str, collection: str) -> None:
        self.operation_counts[operation] = self.operation_counts.get(operation, 0) + 1
        await asyncio.sleep(self.latency_seconds)
        if self._unavailable:
            raise StoreUnavailableError(operation, collection, "store offline")
        for scope in ((operation, collection), (operation, None)):
            remaining = self._scheduled_failures.get(scope, 0)
            if remaining > 0:
                self._scheduled_failures[scope] = remaining - 1
                raise StoreUnavailableError(operation, collection, "injected failure")

    def _docs(self, collection: str) -> dict[str, tuple[dict[str, Any], int]]:
        return self._collections.setdefault(collection, {})

    async def get(self, collection: str, key: str) -> StoredDocument | None:
        """Read a document by key."""
        await self._round_trip("get", collection)
        entry = self._docs(collection).get(key)
        if entry is None:
            return None
        data, version = entry
        return StoredDocument(collection, key, copy.deepcopy(data), version)

    async def create(
        self, collection: str, key: str, data: Mapping[str, Any]
    ) -> StoredDocument:
        """Create a document only if the key is absent.

        Raises:
            DocumentExistsError: Unique key violation.
            StoreUnavailableError: Store offline or failure injected.
        """
        await self._round_trip("create", collection)
        async with self._lock:
            docs = self._docs(collection)
            if key in docs:
                raise DocumentExistsError(collection, key)
            body = copy.deepcopy(dict(data))
            docs[key] = (body, 1)
            return StoredDocument(collection, key, copy.deepcopy(body), 1)

    async def update(
        self,
        collection: str,
        key: str,
        data: Mapping[str, Any],
        expected_version: int,
    ) -> StoredDocument:
        """Compare-and-swap a document body.

        Raises:
            ConcurrentModificationError: Version no longer matches.
            DocumentNotFoundError: No document with this key.
            StoreUnavailableError: Store offline or failure injected.
        """
        await self._round_trip("update", collection)
        async with self._lock:
            docs = self._docs(collection)
            entry = docs.get(key)
            if entry is None:
                raise DocumentNotFoundError(collection, key)
            _, version = entry
            if version != expected_version:
                raise ConcurrentModificationError(
                    collection, key, expected_version, actual_version=version
                )
            body = copy.deepcopy(dict(data))
            docs[key] = (body, version + 1)
            return StoredDocument(collection, key, copy.deepcopy(body), version + 1)

    async def query(self, collection: str, **equals: Any) -> list[StoredDocument]:
        """Return documents whose top-level fields equal the given values."""
        await self._round_trip("query", collection)
        results = []
        for key, (data, version) in self._docs(collection).items():
            if all(data.get(name) == value for name, value in equals.items()):
                results.append(
                    StoredDocument(collection, key, copy.deepcopy(data), version)
                )
        return results

    async def batch_create(
        self, collection: str, items: Mapping[str, Mapping[str, Any]]
    ) -> int:
        """Create several documents, all or nothing.

        Raises:
            DocumentExistsError: Any key already exists (nothing written).
            StoreUnavailableError: Store offline or failure injected.
        """
        await self._round_trip("batch_create", collection)
        async with self._lock:
            docs = self._docs(collection)
            for key in items:
                if key in docs:
                    raise DocumentExistsError(collection, key)
            for key, data in items.items():
                docs[key] = (copy.deepcopy(dict(data)), 1)
            return len(items)

    # Test helper methods

    def set_unavailable(self, unavailable: bool = True) -> None:
        """Make every subsequent operation raise StoreUnavailableError."""
        self._unavailable = unavailable

    def fail_next(
        self, operation: str, collection: str | None = None, times: int = 1
    ) -> None:
        """Make the next `times` calls of `operation` raise StoreUnavailableError.

        Args:
            operation: "get", "create", "update", "query" or "batch_create".
            collection: Restrict the failure to one collection (None = any).
            times: Number of calls to fail.
        """
        self._scheduled_failures[(operation, collection)] = times

    def put(self, collection: str, key: str, data: Mapping[str, Any]) -> None:
        """Seed or overwrite a document directly, bumping its version."""
        docs = self._docs(collection)
        version = docs[key][1] + 1 if key in docs else 1
        docs[key] = (copy.deepcopy(dict(data)), version)

    def peek(self, collection: str, key: str) -> dict[str, Any] | None:
        """Get a stored body for inspection in tests."""
        entry = self._docs(collection).get(key)
        return copy.deepcopy(entry[0]) if entry is not None else None

    def count(self, collection: str) -> int:
        """Number of documents in a collection."""
        return len(self._docs(collection))

    def reset(self) -> None:
        """Reset all stored data. Useful between tests."""
        self._collections.clear()
        self._scheduled_failures.clear()
        self._unavailable = False
        self.operation_counts.clear()
