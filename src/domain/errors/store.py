"""Document store errors.

This module provides exception classes raised by DocumentStoreProtocol
implementations. Conditional-write conflicts are modelled as exceptions
at the store boundary; services translate them into retries or into
ordinary result values.

Constraints:
- A store never applies a partial write when it raises.
- Unavailability is always retryable by the caller.
"""

from __future__ import annotations

from src.domain.exceptions import NagrikError, RetryableError


class StoreError(NagrikError):
    """Base error for document store operations."""

    pass


class StoreUnavailableError(StoreError, RetryableError):
    """Raised when the document store cannot be reached or times out.

    HTTP Status: 503 Service Unavailable

    Attributes:
        operation: The store operation that failed (e.g. "get", "update").
        collection: The collection being accessed.
        reason: Underlying failure description.
    """

    def __init__(
        self,
        operation: str,
        collection: str,
        reason: str | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            operation: The store operation that failed.
            collection: The collection being accessed.
            reason: Underlying failure description.
        """
        self.operation = operation
        self.collection = collection
        self.reason = reason
        message = f"Document store unavailable during {operation} on {collection}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)

    def to_rfc7807_dict(self) -> dict:
        """Serialize to RFC 7807 problem details format.

        Returns:
            Dictionary conforming to RFC 7807 problem details.
        """
        return {
            "type": "urn:nagrik:store:unavailable",
            "title": "Store Unavailable",
            "status": 503,
            "detail": str(self),
            "operation": self.operation,
            "collection": self.collection,
            "retryable": True,
        }


class DocumentExistsError(StoreError):
    """Raised when create-if-absent finds an existing document.

    Attributes:
        collection: The collection written to.
        key: The document key that already exists.
    """

    def __init__(self, collection: str, key: str) -> None:
        self.collection = collection
        self.key = key
        super().__init__(f"Document already exists: {collection}/{key}")


class DocumentNotFoundError(StoreError):
    """Raised when a conditional update targets a missing document.

    Attributes:
        collection: The collection written to.
        key: The document key that was not found.
    """

    def __init__(self, collection: str, key: str) -> None:
        self.collection = collection
        self.key = key
        super().__init__(f"Document not found: {collection}/{key}")


class ConcurrentModificationError(StoreError):
    """Raised when a compare-and-swap update loses to a concurrent writer.

    This is a recoverable error - the caller should re-read the document
    and decide whether to retry or abort.

    Attributes:
        collection: The collection written to.
        key: The document key being updated.
        expected_version: The version the caller read before writing.
        actual_version: The version found at write time (if known).
    """

    def __init__(
        self,
        collection: str,
        key: str,
        expected_version: int,
        actual_version: int | None = None,
    ) -> None:
        """Initialize concurrent modification error.

        Args:
            collection: The collection written to.
            key: The document key being updated.
            expected_version: The version the caller read before writing.
            actual_version: The version found at write time (if known).
        """
        self.collection = collection
        self.key = key
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrent modification detected for {collection}/{key}. "
            f"Expected version: {expected_version}, "
            f"actual version: {actual_version}. "
            "Another writer has modified this document."
        )
