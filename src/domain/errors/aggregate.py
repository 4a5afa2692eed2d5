"""Constituency aggregate errors.

Constraints:
- Losing every optimistic retry on an aggregate leaves the stored document
  untouched; the contribution log stays the source of truth.
"""

from __future__ import annotations

from src.domain.exceptions import NagrikError, RetryableError


class AggregateError(NagrikError):
    """Base error for aggregate maintenance."""

    pass


class AggregateContentionError(AggregateError, RetryableError):
    """Raised when every compare-and-swap attempt on an aggregate conflicted.

    HTTP Status: 503 Service Unavailable

    Attributes:
        constituency_id: The contended aggregate.
        operation: "fold", "recompute" or "migrate".
        attempts: Number of attempts made.
    """

    def __init__(self, constituency_id: int, operation: str, attempts: int) -> None:
        """Initialize the error.

        Args:
            constituency_id: The contended aggregate.
            operation: The maintenance operation that gave up.
            attempts: Number of attempts made.
        """
        self.constituency_id = constituency_id
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"Aggregate {constituency_id} {operation} lost {attempts} "
            "concurrent modification races"
        )

    def to_rfc7807_dict(self) -> dict:
        """Serialize to RFC 7807 problem details format.

        Returns:
            Dictionary conforming to RFC 7807 problem details.
        """
        return {
            "type": "urn:nagrik:aggregate:contention",
            "title": "Aggregate Contention",
            "status": 503,
            "detail": str(self),
            "constituency_id": self.constituency_id,
            "operation": self.operation,
            "attempts": self.attempts,
            "retryable": True,
        }


class ContributionLogUnreadableError(AggregateError):
    """Raised when a recompute meets contribution records it cannot parse.

    Overwriting the aggregate without them would silently drop accepted
    contributions, so the stored aggregate is left as it is.

    HTTP Status: 409 Conflict

    Attributes:
        constituency_id: The aggregate that was not rebuilt.
        keys: Document keys of the unreadable contribution records.
    """

    def __init__(self, constituency_id: int, keys: tuple[str, ...]) -> None:
        self.constituency_id = constituency_id
        self.keys = keys
        super().__init__(
            f"Aggregate {constituency_id} not recomputed: "
            f"{len(keys)} unreadable contribution record(s): {', '.join(keys)}"
        )

    def to_rfc7807_dict(self) -> dict:
        return {
            "type": "urn:nagrik:aggregate:contribution-log-unreadable",
            "title": "Contribution Log Unreadable",
            "status": 409,
            "detail": str(self),
            "constituency_id": self.constituency_id,
            "keys": list(self.keys),
            "retryable": False,
        }
