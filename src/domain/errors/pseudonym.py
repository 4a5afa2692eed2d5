"""Pseudonym allocation errors.

This module provides exception classes for nagrik number allocation
failures.

Constraints:
- A degraded allocation is never indistinguishable from a normal one.
- Exhausted retries surface as a retryable failure, never as a silent
  duplicate.
"""

from __future__ import annotations

from src.domain.exceptions import NagrikError, RetryableError


class AllocationError(NagrikError):
    """Base error for pseudonym allocation."""

    pass


class AllocationFailedError(AllocationError, RetryableError):
    """Raised when every allocation attempt lost a conflict.

    HTTP Status: 503 Service Unavailable

    Attributes:
        participant_key: The participant awaiting a pseudonym.
        attempts: Number of attempts made before giving up.
        excluded: Candidate values that were found already claimed.
    """

    def __init__(
        self,
        participant_key: str,
        attempts: int,
        excluded: list[int] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            participant_key: The participant awaiting a pseudonym.
            attempts: Number of attempts made before giving up.
            excluded: Candidate values that were found already claimed.
        """
        self.participant_key = participant_key
        self.attempts = attempts
        self.excluded = list(excluded or [])
        super().__init__(
            f"Pseudonym allocation for participant {participant_key} "
            f"failed after {attempts} attempts"
        )

    def to_rfc7807_dict(self) -> dict:
        """Serialize to RFC 7807 problem details format.

        Returns:
            Dictionary conforming to RFC 7807 problem details.
        """
        return {
            "type": "urn:nagrik:pseudonym:allocation-failed",
            "title": "Pseudonym Allocation Failed",
            "status": 503,
            "detail": str(self),
            "participant_key": self.participant_key,
            "attempts": self.attempts,
            "retryable": True,
        }


class AllocationDegradedError(AllocationError, RetryableError):
    """Raised when only a provisional, collision-prone pseudonym is available.

    The store could not provide a consistent view, so the value was drawn
    from the fallback range without a uniqueness check. It is carried on
    the error so callers can decide to display it provisionally, but it
    must not be persisted as the participant's pseudonym.

    HTTP Status: 503 Service Unavailable

    Attributes:
        participant_key: The participant awaiting a pseudonym.
        provisional_pseudonym: The unverified fallback value.
        reason: Why the principled path could not complete.
    """

    def __init__(
        self,
        participant_key: str,
        provisional_pseudonym: int,
        reason: str | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            participant_key: The participant awaiting a pseudonym.
            provisional_pseudonym: The unverified fallback value.
            reason: Why the principled path could not complete.
        """
        self.participant_key = participant_key
        self.provisional_pseudonym = provisional_pseudonym
        self.reason = reason
        super().__init__(
            f"Pseudonym allocation for participant {participant_key} degraded: "
            f"provisional value {provisional_pseudonym} is not guaranteed unique"
        )

    def to_rfc7807_dict(self) -> dict:
        """Serialize to RFC 7807 problem details format.

        Returns:
            Dictionary conforming to RFC 7807 problem details.
        """
        return {
            "type": "urn:nagrik:pseudonym:allocation-degraded",
            "title": "Pseudonym Allocation Degraded",
            "status": 503,
            "detail": str(self),
            "participant_key": self.participant_key,
            "provisional_pseudonym": self.provisional_pseudonym,
            "retryable": True,
        }
