"""Pseudonym allocator protocol.

This module defines the contract for issuing nagrik numbers to participants.
Follows hexagonal architecture with port/adapter pattern.

Constraints:
- Pseudonyms are unique across all participants, even under concurrency
- Pseudonyms are >= the configured base value (1001)
- Allocation is idempotent per participant
- A degraded (unverified) value is always flagged as such
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class PseudonymAllocation:
    """Result of a pseudonym allocation.

    Attributes:
        participant_key: The participant the value belongs to.
        pseudonym: The issued nagrik number.
        degraded: True if the value came from the random fallback range and
            carries no uniqueness guarantee. Degraded values are not persisted.
        already_assigned: True if the participant already held this value.
        attempts: CAS attempts used (0 for already-assigned or degraded).
    """

    participant_key: str
    pseudonym: int
    degraded: bool = False
    already_assigned: bool = False
    attempts: int = 0


@dataclass
class PseudonymBackfillReport:
    """Summary of a pseudonym backfill over existing participants."""

    total: int = 0
    migrated: int = 0
    skipped: int = 0
    failed: int = 0
    failures: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PseudonymUniquenessReport:
    """Result of scanning participants for missing or duplicate pseudonyms.

    Attributes:
        total: Participants scanned.
        with_pseudonym: Participants that hold a pseudonym.
        missing: Keys of participants without a pseudonym.
        duplicates: Pseudonym -> keys of every participant sharing it.
        below_base: Keys of participants holding a value under the base.
    """

    total: int
    with_pseudonym: int
    missing: tuple[str, ...] = ()
    duplicates: dict[int, tuple[str, ...]] = field(default_factory=dict)
    below_base: tuple[str, ...] = ()

    @property
    def is_unique(self) -> bool:
        return not self.duplicates and not self.below_base


class PseudonymAllocatorProtocol(Protocol):
    """Protocol for nagrik number allocation."""

    @abstractmethod
    async def allocate(
        self,
        participant_key: str,
        *,
        accept_degraded: bool = True,
    ) -> PseudonymAllocation:
        """Return the participant's pseudonym, issuing one if needed.

        Args:
            participant_key: Opaque identity key of the participant.
            accept_degraded: If False, a degraded fallback raises instead of
                being returned.

        Returns:
            PseudonymAllocation with the value and its degraded flag.

        Raises:
            AllocationFailedError: Every CAS attempt lost a conflict.
            AllocationDegradedError: Store unavailable and accept_degraded
                is False.
        """
        ...

    @abstractmethod
    async def backfill(
        self, participant_keys: Iterable[str] | None = None
    ) -> PseudonymBackfillReport:
        """Assign pseudonyms to existing participants that lack one."""
        ...

    @abstractmethod
    async def verify_uniqueness(self) -> PseudonymUniquenessReport:
        """Scan participants for missing and duplicate pseudonyms."""
        ...
