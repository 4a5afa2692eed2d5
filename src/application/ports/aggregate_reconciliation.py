"""Port for aggregate reads and reconciliation.

This module defines the protocol for reading constituency aggregates and for
rebuilding them from the contribution log, which is the source of truth.

Use Cases:
- Point-in-time aggregate reads for the UI
- On-demand repair after a fold was interrupted
- Drift detection without writing
- Bootstrapping aggregates for the known constituency range
- Migrating legacy aggregate documents to the current schema
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from src.domain.models.constituency_aggregate import ConstituencyAggregate


@dataclass(frozen=True)
class AggregateVerificationResult:
    """Result of comparing a stored aggregate against its contribution log.

    Attributes:
        constituency_id: The constituency verified.
        stored: The aggregate currently stored (zero-valued if absent).
        recomputed: The aggregate rebuilt from the contribution log.
        is_consistent: True if both agree within float tolerance.
        corrupted_contributions: Ids of contributions whose content hash
            does not match their fields, and document keys of contribution
            records that could not be parsed.
    """

    constituency_id: int
    stored: ConstituencyAggregate
    recomputed: ConstituencyAggregate
    is_consistent: bool
    corrupted_contributions: tuple[str, ...] = ()

    @property
    def contribution_discrepancy(self) -> int:
        """Stored minus recomputed contribution count."""
        return self.stored.contribution_count - self.recomputed.contribution_count


@dataclass(frozen=True)
class AggregateHealthReport:
    """Health of the aggregate collection over the known constituency range.

    Attributes:
        is_healthy: True if every known constituency has a current aggregate
            and no issues were found.
        valid_count: Aggregates in range on the current schema.
        total_count: Aggregate documents found.
        issues: Human-readable problems.
    """

    is_healthy: bool
    valid_count: int
    total_count: int
    issues: tuple[str, ...] = ()


@dataclass
class SchemaMigrationReport:
    """Summary of an aggregate schema migration."""

    total: int = 0
    migrated: int = 0
    current: int = 0
    failed: int = 0
    failures: dict[str, str] = field(default_factory=dict)


class AggregateReconciliationProtocol(Protocol):
    """Protocol for aggregate reads, recomputation and maintenance."""

    async def read(self, constituency_id: int) -> ConstituencyAggregate:
        """Return the stored aggregate, or a zero-valued one if none exists.

        Raises:
            StoreUnavailableError: Store could not be reached.
        """
        ...

    async def read_all(self) -> list[ConstituencyAggregate]:
        """Return every stored aggregate ordered by constituency id."""
        ...

    async def recompute(self, constituency_id: int) -> ConstituencyAggregate:
        """Rebuild the aggregate from every contribution and overwrite it.

        The overwrite is a single conditional write: all or nothing.

        Raises:
            ContributionLogUnreadableError: A contribution record could not
                be parsed; the stored aggregate is left untouched.
            StoreUnavailableError: Store could not be reached.
        """
        ...

    async def verify(self, constituency_id: int) -> AggregateVerificationResult:
        """Compare stored and recomputed aggregates without writing."""
        ...

    async def verify_batch(
        self, constituency_ids: Iterable[int]
    ) -> list[AggregateVerificationResult]:
        """Verify several constituencies sequentially."""
        ...

    async def bootstrap(
        self, first_id: int | None = None, last_id: int | None = None
    ) -> int:
        """Create zero aggregates for constituencies lacking one.

        Returns:
            Number of aggregates created.
        """
        ...

    async def health_check(
        self, first_id: int | None = None, last_id: int | None = None
    ) -> AggregateHealthReport:
        """Inspect the aggregate collection for gaps and legacy documents."""
        ...

    async def migrate_schema(self) -> SchemaMigrationReport:
        """Rewrite legacy aggregate documents onto the current schema."""
        ...
