"""Aggregate read and reconciliation service.

This module implements the AggregateReconciliationProtocol. The contribution
log is the source of truth; aggregates are a denormalized fold of it that
this service can read, verify, rebuild and maintain.

Usage:
    service = AggregateReconciliationService(store)
    snapshot = await service.read(7)
    result = await service.verify(7)
    if not result.is_consistent:
        await service.recompute(7)

Recompute reads the aggregate version before querying contributions and
writes with compare-and-swap on that version. A fold that lands in between
bumps the version, so the rebuild is retried over the fresh log instead of
overwriting the fold.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from structlog import get_logger

from src.application.dtos.aggregate_document import (
    AggregateDocument,
    parse_aggregate,
    serialize_aggregate,
)
from src.application.ports.aggregate_reconciliation import (
    AggregateHealthReport,
    AggregateVerificationResult,
    SchemaMigrationReport,
)
from src.application.ports.document_store import (
    AGGREGATES_COLLECTION,
    CONTRIBUTIONS_COLLECTION,
    FOLD_STATE_FIELD,
    DocumentStoreProtocol,
)
from src.application.services.optimistic_retry import sleep_before_retry
from src.config.ledger_config import DEFAULT_LEDGER_CONFIG, LedgerConfig
from src.domain.errors import (
    AggregateContentionError,
    ConcurrentModificationError,
    ContributionLogUnreadableError,
    DocumentExistsError,
    DocumentNotFoundError,
)
from src.domain.models.constituency_aggregate import ConstituencyAggregate
from src.domain.models.contribution import Contribution

logger = get_logger(__name__)


@dataclass
class _ContributionLog:
    contributions: list[Contribution] = field(default_factory=list)
    # Ids whose incremental fold has not reported back yet
    outstanding: list[str] = field(default_factory=list)
    # Document keys of records that failed to parse
    unreadable: list[str] = field(default_factory=list)


class AggregateReconciliationService:
    """Service for reading, verifying and rebuilding constituency aggregates.

    Attributes:
        _store: Document store holding contributions and aggregates.
        _config: Ledger tuning (retry bounds, known constituency range).
    """

    def __init__(
        self,
        store: DocumentStoreProtocol,
        config: LedgerConfig | None = None,
    ) -> None:
        self._store = store
        self._config = config or DEFAULT_LEDGER_CONFIG

    async def read(self, constituency_id: int) -> ConstituencyAggregate:
        """Return the stored aggregate, or a zero-valued one if none exists.

        Raises:
            StoreUnavailableError: Store could not be reached.
        """
        doc = await self._store.get(AGGREGATES_COLLECTION, str(constituency_id))
        if doc is None:
            return ConstituencyAggregate.empty(constituency_id)
        return parse_aggregate(doc.data, constituency_id)

    async def read_all(self) -> list[ConstituencyAggregate]:
        """Return every stored aggregate ordered by constituency id.

        Documents whose key is not a constituency id are skipped and logged;
        health_check reports them.

        Raises:
            StoreUnavailableError: Store could not be reached.
            ValueError: A stored aggregate body is invalid.
        """
        docs = await self._store.query(AGGREGATES_COLLECTION)
        aggregates = []
        for doc in docs:
            try:
                constituency_id = int(doc.key)
            except ValueError:
                logger.warning("aggregate_key_invalid", key=doc.key)
                continue
            aggregates.append(parse_aggregate(doc.data, constituency_id))
        return sorted(aggregates, key=lambda a: a.constituency_id)

    async def _load_log(self, constituency_id: int) -> _ContributionLog:
        docs = await self._store.query(
            CONTRIBUTIONS_COLLECTION, constituency_id=constituency_id
        )
        contribution_log = _ContributionLog()
        for doc in docs:
            try:
                contribution = Contribution.from_dict(doc.data)
            except (KeyError, ValueError) as e:
                logger.error(
                    "contribution_unreadable",
                    constituency_id=constituency_id,
                    key=doc.key,
                    error=str(e),
                )
                contribution_log.unreadable.append(doc.key)
                continue
            contribution_log.contributions.append(contribution)
            if FOLD_STATE_FIELD not in doc.data:
                contribution_log.outstanding.append(str(contribution.contribution_id))
        return contribution_log

    async def recompute(self, constituency_id: int) -> ConstituencyAggregate:
        """Rebuild the aggregate from every contribution and overwrite it.

        Contributions whose incremental fold is still outstanding are counted
        and listed in `pending_fold_ids`, so their fold does not count them a
        second time.

        Raises:
            ContributionLogUnreadableError: A contribution record could not
                be parsed; the stored aggregate is left untouched.
            AggregateContentionError: Every attempt raced a concurrent write.
            StoreUnavailableError: Store could not be reached.
        """
        log = logger.bind(constituency_id=constituency_id)
        key = str(constituency_id)
        max_attempts = self._config.fold_max_attempts

        for attempt in range(1, max_attempts + 1):
            doc = await self._store.get(AGGREGATES_COLLECTION, key)
            contribution_log = await self._load_log(constituency_id)
            if contribution_log.unreadable:
                log.error(
                    "aggregate_recompute_refused",
                    unreadable=contribution_log.unreadable,
                    alert_severity="MEDIUM",
                )
                raise ContributionLogUnreadableError(
                    constituency_id, tuple(sorted(contribution_log.unreadable))
                )
            rebuilt = ConstituencyAggregate.from_contributions(
                constituency_id, contribution_log.contributions
            ).with_pending(contribution_log.outstanding)
            try:
                if doc is None:
                    await self._store.create(
                        AGGREGATES_COLLECTION, key, serialize_aggregate(rebuilt)
                    )
                else:
                    await self._store.update(
                        AGGREGATES_COLLECTION,
                        key,
                        serialize_aggregate(rebuilt),
                        expected_version=doc.version,
                    )
            except (DocumentExistsError, ConcurrentModificationError):
                log.debug("aggregate_recompute_conflict", attempt=attempt)
                if attempt < max_attempts:
                    await sleep_before_retry(
                        attempt,
                        self._config.backoff_base_seconds,
                        self._config.backoff_max_seconds,
                    )
                continue

            log.info(
                "aggregate_recomputed",
                contribution_count=rebuilt.contribution_count,
                pending=len(rebuilt.pending_fold_ids),
                attempts=attempt,
            )
            return rebuilt

        log.error("aggregate_recompute_exhausted", attempts=max_attempts)
        raise AggregateContentionError(constituency_id, "recompute", max_attempts)

    async def verify(self, constituency_id: int) -> AggregateVerificationResult:
        """Compare the stored aggregate against its contribution log.

        Nothing is written. Drift and corrupted contributions are logged at
        WARNING with a MEDIUM alert severity. Unreadable contribution records
        are reported by document key among the corrupted contributions.
        """
        log = logger.bind(constituency_id=constituency_id)

        stored = await self.read(constituency_id)
        contribution_log = await self._load_log(constituency_id)
        recomputed = ConstituencyAggregate.from_contributions(
            constituency_id, contribution_log.contributions
        )
        corrupted = tuple(
            sorted(
                [
                    str(c.contribution_id)
                    for c in contribution_log.contributions
                    if not c.verify_content_hash()
                ]
                + contribution_log.unreadable
            )
        )
        is_consistent = stored.is_equivalent(recomputed) and not corrupted

        result = AggregateVerificationResult(
            constituency_id=constituency_id,
            stored=stored,
            recomputed=recomputed,
            is_consistent=is_consistent,
            corrupted_contributions=corrupted,
        )

        if is_consistent:
            log.debug(
                "aggregate_verified",
                contribution_count=stored.contribution_count,
                result="consistent",
            )
        else:
            log.warning(
                "aggregate_drift_detected",
                stored_count=stored.contribution_count,
                recomputed_count=recomputed.contribution_count,
                discrepancy=result.contribution_discrepancy,
                corrupted_contributions=list(corrupted),
                alert_severity="MEDIUM",
                result="inconsistent",
            )
        return result

    async def verify_batch(
        self, constituency_ids: Iterable[int]
    ) -> list[AggregateVerificationResult]:
        """Verify several constituencies sequentially."""
        ids = list(constituency_ids)
        log = logger.bind(batch_size=len(ids))
        log.info("aggregate_batch_verification_started")

        results = [await self.verify(constituency_id) for constituency_id in ids]
        inconsistent = sum(1 for r in results if not r.is_consistent)

        log.info(
            "aggregate_batch_verification_completed",
            total=len(ids),
            consistent=len(ids) - inconsistent,
            inconsistent=inconsistent,
        )
        return results

    def _range(self, first_id: int | None, last_id: int | None) -> range:
        first = self._config.constituency_first if first_id is None else first_id
        last = self._config.constituency_last if last_id is None else last_id
        if first < 1 or last < first:
            raise ValueError(f"invalid constituency range {first}..{last}")
        return range(first, last + 1)

    async def bootstrap(
        self, first_id: int | None = None, last_id: int | None = None
    ) -> int:
        """Create zero aggregates for constituencies lacking one.

        Missing aggregates are written in one all-or-nothing batch.

        Returns:
            Number of aggregates created.

        Raises:
            ValueError: If the range is empty or not positive.
            DocumentExistsError: An aggregate appeared concurrently; nothing
                was written and the call can be repeated.
            StoreUnavailableError: Store could not be reached.
        """
        wanted = self._range(first_id, last_id)
        existing = {doc.key for doc in await self._store.query(AGGREGATES_COLLECTION)}
        missing = {
            str(cid): serialize_aggregate(ConstituencyAggregate.empty(cid))
            for cid in wanted
            if str(cid) not in existing
        }
        if not missing:
            logger.info("aggregate_bootstrap_skipped", reason="all_present")
            return 0

        created = await self._store.batch_create(AGGREGATES_COLLECTION, missing)
        logger.info(
            "aggregate_bootstrap_completed",
            created=created,
            first_id=wanted.start,
            last_id=wanted.stop - 1,
        )
        return created

    async def health_check(
        self, first_id: int | None = None, last_id: int | None = None
    ) -> AggregateHealthReport:
        """Inspect the aggregate collection for gaps and legacy documents."""
        wanted = self._range(first_id, last_id)
        docs = await self._store.query(AGGREGATES_COLLECTION)

        issues: list[str] = []
        seen: set[int] = set()
        valid = 0
        for doc in sorted(docs, key=lambda d: d.key):
            try:
                constituency_id = int(doc.key)
            except ValueError:
                issues.append(f"aggregate key {doc.key!r} is not a constituency id")
                continue
            seen.add(constituency_id)
            if constituency_id not in wanted:
                issues.append(f"constituency {constituency_id} is outside the known range")
                continue
            if AggregateDocument.needs_migration(doc.data):
                issues.append(
                    f"constituency {constituency_id} is on schema version "
                    f"{doc.data.get('schema_version', 1)}"
                )
                continue
            valid += 1

        missing = [cid for cid in wanted if cid not in seen]
        if missing:
            issues.append(f"{len(missing)} constituencies have no aggregate")

        report = AggregateHealthReport(
            is_healthy=not issues,
            valid_count=valid,
            total_count=len(docs),
            issues=tuple(issues),
        )
        if report.is_healthy:
            logger.info("aggregate_health_ok", valid_count=valid)
        else:
            logger.warning(
                "aggregate_health_degraded",
                valid_count=valid,
                total_count=len(docs),
                issue_count=len(issues),
                alert_severity="MEDIUM",
            )
        return report

    async def migrate_schema(self) -> SchemaMigrationReport:
        """Rewrite legacy aggregate documents onto the current schema.

        Each rewrite is conditional on the version that was read, so a fold
        landing concurrently is never overwritten; such documents are
        reported as failed and can be migrated on a later run.
        """
        report = SchemaMigrationReport()
        docs = await self._store.query(AGGREGATES_COLLECTION)
        logger.info("aggregate_schema_migration_started", total=len(docs))

        for doc in sorted(docs, key=lambda d: d.key):
            report.total += 1
            if not AggregateDocument.needs_migration(doc.data):
                report.current += 1
                continue
            try:
                body = serialize_aggregate(parse_aggregate(doc.data, int(doc.key)))
                await self._store.update(
                    AGGREGATES_COLLECTION,
                    doc.key,
                    body,
                    expected_version=doc.version,
                )
            except (
                ValueError,
                ConcurrentModificationError,
                DocumentNotFoundError,
            ) as e:
                report.failed += 1
                report.failures[doc.key] = str(e)
                logger.error(
                    "aggregate_schema_migration_failed",
                    key=doc.key,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                continue
            report.migrated += 1
            logger.info("aggregate_schema_migrated", key=doc.key)

        logger.info(
            "aggregate_schema_migration_completed",
            total=report.total,
            migrated=report.migrated,
            current=report.current,
            failed=report.failed,
        )
        return report
