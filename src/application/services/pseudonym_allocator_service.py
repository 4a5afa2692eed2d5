"""Pseudonym allocator service implementation.

This module implements the PseudonymAllocatorProtocol: it issues each
participant a nagrik number, a small human-readable integer starting at the
configured base (1001), unique across all participants.

Allocation runs on three documents, each written with a single-document
conditional write:
1. The counter (COUNTERS/<counter_key>) holds the highest value issued. It
   is advanced with compare-and-swap, so concurrent allocators serialize on
   it and every winner gets a strictly larger value.
2. The claim (PSEUDONYM_CLAIMS/<value>) is created only if absent. It guards
   values written outside the counter (backfills, imported data).
3. The participant record receives the value with compare-and-swap. A
   concurrent allocation for the same participant may have won; its value
   is returned instead.

Constraints:
- Unique values, all >= base_value, even under concurrency
- Idempotent per participant
- Bounded retries with jittered exponential backoff
- A store outage yields a flagged, unpersisted degraded value
"""

from __future__ import annotations

import random
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from structlog import get_logger

from src.application.ports.document_store import (
    COUNTERS_COLLECTION,
    PARTICIPANTS_COLLECTION,
    PSEUDONYM_CLAIMS_COLLECTION,
    DocumentStoreProtocol,
    StoredDocument,
)
from src.application.ports.pseudonym_allocator import (
    PseudonymAllocation,
    PseudonymBackfillReport,
    PseudonymUniquenessReport,
)
from src.application.services.optimistic_retry import sleep_before_retry
from src.config.ledger_config import DEFAULT_PSEUDONYM_CONFIG, PseudonymConfig
from src.domain.errors import (
    AllocationDegradedError,
    AllocationError,
    AllocationFailedError,
    ConcurrentModificationError,
    DocumentExistsError,
    StoreUnavailableError,
)
from src.domain.models.participant import Participant, PseudonymCounter

logger = get_logger(__name__)


class _Conflict(Exception):
    """A conditional write lost a race; the attempt should be retried."""


class PseudonymAllocatorService:
    """Service issuing nagrik numbers to participants.

    Example:
        >>> allocator = PseudonymAllocatorService(store=store)
        >>> allocation = await allocator.allocate("firebase-uid-123")
        >>> allocation.pseudonym
        1001
    """

    def __init__(
        self,
        store: DocumentStoreProtocol,
        config: PseudonymConfig | None = None,
    ) -> None:
        """Initialize the allocator.

        Args:
            store: Document store holding participants, counter and claims.
            config: Allocation tuning (defaults to DEFAULT_PSEUDONYM_CONFIG).
        """
        self._store = store
        self._config = config or DEFAULT_PSEUDONYM_CONFIG

    @property
    def config(self) -> PseudonymConfig:
        return self._config

    async def allocate(
        self,
        participant_key: str,
        *,
        accept_degraded: bool = True,
    ) -> PseudonymAllocation:
        """Return the participant's pseudonym, issuing one if needed.

        Args:
            participant_key: Opaque identity key of the participant.
            accept_degraded: If False, raise AllocationDegradedError instead
                of returning a degraded value.

        Returns:
            PseudonymAllocation with the value and its degraded flag.

        Raises:
            ValueError: If participant_key is empty.
            AllocationFailedError: Every attempt lost a conflict.
            AllocationDegradedError: Store unavailable and accept_degraded
                is False.
        """
        if not participant_key:
            raise ValueError("participant_key must not be empty")

        log = logger.bind(participant_key=participant_key)

        try:
            return await self._allocate_principled(participant_key)
        except StoreUnavailableError as e:
            provisional = random.randint(
                self._config.base_value, self._config.fallback_max
            )
            log.warning(
                "pseudonym_allocation_degraded",
                provisional_pseudonym=provisional,
                operation=e.operation,
                collection=e.collection,
                reason=str(e),
            )
            if not accept_degraded:
                raise AllocationDegradedError(
                    participant_key, provisional, reason=str(e)
                ) from e
            return PseudonymAllocation(
                participant_key=participant_key,
                pseudonym=provisional,
                degraded=True,
            )

    async def _allocate_principled(self, participant_key: str) -> PseudonymAllocation:
        log = logger.bind(participant_key=participant_key)

        participant_doc = await self._store.get(PARTICIPANTS_COLLECTION, participant_key)
        existing = _assigned_pseudonym(participant_doc)
        if existing is not None:
            log.debug("pseudonym_already_assigned", pseudonym=existing)
            return PseudonymAllocation(
                participant_key=participant_key,
                pseudonym=existing,
                already_assigned=True,
            )

        excluded: list[int] = []
        max_attempts = self._config.max_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                candidate = await self._advance_counter(excluded)
            except _Conflict:
                log.debug("pseudonym_counter_conflict", attempt=attempt)
                await self._backoff(attempt, max_attempts)
                continue

            try:
                await self._store.create(
                    PSEUDONYM_CLAIMS_COLLECTION,
                    str(candidate),
                    {
                        "pseudonym": candidate,
                        "participant_key": participant_key,
                        "claimed_at": datetime.now(timezone.utc).isoformat(),
                    },
                )
            except DocumentExistsError:
                log.info(
                    "pseudonym_candidate_taken",
                    candidate=candidate,
                    attempt=attempt,
                )
                excluded.append(candidate)
                await self._backoff(attempt, max_attempts)
                continue

            pseudonym = await self._bind(participant_key, candidate, participant_doc)
            if pseudonym != candidate:
                # A concurrent allocation for the same participant won.
                log.warning(
                    "pseudonym_claim_orphaned",
                    orphaned_pseudonym=candidate,
                    pseudonym=pseudonym,
                )
                return PseudonymAllocation(
                    participant_key=participant_key,
                    pseudonym=pseudonym,
                    already_assigned=True,
                    attempts=attempt,
                )

            log.info("pseudonym_allocated", pseudonym=pseudonym, attempts=attempt)
            return PseudonymAllocation(
                participant_key=participant_key,
                pseudonym=pseudonym,
                attempts=attempt,
            )

        log.error(
            "pseudonym_allocation_exhausted",
            attempts=max_attempts,
            excluded=excluded,
        )
        raise AllocationFailedError(participant_key, max_attempts, excluded)

    async def _advance_counter(self, excluded: list[int]) -> int:
        """Move the counter to the next free candidate and return it.

        Raises:
            _Conflict: Another allocator advanced the counter first.
        """
        key = self._config.counter_key
        doc = await self._store.get(COUNTERS_COLLECTION, key)
        counter = PseudonymCounter(
            highest_issued=int(doc.data.get("highest_issued", 0)) if doc else 0
        )
        candidate = counter.next_candidate(self._config.base_value, excluded)
        body = {"highest_issued": candidate}
        try:
            if doc is None:
                await self._store.create(COUNTERS_COLLECTION, key, body)
            else:
                await self._store.update(
                    COUNTERS_COLLECTION, key, body, expected_version=doc.version
                )
        except (DocumentExistsError, ConcurrentModificationError) as e:
            raise _Conflict() from e
        return candidate

    async def _bind(
        self,
        participant_key: str,
        candidate: int,
        participant_doc: StoredDocument | None,
    ) -> int:
        """Write the claimed value onto the participant record.

        Returns:
            The participant's pseudonym after the write. Differs from
            `candidate` only if a concurrent allocation for the same
            participant was stored first.
        """
        doc = participant_doc
        for attempt in range(1, self._config.max_attempts + 1):
            try:
                if doc is None:
                    body = Participant(participant_key, pseudonym=candidate).to_dict()
                    await self._store.create(PARTICIPANTS_COLLECTION, participant_key, body)
                else:
                    body = dict(doc.data)
                    body["participant_key"] = participant_key
                    body["nagrik_number"] = candidate
                    await self._store.update(
                        PARTICIPANTS_COLLECTION,
                        participant_key,
                        body,
                        expected_version=doc.version,
                    )
                return candidate
            except (DocumentExistsError, ConcurrentModificationError):
                doc = await self._store.get(PARTICIPANTS_COLLECTION, participant_key)
                winner = _assigned_pseudonym(doc)
                if winner is not None:
                    return winner
                # Profile changed concurrently; retry on the fresh version.
                await self._backoff(attempt, self._config.max_attempts)

        raise AllocationFailedError(participant_key, self._config.max_attempts)

    async def _backoff(self, attempt: int, max_attempts: int) -> None:
        if attempt < max_attempts:
            await sleep_before_retry(
                attempt,
                self._config.backoff_base_seconds,
                self._config.backoff_max_seconds,
            )

    async def backfill(
        self, participant_keys: Iterable[str] | None = None
    ) -> PseudonymBackfillReport:
        """Assign pseudonyms to existing participants that lack one.

        Only the principled path is used: a participant whose allocation
        would degrade is reported as failed and left untouched.

        Args:
            participant_keys: Participants to process. None scans every
                stored participant.

        Raises:
            StoreUnavailableError: The participant scan itself failed.
        """
        report = PseudonymBackfillReport()

        if participant_keys is None:
            docs = await self._store.query(PARTICIPANTS_COLLECTION)
            keys = sorted(doc.key for doc in docs)
        else:
            keys = list(participant_keys)

        logger.info("pseudonym_backfill_started", total=len(keys))

        for key in keys:
            report.total += 1
            try:
                allocation = await self.allocate(key, accept_degraded=False)
            except AllocationError as e:
                report.failed += 1
                report.failures[key] = str(e)
                logger.error("pseudonym_backfill_failed", participant_key=key, error=str(e))
                continue
            if allocation.already_assigned:
                report.skipped += 1
            else:
                report.migrated += 1

        logger.info(
            "pseudonym_backfill_completed",
            total=report.total,
            migrated=report.migrated,
            skipped=report.skipped,
            failed=report.failed,
        )
        return report

    async def verify_uniqueness(self) -> PseudonymUniquenessReport:
        """Scan participants for missing and duplicate pseudonyms.

        Raises:
            StoreUnavailableError: Store could not be reached.
        """
        docs = await self._store.query(PARTICIPANTS_COLLECTION)

        holders: dict[int, list[str]] = {}
        missing: list[str] = []
        below_base: list[str] = []
        for doc in sorted(docs, key=lambda d: d.key):
            pseudonym = _assigned_pseudonym(doc)
            if pseudonym is None:
                missing.append(doc.key)
                continue
            holders.setdefault(pseudonym, []).append(doc.key)
            if pseudonym < self._config.base_value:
                below_base.append(doc.key)

        duplicates = {
            value: tuple(keys) for value, keys in holders.items() if len(keys) > 1
        }
        report = PseudonymUniquenessReport(
            total=len(docs),
            with_pseudonym=len(docs) - len(missing),
            missing=tuple(missing),
            duplicates=duplicates,
            below_base=tuple(below_base),
        )

        if report.is_unique:
            logger.info(
                "pseudonym_uniqueness_verified",
                total=report.total,
                missing=len(report.missing),
            )
        else:
            logger.warning(
                "pseudonym_uniqueness_violated",
                duplicate_values=sorted(duplicates),
                below_base=list(below_base),
                alert_severity="HIGH",
            )
        return report


def _assigned_pseudonym(doc: StoredDocument | None) -> int | None:
    if doc is None:
        return None
    value: Any = doc.data.get("nagrik_number")
    return int(value) if value else None
