"""Contribution submission service implementation.

This module implements the ContributionSubmissionProtocol: intake of
satisfaction votes, department ratings and manifesto scores, followed by
an incremental fold into the constituency aggregate.

Constraints:
- At most one contribution per (participant, constituency, metric)
- Duplicates and out-of-domain values are ordinary outcomes
- The contribution is durable before the fold is attempted
- The fold is compare-and-swap with bounded retry; no lost updates
- A fold that cannot complete leaves the contribution in place for
  reconciliation
- The contribution record notes whether its fold landed or was deferred,
  which lets a concurrent recompute avoid counting it twice
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from structlog import get_logger

from src.application.dtos.aggregate_document import (
    parse_aggregate,
    serialize_aggregate,
)
from src.application.ports.contribution_submission import (
    SubmissionOutcome,
    SubmissionResult,
)
from src.application.ports.document_store import (
    AGGREGATES_COLLECTION,
    CONTRIBUTIONS_COLLECTION,
    FOLD_STATE_DEFERRED,
    FOLD_STATE_FIELD,
    FOLD_STATE_FOLDED,
    DocumentStoreProtocol,
    StoredDocument,
)
from src.application.services.optimistic_retry import sleep_before_retry
from src.config.ledger_config import DEFAULT_LEDGER_CONFIG, LedgerConfig
from src.domain.errors import (
    AggregateContentionError,
    ConcurrentModificationError,
    DocumentExistsError,
    DocumentNotFoundError,
    StoreUnavailableError,
)
from src.domain.models.constituency_aggregate import ConstituencyAggregate
from src.domain.models.contribution import (
    Contribution,
    MetricKind,
    contribution_key,
    value_rejection_reason,
)

logger = get_logger(__name__)


class ContributionSubmissionService:
    """Service for submitting contributions to the aggregate ledger.

    The service ensures:
    1. Values are validated before the store is touched
    2. A second answer to the same metric is rejected as a duplicate
    3. The contribution is written with create-if-absent
    4. The aggregate fold never loses a concurrent update

    Example:
        >>> service = ContributionSubmissionService(store=store)
        >>> result = await service.submit(
        ...     participant_key="uid-1",
        ...     constituency_id=7,
        ...     metric=MetricKind.satisfaction(),
        ...     value=True,
        ... )
        >>> result.outcome
        <SubmissionOutcome.ACCEPTED: 'accepted'>
    """

    def __init__(
        self,
        store: DocumentStoreProtocol,
        config: LedgerConfig | None = None,
    ) -> None:
        """Initialize the submission service.

        Args:
            store: Document store holding contributions and aggregates.
            config: Ledger tuning (defaults to DEFAULT_LEDGER_CONFIG).
        """
        self._store = store
        self._config = config or DEFAULT_LEDGER_CONFIG

    async def submit(
        self,
        participant_key: str,
        constituency_id: int,
        metric: MetricKind,
        value: bool | int | None,
    ) -> SubmissionResult:
        """Submit one contribution.

        Args:
            participant_key: Opaque identity key of the contributor.
            constituency_id: Constituency the answer is about.
            metric: Which question is answered.
            value: The answer.

        Returns:
            SubmissionResult classifying the submission.

        Raises:
            StoreUnavailableError: Store failed before the contribution was
                durably recorded.
        """
        log = logger.bind(
            participant_key=participant_key,
            constituency_id=constituency_id,
            metric=metric.key,
        )

        reason = self._rejection_reason(participant_key, constituency_id, metric, value)
        if reason is not None:
            log.info("contribution_validation_rejected", reason=reason)
            return SubmissionResult(
                outcome=SubmissionOutcome.VALIDATION_REJECTED,
                participant_key=participant_key,
                constituency_id=constituency_id,
                metric=metric,
                reason=reason,
            )

        key = contribution_key(participant_key, constituency_id, metric)

        # Pre-check avoids a wasted write on the common repeat-answer path.
        existing = await self._store.get(CONTRIBUTIONS_COLLECTION, key)
        if existing is not None:
            log.info(
                "duplicate_contribution_rejected",
                detection_method="pre_persistence_check",
            )
            return self._duplicate(participant_key, constituency_id, metric, existing.data)

        contribution = Contribution(
            contribution_id=uuid4(),
            participant_key=participant_key,
            constituency_id=constituency_id,
            metric=metric,
            value=value,
            submitted_at=datetime.now(timezone.utc),
        )

        try:
            recorded = await self._store.create(
                CONTRIBUTIONS_COLLECTION, key, contribution.to_dict()
            )
        except DocumentExistsError:
            # A concurrent submission for the same tuple won the write.
            log.warning(
                "duplicate_contribution_rejected",
                detection_method="create_if_absent",
            )
            winner = await self._store.get(CONTRIBUTIONS_COLLECTION, key)
            return self._duplicate(
                participant_key,
                constituency_id,
                metric,
                winner.data if winner is not None else {},
            )

        log = log.bind(contribution_id=str(contribution.contribution_id))
        log.info("contribution_recorded")

        try:
            aggregate = await self._fold(contribution)
        except (AggregateContentionError, StoreUnavailableError, ValueError) as e:
            # ValueError covers a stored aggregate body that fails validation.
            log.error(
                "aggregate_fold_deferred",
                error=str(e),
                error_type=type(e).__name__,
                message="Contribution recorded; aggregate requires recompute",
            )
            await self._record_fold_state(recorded, FOLD_STATE_DEFERRED)
            return SubmissionResult(
                outcome=SubmissionOutcome.ACCEPTED,
                participant_key=participant_key,
                constituency_id=constituency_id,
                metric=metric,
                contribution_id=contribution.contribution_id,
                submitted_at=contribution.submitted_at,
                folded=False,
            )

        await self._record_fold_state(recorded, FOLD_STATE_FOLDED)
        log.info(
            "contribution_folded",
            contribution_count=aggregate.contribution_count,
        )
        return SubmissionResult(
            outcome=SubmissionOutcome.ACCEPTED,
            participant_key=participant_key,
            constituency_id=constituency_id,
            metric=metric,
            contribution_id=contribution.contribution_id,
            submitted_at=contribution.submitted_at,
            folded=True,
            aggregate=aggregate,
        )

    async def responses(
        self,
        participant_key: str,
        constituency_id: int | None = None,
    ) -> list[Contribution]:
        """List a participant's recorded contributions, oldest first.

        Args:
            participant_key: Opaque identity key of the contributor.
            constituency_id: Restrict to one constituency; None for all.

        Raises:
            StoreUnavailableError: Store could not be reached.
        """
        if not participant_key:
            return []
        filters: dict[str, Any] = {"participant_key": participant_key}
        if constituency_id is not None:
            filters["constituency_id"] = constituency_id
        docs = await self._store.query(CONTRIBUTIONS_COLLECTION, **filters)

        contributions = []
        for doc in docs:
            try:
                contributions.append(Contribution.from_dict(doc.data))
            except (KeyError, ValueError) as e:
                # verify and recompute report these per constituency
                logger.error(
                    "contribution_unreadable",
                    participant_key=participant_key,
                    key=doc.key,
                    error=str(e),
                )
        return sorted(
            contributions, key=lambda c: (c.submitted_at, str(c.contribution_id))
        )

    async def _record_fold_state(self, recorded: StoredDocument, state: str) -> None:
        """Note on the contribution record what became of its fold.

        Best effort: a record left without a state is treated as still
        outstanding by recompute, which only costs a pending id.
        """
        body = dict(recorded.data)
        body[FOLD_STATE_FIELD] = state
        try:
            await self._store.update(
                CONTRIBUTIONS_COLLECTION,
                recorded.key,
                body,
                expected_version=recorded.version,
            )
        except (
            ConcurrentModificationError,
            DocumentNotFoundError,
            StoreUnavailableError,
        ) as e:
            logger.warning(
                "contribution_fold_state_unrecorded",
                key=recorded.key,
                fold_state=state,
                error_type=type(e).__name__,
            )

    def _rejection_reason(
        self,
        participant_key: str,
        constituency_id: int,
        metric: MetricKind,
        value: bool | int | None,
    ) -> str | None:
        if not participant_key:
            return "participant key must not be empty"
        if (
            isinstance(constituency_id, bool)
            or not isinstance(constituency_id, int)
            or constituency_id < 1
        ):
            return f"constituency id must be a positive integer, got {constituency_id!r}"
        return value_rejection_reason(
            metric,
            value,
            rating_min=self._config.rating_min,
            rating_max=self._config.rating_max,
            manifesto_max=self._config.manifesto_max,
        )

    async def _fold(self, contribution: Contribution) -> ConstituencyAggregate:
        """Fold one contribution into its aggregate with optimistic retry.

        Raises:
            AggregateContentionError: Every attempt lost a conflict.
            StoreUnavailableError: Store could not be reached.
            ValueError: The stored aggregate body failed validation.
        """
        constituency_id = contribution.constituency_id
        key = str(constituency_id)
        max_attempts = self._config.fold_max_attempts

        for attempt in range(1, max_attempts + 1):
            doc = await self._store.get(AGGREGATES_COLLECTION, key)
            current = (
                parse_aggregate(doc.data, constituency_id)
                if doc is not None
                else ConstituencyAggregate.empty(constituency_id)
            )
            updated = current.fold(contribution)
            try:
                if doc is None:
                    await self._store.create(
                        AGGREGATES_COLLECTION, key, serialize_aggregate(updated)
                    )
                else:
                    await self._store.update(
                        AGGREGATES_COLLECTION,
                        key,
                        serialize_aggregate(updated),
                        expected_version=doc.version,
                    )
                return updated
            except (DocumentExistsError, ConcurrentModificationError):
                logger.debug(
                    "aggregate_fold_conflict",
                    constituency_id=constituency_id,
                    attempt=attempt,
                )
                if attempt < max_attempts:
                    await sleep_before_retry(
                        attempt,
                        self._config.backoff_base_seconds,
                        self._config.backoff_max_seconds,
                    )

        raise AggregateContentionError(constituency_id, "fold", max_attempts)

    def _duplicate(
        self,
        participant_key: str,
        constituency_id: int,
        metric: MetricKind,
        existing: dict,
    ) -> SubmissionResult:
        contribution_id = existing.get("contribution_id")
        submitted_at = existing.get("submitted_at")
        return SubmissionResult(
            outcome=SubmissionOutcome.DUPLICATE_REJECTED,
            participant_key=participant_key,
            constituency_id=constituency_id,
            metric=metric,
            contribution_id=UUID(contribution_id) if contribution_id else None,
            submitted_at=datetime.fromisoformat(submitted_at) if submitted_at else None,
        )
