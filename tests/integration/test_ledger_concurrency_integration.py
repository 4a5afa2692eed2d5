"""Integration tests for allocation and aggregation under concurrency.

Runs the allocator, submission and reconciliation services against one
shared in-memory store, with racing callers driven by asyncio.gather.
"""

import asyncio
import random

import pytest

from src.application.ports.contribution_submission import SubmissionOutcome
from src.application.services.aggregate_reconciliation_service import (
    AggregateReconciliationService,
)
from src.application.services.contribution_submission_service import (
    ContributionSubmissionService,
)
from src.application.services.pseudonym_allocator_service import (
    PseudonymAllocatorService,
)
from src.config.ledger_config import LedgerConfig, PseudonymConfig
from src.domain.models.contribution import MetricKind
from src.infrastructure.stubs.document_store_stub import DocumentStoreStub

pytestmark = pytest.mark.integration

RACERS = 25


@pytest.fixture
def store() -> DocumentStoreStub:
    return DocumentStoreStub()


@pytest.fixture
def allocator(store: DocumentStoreStub) -> PseudonymAllocatorService:
    # The k-th of N racers on the counter needs at most k attempts.
    return PseudonymAllocatorService(
        store=store,
        config=PseudonymConfig(
            max_attempts=RACERS, backoff_base_seconds=0.0, backoff_max_seconds=0.0
        ),
    )


@pytest.fixture
def ledger_config() -> LedgerConfig:
    return LedgerConfig(
        fold_max_attempts=RACERS, backoff_base_seconds=0.0, backoff_max_seconds=0.0
    )


@pytest.fixture
def submissions(
    store: DocumentStoreStub, ledger_config: LedgerConfig
) -> ContributionSubmissionService:
    return ContributionSubmissionService(store=store, config=ledger_config)


@pytest.fixture
def reconciliation(
    store: DocumentStoreStub, ledger_config: LedgerConfig
) -> AggregateReconciliationService:
    return AggregateReconciliationService(store=store, config=ledger_config)


class TestConcurrentAllocation:
    @pytest.mark.asyncio
    async def test_distinct_values_for_distinct_participants(
        self, allocator: PseudonymAllocatorService
    ) -> None:
        allocations = await asyncio.gather(
            *(allocator.allocate(f"uid-{i}") for i in range(RACERS))
        )
        values = sorted(a.pseudonym for a in allocations)

        assert values == list(range(1001, 1001 + RACERS))
        assert not any(a.degraded for a in allocations)
        assert (await allocator.verify_uniqueness()).is_unique

    @pytest.mark.asyncio
    async def test_reallocation_returns_stored_value(
        self, allocator: PseudonymAllocatorService
    ) -> None:
        first = await asyncio.gather(*(allocator.allocate(f"uid-{i}") for i in range(5)))
        again = await asyncio.gather(*(allocator.allocate(f"uid-{i}") for i in range(5)))
        assert [a.pseudonym for a in first] == [a.pseudonym for a in again]
        assert all(a.already_assigned for a in again)


class TestConcurrentSubmission:
    @pytest.mark.asyncio
    async def test_same_tuple_has_exactly_one_winner(
        self,
        submissions: ContributionSubmissionService,
        reconciliation: AggregateReconciliationService,
    ) -> None:
        results = await asyncio.gather(
            *(
                submissions.submit("uid-1", 7, MetricKind.satisfaction(), i % 2 == 0)
                for i in range(10)
            )
        )
        outcomes = [r.outcome for r in results]
        assert outcomes.count(SubmissionOutcome.ACCEPTED) == 1
        assert outcomes.count(SubmissionOutcome.DUPLICATE_REJECTED) == 9

        aggregate = await reconciliation.read(7)
        assert aggregate.satisfaction_total == 1
        assert aggregate.contribution_count == 1

    @pytest.mark.asyncio
    async def test_no_lost_updates_across_participants(
        self,
        submissions: ContributionSubmissionService,
        reconciliation: AggregateReconciliationService,
    ) -> None:
        rng = random.Random(7)
        ratings = [rng.randint(1, 5) for _ in range(RACERS)]

        results = await asyncio.gather(
            *(
                submissions.submit(
                    f"uid-{i}", 12, MetricKind.department_rating("Water"), rating
                )
                for i, rating in enumerate(ratings)
            )
        )
        assert all(r.accepted and r.folded for r in results)

        aggregate = await reconciliation.read(12)
        assert aggregate.departments["Water"].count == RACERS
        assert aggregate.department_mean("Water") == pytest.approx(
            sum(ratings) / len(ratings)
        )
        assert (await reconciliation.verify(12)).is_consistent

    @pytest.mark.asyncio
    async def test_recompute_racing_folds_stays_consistent(
        self,
        submissions: ContributionSubmissionService,
        reconciliation: AggregateReconciliationService,
    ) -> None:
        tasks = [
            submissions.submit(f"uid-{i}", 3, MetricKind.satisfaction(), i % 3 != 0)
            for i in range(10)
        ]
        tasks.append(reconciliation.recompute(3))
        await asyncio.gather(*tasks)

        result = await reconciliation.verify(3)
        assert result.is_consistent
        assert result.stored.contribution_count == 10


class TestWorkedExamples:
    @pytest.mark.asyncio
    async def test_constituency_7_satisfaction(
        self,
        submissions: ContributionSubmissionService,
        reconciliation: AggregateReconciliationService,
    ) -> None:
        for participant, vote in (("p1", True), ("p2", True), ("p3", False)):
            result = await submissions.submit(participant, 7, MetricKind.satisfaction(), vote)
            assert result.accepted

        aggregate = await reconciliation.read(7)
        assert (aggregate.satisfaction_yes, aggregate.satisfaction_no) == (2, 1)

        repeat = await submissions.submit("p1", 7, MetricKind.satisfaction(), False)
        assert repeat.outcome == SubmissionOutcome.DUPLICATE_REJECTED

        aggregate = await reconciliation.read(7)
        assert (aggregate.satisfaction_yes, aggregate.satisfaction_no) == (2, 1)

    @pytest.mark.asyncio
    async def test_constituency_12_manifesto(
        self,
        submissions: ContributionSubmissionService,
        reconciliation: AggregateReconciliationService,
    ) -> None:
        means = []
        for participant, score in (("p1", 4), ("p2", 5), ("p3", 3)):
            result = await submissions.submit(participant, 12, MetricKind.manifesto_score(), score)
            means.append(result.aggregate.manifesto_mean)
        assert means == [4.0, 4.5, 4.0]

        await submissions.submit("p4", 12, MetricKind.manifesto_score(), 0)
        aggregate = await reconciliation.read(12)
        assert aggregate.manifesto_mean == 4.0
        assert aggregate.manifesto_count == 3

        assert (await reconciliation.recompute(12)).is_equivalent(aggregate)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 6])
    async def test_invalid_rating_leaves_aggregate_unchanged(
        self,
        rating: int,
        submissions: ContributionSubmissionService,
        reconciliation: AggregateReconciliationService,
    ) -> None:
        await submissions.submit("p1", 5, MetricKind.department_rating("Roads"), 3)
        before = await reconciliation.read(5)

        result = await submissions.submit("p2", 5, MetricKind.department_rating("Roads"), rating)
        assert result.outcome == SubmissionOutcome.VALIDATION_REJECTED
        assert await reconciliation.read(5) == before
