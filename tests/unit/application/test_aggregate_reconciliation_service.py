"""Unit tests for AggregateReconciliationService."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from src.application.dtos.aggregate_document import AGGREGATE_SCHEMA_VERSION
from src.application.ports.document_store import (
    AGGREGATES_COLLECTION,
    CONTRIBUTIONS_COLLECTION,
)
from src.application.services.aggregate_reconciliation_service import (
    AggregateReconciliationService,
)
from src.application.services.contribution_submission_service import (
    ContributionSubmissionService,
)
from src.config.ledger_config import TEST_LEDGER_CONFIG, LedgerConfig
from src.domain.errors import (
    AggregateContentionError,
    ContributionLogUnreadableError,
    DocumentExistsError,
    StoreUnavailableError,
)
from src.domain.models.contribution import Contribution, MetricKind, contribution_key
from src.infrastructure.stubs.document_store_stub import DocumentStoreStub

SMALL_RANGE = LedgerConfig(
    backoff_base_seconds=0.0,
    backoff_max_seconds=0.0,
    constituency_first=1,
    constituency_last=5,
)


@pytest.fixture
def store() -> DocumentStoreStub:
    return DocumentStoreStub()


@pytest.fixture
def service(store: DocumentStoreStub) -> AggregateReconciliationService:
    return AggregateReconciliationService(store=store, config=SMALL_RANGE)


@pytest.fixture
def submissions(store: DocumentStoreStub) -> ContributionSubmissionService:
    return ContributionSubmissionService(store=store, config=TEST_LEDGER_CONFIG)


async def _seed(submissions: ContributionSubmissionService) -> None:
    await submissions.submit("a", 7, MetricKind.satisfaction(), True)
    await submissions.submit("b", 7, MetricKind.satisfaction(), False)
    await submissions.submit("a", 7, MetricKind.department_rating("Water"), 2)
    await submissions.submit("b", 7, MetricKind.department_rating("Water"), 5)
    await submissions.submit("a", 7, MetricKind.manifesto_score(), 3)


class TestRead:
    @pytest.mark.asyncio
    async def test_missing_aggregate_is_zero_valued(
        self, service: AggregateReconciliationService
    ) -> None:
        aggregate = await service.read(99)
        assert aggregate.constituency_id == 99
        assert aggregate.is_empty

    @pytest.mark.asyncio
    async def test_unavailable_propagates(
        self, service: AggregateReconciliationService, store: DocumentStoreStub
    ) -> None:
        store.set_unavailable()
        with pytest.raises(StoreUnavailableError):
            await service.read(7)


class TestRecompute:
    @pytest.mark.asyncio
    async def test_equals_incremental(
        self,
        service: AggregateReconciliationService,
        submissions: ContributionSubmissionService,
    ) -> None:
        await _seed(submissions)
        incremental = await service.read(7)

        rebuilt = await service.recompute(7)
        assert rebuilt.is_equivalent(incremental)
        assert (await service.read(7)).is_equivalent(incremental)

    @pytest.mark.asyncio
    async def test_repairs_deferred_fold(
        self,
        service: AggregateReconciliationService,
        submissions: ContributionSubmissionService,
        store: DocumentStoreStub,
    ) -> None:
        await submissions.submit("a", 7, MetricKind.satisfaction(), True)
        store.fail_next("get", collection=AGGREGATES_COLLECTION)
        deferred = await submissions.submit("b", 7, MetricKind.satisfaction(), True)
        assert deferred.folded is False
        assert (await service.read(7)).satisfaction_yes == 1

        repaired = await service.recompute(7)
        assert repaired.satisfaction_yes == 2

    @pytest.mark.asyncio
    async def test_creates_missing_aggregate(
        self,
        service: AggregateReconciliationService,
        submissions: ContributionSubmissionService,
        store: DocumentStoreStub,
    ) -> None:
        await _seed(submissions)
        store.reset()
        assert (await service.recompute(7)).is_empty
        assert store.peek(AGGREGATES_COLLECTION, "7")["contribution_count"] == 0

    @pytest.mark.asyncio
    async def test_conflict_exhaustion(
        self, store: DocumentStoreStub, submissions: ContributionSubmissionService
    ) -> None:
        await _seed(submissions)
        service = AggregateReconciliationService(
            store=store,
            config=LedgerConfig(
                fold_max_attempts=2, backoff_base_seconds=0.0, backoff_max_seconds=0.0
            ),
        )
        original_query = store.query

        async def query_then_bump(collection, **equals):
            docs = await original_query(collection, **equals)
            current = store.peek(AGGREGATES_COLLECTION, "7")
            store.put(AGGREGATES_COLLECTION, "7", current)
            return docs

        store.query = query_then_bump
        with pytest.raises(AggregateContentionError) as exc_info:
            await service.recompute(7)
        assert exc_info.value.operation == "recompute"


    @pytest.mark.asyncio
    async def test_unreadable_record_refuses_overwrite(
        self,
        service: AggregateReconciliationService,
        submissions: ContributionSubmissionService,
        store: DocumentStoreStub,
    ) -> None:
        await submissions.submit("a", 7, MetricKind.satisfaction(), True)
        await submissions.submit("b", 7, MetricKind.satisfaction(), True)
        key = contribution_key("b", 7, MetricKind.satisfaction())
        body = store.peek(CONTRIBUTIONS_COLLECTION, key)
        body["submitted_at"] = "not-a-date"
        store.put(CONTRIBUTIONS_COLLECTION, key, body)

        with pytest.raises(ContributionLogUnreadableError) as exc_info:
            await service.recompute(7)
        assert exc_info.value.keys == (key,)
        assert store.peek(AGGREGATES_COLLECTION, "7")["satisfaction_yes"] == 2

    @pytest.mark.asyncio
    async def test_confirmed_folds_leave_nothing_pending(
        self,
        service: AggregateReconciliationService,
        submissions: ContributionSubmissionService,
        store: DocumentStoreStub,
    ) -> None:
        await _seed(submissions)
        rebuilt = await service.recompute(7)
        assert rebuilt.pending_fold_ids == frozenset()
        assert store.peek(AGGREGATES_COLLECTION, "7")["pending_fold_ids"] == []

    @pytest.mark.asyncio
    async def test_outstanding_fold_not_counted_twice(
        self,
        service: AggregateReconciliationService,
        submissions: ContributionSubmissionService,
        store: DocumentStoreStub,
    ) -> None:
        await submissions.submit("a", 7, MetricKind.satisfaction(), True)
        # Recorded but not yet folded: no fold state on the record.
        in_flight = Contribution(
            contribution_id=uuid4(),
            participant_key="b",
            constituency_id=7,
            metric=MetricKind.satisfaction(),
            value=True,
            submitted_at=datetime.now(timezone.utc),
        )
        store.put(CONTRIBUTIONS_COLLECTION, in_flight.key, in_flight.to_dict())

        rebuilt = await service.recompute(7)
        assert rebuilt.satisfaction_yes == 2
        assert rebuilt.pending_fold_ids == {str(in_flight.contribution_id)}

        folded = await submissions._fold(in_flight)
        assert folded.satisfaction_yes == 2
        assert folded.pending_fold_ids == frozenset()
        assert (await service.verify(7)).is_consistent


class TestVerify:
    @pytest.mark.asyncio
    async def test_consistent(
        self,
        service: AggregateReconciliationService,
        submissions: ContributionSubmissionService,
    ) -> None:
        await _seed(submissions)
        result = await service.verify(7)
        assert result.is_consistent
        assert result.contribution_discrepancy == 0

    @pytest.mark.asyncio
    async def test_drift_detected_without_writing(
        self,
        service: AggregateReconciliationService,
        submissions: ContributionSubmissionService,
        store: DocumentStoreStub,
    ) -> None:
        await _seed(submissions)
        body = store.peek(AGGREGATES_COLLECTION, "7")
        body["satisfaction_yes"] = 10
        body["contribution_count"] = 14
        store.put(AGGREGATES_COLLECTION, "7", body)

        result = await service.verify(7)
        assert result.is_consistent is False
        assert result.contribution_discrepancy == 9
        assert store.peek(AGGREGATES_COLLECTION, "7")["satisfaction_yes"] == 10

    @pytest.mark.asyncio
    async def test_corrupted_contribution_reported(
        self,
        service: AggregateReconciliationService,
        submissions: ContributionSubmissionService,
        store: DocumentStoreStub,
    ) -> None:
        result = await submissions.submit("a", 7, MetricKind.department_rating("Water"), 2)
        key = "7:department_rating:Water:a"
        body = store.peek(CONTRIBUTIONS_COLLECTION, key)
        body["value"] = 5
        store.put(CONTRIBUTIONS_COLLECTION, key, body)

        verification = await service.verify(7)
        assert verification.is_consistent is False
        assert verification.corrupted_contributions == (str(result.contribution_id),)

    @pytest.mark.asyncio
    async def test_unreadable_record_reported(
        self,
        service: AggregateReconciliationService,
        submissions: ContributionSubmissionService,
        store: DocumentStoreStub,
    ) -> None:
        await submissions.submit("a", 7, MetricKind.satisfaction(), True)
        await submissions.submit("b", 7, MetricKind.satisfaction(), True)
        key = contribution_key("b", 7, MetricKind.satisfaction())
        body = store.peek(CONTRIBUTIONS_COLLECTION, key)
        body["submitted_at"] = "not-a-date"
        store.put(CONTRIBUTIONS_COLLECTION, key, body)

        verification = await service.verify(7)
        assert verification.is_consistent is False
        assert verification.corrupted_contributions == (key,)

    @pytest.mark.asyncio
    async def test_batch(
        self,
        service: AggregateReconciliationService,
        submissions: ContributionSubmissionService,
    ) -> None:
        await _seed(submissions)
        results = await service.verify_batch([7, 8])
        assert [r.constituency_id for r in results] == [7, 8]
        assert all(r.is_consistent for r in results)


class TestBootstrap:
    @pytest.mark.asyncio
    async def test_creates_missing_only(
        self, service: AggregateReconciliationService, store: DocumentStoreStub
    ) -> None:
        store.put(AGGREGATES_COLLECTION, "2", {"constituency_id": 2, "satisfaction_yes": 4})

        assert await service.bootstrap() == 4
        assert store.count(AGGREGATES_COLLECTION) == 5
        assert store.peek(AGGREGATES_COLLECTION, "2")["satisfaction_yes"] == 4
        assert await service.bootstrap() == 0

    @pytest.mark.asyncio
    async def test_explicit_range(
        self, service: AggregateReconciliationService, store: DocumentStoreStub
    ) -> None:
        assert await service.bootstrap(10, 12) == 3
        assert store.peek(AGGREGATES_COLLECTION, "11")["schema_version"] == AGGREGATE_SCHEMA_VERSION

    @pytest.mark.asyncio
    async def test_invalid_range(self, service: AggregateReconciliationService) -> None:
        with pytest.raises(ValueError):
            await service.bootstrap(5, 1)

    @pytest.mark.asyncio
    async def test_concurrent_creation_writes_nothing(
        self, service: AggregateReconciliationService, store: DocumentStoreStub
    ) -> None:
        original_batch = store.batch_create

        async def racing_batch(collection, items):
            store.put(AGGREGATES_COLLECTION, "3", {"constituency_id": 3})
            return await original_batch(collection, items)

        store.batch_create = racing_batch
        with pytest.raises(DocumentExistsError):
            await service.bootstrap()
        assert store.count(AGGREGATES_COLLECTION) == 1


class TestHealthAndMigration:
    @pytest.mark.asyncio
    async def test_healthy_after_bootstrap(
        self, service: AggregateReconciliationService
    ) -> None:
        await service.bootstrap()
        report = await service.health_check()
        assert report.is_healthy
        assert report.valid_count == 5
        assert report.total_count == 5

    @pytest.mark.asyncio
    async def test_reports_gaps_legacy_and_out_of_range(
        self, service: AggregateReconciliationService, store: DocumentStoreStub
    ) -> None:
        await service.bootstrap(1, 3)
        store.put(AGGREGATES_COLLECTION, "4", {"satisfaction_yes": 1, "interaction_count": 1})
        store.put(AGGREGATES_COLLECTION, "300", {"constituency_id": 300})

        report = await service.health_check()
        assert report.is_healthy is False
        assert report.valid_count == 3
        assert report.total_count == 5
        assert any("schema version 1" in issue for issue in report.issues)
        assert any("outside the known range" in issue for issue in report.issues)
        assert any("1 constituencies have no aggregate" in issue for issue in report.issues)

    @pytest.mark.asyncio
    async def test_migrate_schema(
        self, service: AggregateReconciliationService, store: DocumentStoreStub
    ) -> None:
        await service.bootstrap(1, 2)
        store.put(
            AGGREGATES_COLLECTION,
            "4",
            {"satisfaction_yes": 2, "satisfaction_no": 1, "interaction_count": 3},
        )

        report = await service.migrate_schema()
        assert report.total == 3
        assert report.migrated == 1
        assert report.current == 2
        assert report.failed == 0

        migrated = store.peek(AGGREGATES_COLLECTION, "4")
        assert migrated["schema_version"] == AGGREGATE_SCHEMA_VERSION
        assert migrated["constituency_id"] == 4
        assert migrated["manifesto_average"] == 0.0
        assert migrated["contribution_count"] == 3
        assert migrated["satisfaction_total"] == 3
        assert (await service.migrate_schema()).migrated == 0

    @pytest.mark.asyncio
    async def test_legacy_manifesto_mean_survives_migration(
        self,
        service: AggregateReconciliationService,
        submissions: ContributionSubmissionService,
        store: DocumentStoreStub,
    ) -> None:
        store.put(
            AGGREGATES_COLLECTION,
            "12",
            {"constituency_id": 12, "manifesto_average": 4.0, "interaction_count": 3},
        )

        assert (await service.migrate_schema()).migrated == 1
        assert store.peek(AGGREGATES_COLLECTION, "12")["manifesto_count"] == 3

        await submissions.submit("uid-1", 12, MetricKind.manifesto_score(), 2)
        aggregate = await service.read(12)
        assert aggregate.manifesto_count == 4
        assert aggregate.manifesto_mean == 3.5

    @pytest.mark.asyncio
    async def test_manifesto_mean_without_sample_count_not_migrated(
        self, service: AggregateReconciliationService, store: DocumentStoreStub
    ) -> None:
        legacy = {"constituency_id": 12, "manifesto_average": 4.0}
        store.put(AGGREGATES_COLLECTION, "12", legacy)

        report = await service.migrate_schema()
        assert report.failed == 1
        assert "recompute required" in report.failures["12"]
        assert store.peek(AGGREGATES_COLLECTION, "12") == legacy

    @pytest.mark.asyncio
    async def test_folded_id_list_dropped(
        self, service: AggregateReconciliationService, store: DocumentStoreStub
    ) -> None:
        store.put(
            AGGREGATES_COLLECTION,
            "6",
            {
                "schema_version": 2,
                "constituency_id": 6,
                "satisfaction_yes": 2,
                "contribution_count": 2,
                "manifesto_count": 0,
                "folded_contribution_ids": [str(uuid4()), str(uuid4())],
            },
        )

        assert (await service.migrate_schema()).migrated == 1
        migrated = store.peek(AGGREGATES_COLLECTION, "6")
        assert "folded_contribution_ids" not in migrated
        assert migrated["pending_fold_ids"] == []
        assert migrated["satisfaction_yes"] == 2


class TestReadAll:
    @pytest.mark.asyncio
    async def test_ordered_by_constituency(
        self,
        service: AggregateReconciliationService,
        submissions: ContributionSubmissionService,
        store: DocumentStoreStub,
    ) -> None:
        await service.bootstrap(1, 3)
        await submissions.submit("a", 10, MetricKind.satisfaction(), True)
        store.put(AGGREGATES_COLLECTION, "summary", {"constituency_id": 0})

        aggregates = await service.read_all()
        assert [a.constituency_id for a in aggregates] == [1, 2, 3, 10]
        assert aggregates[-1].satisfaction_yes == 1

    @pytest.mark.asyncio
    async def test_empty_collection(self, service: AggregateReconciliationService) -> None:
        assert await service.read_all() == []
