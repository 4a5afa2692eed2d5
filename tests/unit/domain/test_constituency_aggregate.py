"""Unit tests for the constituency aggregate fold."""

import itertools
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from src.domain.models.constituency_aggregate import (
    ConstituencyAggregate,
    DepartmentStat,
)
from src.domain.models.contribution import Contribution, MetricKind

T0 = datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc)


def _c(metric: MetricKind, value, *, constituency_id: int = 12, offset: int = 0,
       participant: str | None = None) -> Contribution:
    return Contribution(
        contribution_id=uuid4(),
        participant_key=participant or f"uid-{uuid4().hex[:8]}",
        constituency_id=constituency_id,
        metric=metric,
        value=value,
        submitted_at=T0 + timedelta(seconds=offset),
    )


class TestEmpty:
    def test_zero_valued(self) -> None:
        aggregate = ConstituencyAggregate.empty(3)
        assert aggregate.is_empty
        assert aggregate.satisfaction_total == 0
        assert aggregate.manifesto_mean == 0.0
        assert aggregate.department_mean("Water") == 0.0
        assert aggregate.last_updated is None


class TestSatisfactionFold:
    def test_yes_yes_no(self) -> None:
        aggregate = ConstituencyAggregate.empty(7)
        for value in (True, True, False):
            aggregate = aggregate.fold(
                _c(MetricKind.satisfaction(), value, constituency_id=7)
            )
        assert aggregate.satisfaction_yes == 2
        assert aggregate.satisfaction_no == 1
        assert aggregate.satisfaction_total == 3
        assert aggregate.contribution_count == 3


class TestManifestoFold:
    def test_running_mean_sequence(self) -> None:
        aggregate = ConstituencyAggregate.empty(12)
        means = []
        for score in (4, 5, 3):
            aggregate = aggregate.fold(_c(MetricKind.manifesto_score(), score))
            means.append(aggregate.manifesto_mean)
        assert means == [4.0, 4.5, 4.0]
        assert aggregate.manifesto_count == 3

    @pytest.mark.parametrize("score", [0, None])
    def test_zero_or_absent_score_is_noop(self, score) -> None:
        aggregate = ConstituencyAggregate.empty(12)
        for value in (4, 5, 3):
            aggregate = aggregate.fold(_c(MetricKind.manifesto_score(), value))
        aggregate = aggregate.fold(_c(MetricKind.manifesto_score(), score))
        assert aggregate.manifesto_mean == 4.0
        assert aggregate.manifesto_count == 3
        assert aggregate.contribution_count == 4


class TestDepartmentFold:
    def test_mean_per_department(self) -> None:
        aggregate = ConstituencyAggregate.empty(12)
        for dept, value in (("Water", 2), ("Water", 4), ("Roads", 5)):
            aggregate = aggregate.fold(_c(MetricKind.department_rating(dept), value))
        assert aggregate.department_mean("Water") == pytest.approx(3.0)
        assert aggregate.departments["Water"].count == 2
        assert aggregate.department_mean("Roads") == 5.0

    def test_mean_independent_of_order(self) -> None:
        values = [1, 2, 4, 5, 5, 3]
        means = set()
        for order in itertools.permutations(values):
            aggregate = ConstituencyAggregate.empty(12)
            for value in order:
                aggregate = aggregate.fold(
                    _c(MetricKind.department_rating("Health"), value)
                )
            means.add(round(aggregate.department_mean("Health"), 9))
        assert means == {round(sum(values) / len(values), 9)}

    def test_department_stat_fold(self) -> None:
        stat = DepartmentStat().fold(3).fold(5)
        assert stat == DepartmentStat(mean=4.0, count=2)


class TestFoldGuards:
    def test_pending_contribution_only_cleared(self) -> None:
        contribution = _c(MetricKind.satisfaction(), True)
        rebuilt = ConstituencyAggregate.from_contributions(
            12, [contribution]
        ).with_pending([str(contribution.contribution_id)])
        assert rebuilt.is_pending(contribution)

        folded = rebuilt.fold(contribution)
        assert folded.satisfaction_yes == 1
        assert folded.contribution_count == 1
        assert folded.pending_fold_ids == frozenset()
        assert folded.is_equivalent(rebuilt)

    def test_fold_does_not_grow_per_contribution_state(self) -> None:
        aggregate = ConstituencyAggregate.empty(12)
        for offset in range(50):
            aggregate = aggregate.fold(_c(MetricKind.satisfaction(), True, offset=offset))
        assert aggregate.satisfaction_yes == 50
        assert aggregate.pending_fold_ids == frozenset()

    def test_other_constituency_rejected(self) -> None:
        with pytest.raises(ValueError, match="cannot fold"):
            ConstituencyAggregate.empty(12).fold(
                _c(MetricKind.satisfaction(), True, constituency_id=13)
            )

    def test_last_updated_never_moves_back(self) -> None:
        late = _c(MetricKind.satisfaction(), True, offset=60)
        early = _c(MetricKind.satisfaction(), False, offset=0)
        aggregate = ConstituencyAggregate.empty(12).fold(late).fold(early)
        assert aggregate.last_updated == late.submitted_at


class TestFromContributions:
    def test_equals_incremental_fold(self) -> None:
        contributions = [
            _c(MetricKind.satisfaction(), True, offset=1),
            _c(MetricKind.department_rating("Water"), 3, offset=2),
            _c(MetricKind.manifesto_score(), 4, offset=3),
            _c(MetricKind.department_rating("Water"), 5, offset=4),
            _c(MetricKind.manifesto_score(), 0, offset=5),
        ]
        incremental = ConstituencyAggregate.empty(12)
        for contribution in contributions:
            incremental = incremental.fold(contribution)

        rebuilt = ConstituencyAggregate.from_contributions(
            12, reversed(contributions)
        )
        assert rebuilt.is_equivalent(incremental)
        assert rebuilt == incremental

    def test_is_equivalent_detects_drift(self) -> None:
        base = ConstituencyAggregate.empty(12).fold(
            _c(MetricKind.satisfaction(), True)
        )
        assert not base.is_equivalent(ConstituencyAggregate.empty(12))
