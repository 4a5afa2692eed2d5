"""Constituency aggregate domain model.

This module defines the denormalized per-constituency statistics and the
pure fold that updates them one contribution at a time:
- DepartmentStat: running mean and sample count for one department
- ConstituencyAggregate: satisfaction counts, department stats, manifesto
  running mean, folded-contribution count

Constraints:
- An aggregate is always the fold of every recorded contribution for its
  constituency. Folding in contribution order from `empty()` reproduces it.
- Counts are never decremented.
- A zero or absent manifesto score leaves the manifesto mean and count
  untouched.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime

from src.domain.models.contribution import Contribution, MetricType

# Relative/absolute tolerance used when comparing folded means
MEAN_TOLERANCE = 1e-9


@dataclass(frozen=True)
class DepartmentStat:
    """Running mean of one department's ratings.

    Attributes:
        mean: Mean of every folded rating (0.0 when count is 0).
        count: Number of folded ratings.
    """

    mean: float = 0.0
    count: int = 0

    def fold(self, value: int) -> DepartmentStat:
        """Fold one rating into the running mean."""
        return DepartmentStat(
            mean=(self.mean * self.count + value) / (self.count + 1),
            count=self.count + 1,
        )

    def is_close(self, other: DepartmentStat, tolerance: float = MEAN_TOLERANCE) -> bool:
        return self.count == other.count and math.isclose(
            self.mean, other.mean, rel_tol=tolerance, abs_tol=tolerance
        )


@dataclass(frozen=True)
class ConstituencyAggregate:
    """Folded summary statistics for one constituency.

    Also serves as the read snapshot handed to application collaborators.

    Attributes:
        constituency_id: The constituency summarized.
        satisfaction_yes: Number of "yes" satisfaction votes.
        satisfaction_no: Number of "no" satisfaction votes.
        departments: Department name -> running mean and count.
        manifesto_mean: Running mean of positive manifesto scores.
        manifesto_count: Number of positive manifesto scores folded.
        contribution_count: Number of contributions folded, of any metric.
        last_updated: Latest submitted_at among folded contributions.
        pending_fold_ids: Ids of contributions a recompute already counted
            while their own incremental fold was still outstanding. Folding
            one of them only clears it from the set. The set is rebuilt on
            every recompute, so it stays as small as the number of folds in
            flight or deferred at that moment.
    """

    constituency_id: int
    satisfaction_yes: int = 0
    satisfaction_no: int = 0
    departments: dict[str, DepartmentStat] = field(default_factory=dict)
    manifesto_mean: float = 0.0
    manifesto_count: int = 0
    contribution_count: int = 0
    last_updated: datetime | None = None
    pending_fold_ids: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def empty(cls, constituency_id: int) -> ConstituencyAggregate:
        """Zero-valued aggregate for a constituency with no contributions."""
        return cls(constituency_id=constituency_id)

    @classmethod
    def from_contributions(
        cls,
        constituency_id: int,
        contributions: Iterable[Contribution],
    ) -> ConstituencyAggregate:
        """Rebuild an aggregate from scratch by folding in contribution order.

        Order is (submitted_at, contribution_id) so that repeated rebuilds of
        the same log are bit-for-bit identical.
        """
        ordered = sorted(
            contributions, key=lambda c: (c.submitted_at, str(c.contribution_id))
        )
        aggregate = cls.empty(constituency_id)
        for contribution in ordered:
            aggregate = aggregate.fold(contribution)
        return aggregate

    @property
    def satisfaction_total(self) -> int:
        return self.satisfaction_yes + self.satisfaction_no

    @property
    def is_empty(self) -> bool:
        return self.contribution_count == 0

    def department_mean(self, department: str) -> float:
        """Mean rating for a department, 0.0 if never rated."""
        stat = self.departments.get(department)
        return stat.mean if stat is not None else 0.0

    def is_pending(self, contribution: Contribution) -> bool:
        return str(contribution.contribution_id) in self.pending_fold_ids

    def with_pending(self, contribution_ids: Iterable[str]) -> ConstituencyAggregate:
        """Mark contributions as counted ahead of their incremental fold."""
        return replace(self, pending_fold_ids=frozenset(contribution_ids))

    def fold(self, contribution: Contribution) -> ConstituencyAggregate:
        """Return a new aggregate with one more contribution folded in.

        A contribution a recompute already counted is not counted again; the
        fold only clears it from `pending_fold_ids`.

        Raises:
            ValueError: If the contribution belongs to another constituency.
        """
        if contribution.constituency_id != self.constituency_id:
            raise ValueError(
                f"Contribution for constituency {contribution.constituency_id} "
                f"cannot fold into aggregate {self.constituency_id}"
            )
        if self.is_pending(contribution):
            return replace(
                self,
                pending_fold_ids=self.pending_fold_ids
                - {str(contribution.contribution_id)},
            )

        last_updated = contribution.submitted_at
        if self.last_updated is not None and self.last_updated > last_updated:
            last_updated = self.last_updated

        updated = replace(
            self,
            contribution_count=self.contribution_count + 1,
            last_updated=last_updated,
        )

        metric_type = contribution.metric.metric_type
        if metric_type == MetricType.SATISFACTION:
            if contribution.value:
                return replace(updated, satisfaction_yes=self.satisfaction_yes + 1)
            return replace(updated, satisfaction_no=self.satisfaction_no + 1)

        if metric_type == MetricType.DEPARTMENT_RATING:
            department = contribution.metric.department or ""
            departments = dict(self.departments)
            departments[department] = departments.get(
                department, DepartmentStat()
            ).fold(int(contribution.value))  # type: ignore[arg-type]
            return replace(updated, departments=departments)

        # Manifesto score: only positive scores move the mean.
        score = contribution.value
        if not score:
            return updated
        return replace(
            updated,
            manifesto_mean=(self.manifesto_mean * self.manifesto_count + int(score))
            / (self.manifesto_count + 1),
            manifesto_count=self.manifesto_count + 1,
        )

    def is_equivalent(
        self, other: ConstituencyAggregate, tolerance: float = MEAN_TOLERANCE
    ) -> bool:
        """Compare statistics within float tolerance, ignoring last_updated."""
        if (
            self.constituency_id != other.constituency_id
            or self.satisfaction_yes != other.satisfaction_yes
            or self.satisfaction_no != other.satisfaction_no
            or self.manifesto_count != other.manifesto_count
            or self.contribution_count != other.contribution_count
        ):
            return False
        if not math.isclose(
            self.manifesto_mean, other.manifesto_mean, rel_tol=tolerance, abs_tol=tolerance
        ):
            return False
        if set(self.departments) != set(other.departments):
            return False
        return all(
            stat.is_close(other.departments[name], tolerance)
            for name, stat in self.departments.items()
        )
