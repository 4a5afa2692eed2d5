"""Contribution submission protocol.

This module defines the contract for submitting survey and rating
contributions to the aggregate ledger. Follows hexagonal architecture with
port/adapter pattern.

Constraints:
- At most one contribution per (participant, constituency, metric)
- Duplicate and out-of-domain submissions are ordinary outcomes, not errors
- The contribution record is durable before the aggregate fold is attempted
- The fold never loses a concurrent update
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol
from uuid import UUID

from src.domain.models.constituency_aggregate import ConstituencyAggregate
from src.domain.models.contribution import Contribution, MetricKind

ALREADY_RESPONDED_MESSAGE = "You already responded."


class SubmissionOutcome(Enum):
    """Classification of a submission.

    Outcomes:
        ACCEPTED: Contribution recorded (and normally folded)
        DUPLICATE_REJECTED: Participant already answered this metric here
        VALIDATION_REJECTED: Value outside the metric's declared domain
    """

    ACCEPTED = "accepted"
    DUPLICATE_REJECTED = "duplicate_rejected"
    VALIDATION_REJECTED = "validation_rejected"


@dataclass(frozen=True)
class SubmissionResult:
    """Result of a contribution submission.

    Attributes:
        outcome: Accepted, duplicate or validation rejection.
        participant_key: The contributor.
        constituency_id: The constituency answered about.
        metric: The metric answered.
        contribution_id: Id of the recorded contribution (ACCEPTED), or of
            the earlier contribution (DUPLICATE_REJECTED, when known).
        submitted_at: When that contribution was recorded.
        folded: False if the contribution is durable but the aggregate fold
            did not complete; reconciliation repairs the aggregate.
        aggregate: Aggregate after the fold, when it completed.
        reason: Why the submission was rejected.
    """

    outcome: SubmissionOutcome
    participant_key: str
    constituency_id: int
    metric: MetricKind
    contribution_id: UUID | None = None
    submitted_at: datetime | None = None
    folded: bool = False
    aggregate: ConstituencyAggregate | None = None
    reason: str | None = None

    @property
    def accepted(self) -> bool:
        return self.outcome == SubmissionOutcome.ACCEPTED

    @property
    def user_message(self) -> str | None:
        """Message for the end user, None when nothing needs saying."""
        if self.outcome == SubmissionOutcome.DUPLICATE_REJECTED:
            return ALREADY_RESPONDED_MESSAGE
        if self.outcome == SubmissionOutcome.VALIDATION_REJECTED:
            return self.reason
        return None


class ContributionSubmissionProtocol(Protocol):
    """Protocol for submitting contributions to the aggregate ledger.

    Implementations must handle:

    1. Value validation before any store access
    2. Duplicate detection on the exact (participant, constituency, metric)
    3. Durable contribution write (create-if-absent)
    4. Incremental aggregate fold with optimistic retry
    """

    @abstractmethod
    async def submit(
        self,
        participant_key: str,
        constituency_id: int,
        metric: MetricKind,
        value: bool | int | None,
    ) -> SubmissionResult:
        """Submit one contribution.

        Returns:
            SubmissionResult classifying the submission.

        Raises:
            StoreUnavailableError: Store failed before the contribution was
                durably recorded (nothing was written).
        """
        ...

    @abstractmethod
    async def responses(
        self,
        participant_key: str,
        constituency_id: int | None = None,
    ) -> list[Contribution]:
        """List a participant's recorded contributions.

        Lets collaborators show "you already responded" before a form is
        submitted. Ordered by submission time.

        Raises:
            StoreUnavailableError: Store could not be reached.
        """
        ...
