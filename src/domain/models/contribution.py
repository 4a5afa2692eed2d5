"""Contribution domain models.

This module defines the immutable facts folded into constituency aggregates:
- MetricType / MetricKind: what question a contribution answers
- Contribution: one participant's single answer for one constituency

Constraints:
- At most one Contribution per (participant_key, constituency_id, metric).
- Contributions are never mutated or deleted.
- The content hash binds every field that defines the contribution.

Developer Golden Rules:
1. VALIDATE BEFORE WRITE - out-of-domain values never reach the store
2. ONE ANSWER - the document key is derived from the uniqueness tuple
3. NEVER asdict() - UUID/datetime need explicit serialization
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

import blake3

DEPARTMENT_KEY_PREFIX = "department_rating:"


class MetricType(Enum):
    """Kind of question a contribution answers.

    Types:
        SATISFACTION: Yes/no satisfaction vote for the representative
        DEPARTMENT_RATING: 1..5 rating of one named department
        MANIFESTO_SCORE: Manifesto questionnaire score (0 means no answer)
    """

    SATISFACTION = "satisfaction"
    DEPARTMENT_RATING = "department_rating"
    MANIFESTO_SCORE = "manifesto_score"


@dataclass(frozen=True)
class MetricKind:
    """A metric a participant can answer once per constituency.

    The department name is part of the metric identity, so one participant
    may rate several departments of the same constituency, once each.

    Attributes:
        metric_type: The kind of question.
        department: Department name, required for DEPARTMENT_RATING only.
    """

    metric_type: MetricType
    department: str | None = None

    def __post_init__(self) -> None:
        """Validate department presence against metric type.

        Raises:
            ValueError: If department is missing for a rating or present
                for any other metric.
        """
        if self.metric_type == MetricType.DEPARTMENT_RATING:
            if self.department is None or not self.department.strip():
                raise ValueError("department_rating metric requires a department")
            object.__setattr__(self, "department", self.department.strip())
        elif self.department is not None:
            raise ValueError(
                f"{self.metric_type.value} metric does not take a department"
            )

    @classmethod
    def satisfaction(cls) -> MetricKind:
        return cls(MetricType.SATISFACTION)

    @classmethod
    def department_rating(cls, department: str) -> MetricKind:
        return cls(MetricType.DEPARTMENT_RATING, department)

    @classmethod
    def manifesto_score(cls) -> MetricKind:
        return cls(MetricType.MANIFESTO_SCORE)

    @property
    def key(self) -> str:
        """Stable string form used in document keys and queries."""
        if self.metric_type == MetricType.DEPARTMENT_RATING:
            return f"{DEPARTMENT_KEY_PREFIX}{self.department}"
        return self.metric_type.value

    @classmethod
    def from_key(cls, key: str) -> MetricKind:
        """Parse the string form produced by `key`.

        Raises:
            ValueError: If the key names no known metric.
        """
        if key.startswith(DEPARTMENT_KEY_PREFIX):
            return cls.department_rating(key[len(DEPARTMENT_KEY_PREFIX) :])
        return cls(MetricType(key))


def contribution_key(participant_key: str, constituency_id: int, metric: MetricKind) -> str:
    """Document key for the uniqueness tuple of a contribution.

    Two submissions for the same tuple always map to the same key, so the
    store's create-if-absent write enforces at-most-once.
    """
    return f"{constituency_id}:{metric.key}:{participant_key}"


def value_rejection_reason(
    metric: MetricKind,
    value: object,
    *,
    rating_min: int,
    rating_max: int,
    manifesto_max: int,
) -> str | None:
    """Check a submitted value against its metric's declared domain.

    Args:
        metric: The metric being answered.
        value: The submitted value.
        rating_min: Lowest allowed department rating.
        rating_max: Highest allowed department rating.
        manifesto_max: Highest allowed manifesto score.

    Returns:
        A human-readable reason if the value is out of domain, else None.
    """
    if metric.metric_type == MetricType.SATISFACTION:
        if not isinstance(value, bool):
            return "satisfaction vote must be true or false"
        return None

    if metric.metric_type == MetricType.DEPARTMENT_RATING:
        if isinstance(value, bool) or not isinstance(value, int):
            return "department rating must be an integer"
        if not rating_min <= value <= rating_max:
            return (
                f"department rating must be between {rating_min} and {rating_max}, "
                f"got {value}"
            )
        return None

    # Manifesto: None or 0 is an explicit no-op answer.
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        return "manifesto score must be an integer"
    if not 0 <= value <= manifesto_max:
        return f"manifesto score must be between 0 and {manifesto_max}, got {value}"
    return None


@dataclass(frozen=True, eq=True)
class Contribution:
    """One participant's single, immutable answer to one metric.

    Attributes:
        contribution_id: Unique identifier for this contribution.
        participant_key: Opaque identity key of the contributor.
        constituency_id: Constituency the answer is about.
        metric: Which question was answered.
        value: bool for satisfaction, int for ratings/scores, None for an
            absent manifesto score.
        submitted_at: When the contribution was recorded (UTC timezone-aware).
        content_hash: BLAKE3 hash of the canonical content (32 bytes).
    """

    contribution_id: UUID
    participant_key: str
    constituency_id: int
    metric: MetricKind
    value: bool | int | None
    submitted_at: datetime
    content_hash: bytes = field(default=b"")

    def __post_init__(self) -> None:
        """Validate fields and fill in the content hash.

        Raises:
            ValueError: If any field validation fails.
        """
        if self.submitted_at.tzinfo is None:
            raise ValueError("submitted_at must be timezone-aware (UTC)")

        if not self.content_hash:
            object.__setattr__(
                self,
                "content_hash",
                self.compute_content_hash(
                    self.participant_key,
                    self.constituency_id,
                    self.metric,
                    self.value,
                    self.submitted_at,
                ),
            )
        elif len(self.content_hash) != 32:
            raise ValueError(
                f"content_hash must be 32 bytes (BLAKE3), got {len(self.content_hash)}"
            )

    @property
    def key(self) -> str:
        return contribution_key(self.participant_key, self.constituency_id, self.metric)

    @staticmethod
    def compute_content_hash(
        participant_key: str,
        constituency_id: int,
        metric: MetricKind,
        value: bool | int | None,
        submitted_at: datetime,
    ) -> bytes:
        """Compute BLAKE3 hash for contribution content.

        Returns:
            32-byte BLAKE3 hash of the canonical content.
        """
        content = (
            f"{participant_key}|{constituency_id}|{metric.key}|{value!r}|"
            f"{submitted_at.isoformat()}"
        ).encode("utf-8")
        return blake3.blake3(content).digest()

    def verify_content_hash(self) -> bool:
        """Verify that content_hash matches the canonical content.

        Used by reconciliation to detect corrupted contribution records.
        """
        expected = self.compute_content_hash(
            self.participant_key,
            self.constituency_id,
            self.metric,
            self.value,
            self.submitted_at,
        )
        return self.content_hash == expected

    def to_dict(self) -> dict:
        """Serialize to dictionary for persistence.

        WARNING: Never use asdict() - it breaks UUID/datetime serialization.
        """
        return {
            "contribution_id": str(self.contribution_id),
            "participant_key": self.participant_key,
            "constituency_id": self.constituency_id,
            "metric": self.metric.key,
            "value": self.value,
            "submitted_at": self.submitted_at.isoformat(),
            "content_hash": self.content_hash.hex(),
            "schema_version": 1,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Contribution:
        """Deserialize from dictionary.

        Raises:
            KeyError: If required fields are missing.
            ValueError: If field values are invalid.
        """
        return cls(
            contribution_id=UUID(data["contribution_id"]),
            participant_key=data["participant_key"],
            constituency_id=int(data["constituency_id"]),
            metric=MetricKind.from_key(data["metric"]),
            value=data.get("value"),
            submitted_at=datetime.fromisoformat(data["submitted_at"]),
            content_hash=bytes.fromhex(data["content_hash"]),
        )
