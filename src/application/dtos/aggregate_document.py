"""Stored document schema for constituency aggregates.

Pydantic models describing the body of an aggregate document as it lives in
the document store. Older documents predate some fields (most commonly
`manifesto_average`); parsing fills explicit defaults, and `schema_version`
tells the migration path which documents still need rewriting.

Schema history:
- v1: satisfaction_yes/no/total, interaction_count, optional manifesto_average
- v2: adds departments, manifesto_count, contribution_count (replaces
  interaction_count), folded_contribution_ids, schema_version
- v3: replaces folded_contribution_ids with pending_fold_ids

A v1 manifesto_average was a running mean over interaction_count samples,
so that count becomes manifesto_count when the body is upgraded.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from src.domain.models.constituency_aggregate import (
    ConstituencyAggregate,
    DepartmentStat,
)

AGGREGATE_SCHEMA_VERSION = 3

# Fields every current document must carry
CURRENT_AGGREGATE_FIELDS = frozenset(
    {
        "schema_version",
        "constituency_id",
        "satisfaction_yes",
        "satisfaction_no",
        "satisfaction_total",
        "departments",
        "manifesto_average",
        "manifesto_count",
        "contribution_count",
        "last_updated",
        "pending_fold_ids",
    }
)


class DepartmentStatDocument(BaseModel):
    """Stored running mean for one department."""

    model_config = ConfigDict(extra="ignore")

    mean: float = Field(default=0.0, ge=0.0)
    count: int = Field(default=0, ge=0)


class AggregateDocument(BaseModel):
    """Stored body of a constituency aggregate.

    Unknown fields are ignored so legacy documents with extra keys still
    parse. `contribution_count` also accepts the legacy `interaction_count`.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    schema_version: int = Field(default=1, ge=1)
    constituency_id: int
    satisfaction_yes: int = Field(default=0, ge=0)
    satisfaction_no: int = Field(default=0, ge=0)
    satisfaction_total: int = Field(default=0, ge=0)
    departments: dict[str, DepartmentStatDocument] = Field(default_factory=dict)
    manifesto_average: float = Field(default=0.0, ge=0.0)
    manifesto_count: int = Field(default=0, ge=0)
    contribution_count: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("contribution_count", "interaction_count"),
    )
    last_updated: datetime | None = None
    pending_fold_ids: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _legacy_manifesto_count(cls, data: Any) -> Any:
        if not isinstance(data, Mapping) or "manifesto_count" in data:
            return data
        average = data.get("manifesto_average") or 0
        if average <= 0:
            return data
        samples = data.get("interaction_count", data.get("contribution_count"))
        if not samples:
            raise ValueError(
                "manifesto_average has no sample count; recompute required"
            )
        return {**data, "manifesto_count": samples}

    @staticmethod
    def needs_migration(raw: Mapping[str, Any]) -> bool:
        """True if a raw stored body predates the current schema."""
        if raw.get("schema_version") != AGGREGATE_SCHEMA_VERSION:
            return True
        return not CURRENT_AGGREGATE_FIELDS.issubset(raw.keys())

    @classmethod
    def from_domain(cls, aggregate: ConstituencyAggregate) -> AggregateDocument:
        return cls(
            schema_version=AGGREGATE_SCHEMA_VERSION,
            constituency_id=aggregate.constituency_id,
            satisfaction_yes=aggregate.satisfaction_yes,
            satisfaction_no=aggregate.satisfaction_no,
            satisfaction_total=aggregate.satisfaction_total,
            departments={
                name: DepartmentStatDocument(mean=stat.mean, count=stat.count)
                for name, stat in aggregate.departments.items()
            },
            manifesto_average=aggregate.manifesto_mean,
            manifesto_count=aggregate.manifesto_count,
            contribution_count=aggregate.contribution_count,
            last_updated=aggregate.last_updated,
            pending_fold_ids=sorted(aggregate.pending_fold_ids),
        )

    def to_domain(self) -> ConstituencyAggregate:
        return ConstituencyAggregate(
            constituency_id=self.constituency_id,
            satisfaction_yes=self.satisfaction_yes,
            satisfaction_no=self.satisfaction_no,
            departments={
                name: DepartmentStat(mean=stat.mean, count=stat.count)
                for name, stat in self.departments.items()
            },
            manifesto_mean=self.manifesto_average,
            manifesto_count=self.manifesto_count,
            contribution_count=self.contribution_count,
            last_updated=self.last_updated,
            pending_fold_ids=frozenset(self.pending_fold_ids),
        )

    def to_store(self) -> dict[str, Any]:
        """JSON-compatible body for the document store."""
        return self.model_dump(mode="json")


def parse_aggregate(
    raw: Mapping[str, Any], constituency_id: int | None = None
) -> ConstituencyAggregate:
    """Parse a stored body (any schema version) into the domain model.

    Legacy bodies may omit `constituency_id`; pass the id taken from the
    document key to fill it in.
    """
    data = dict(raw)
    if constituency_id is not None:
        data.setdefault("constituency_id", constituency_id)
    return AggregateDocument.model_validate(data).to_domain()


def serialize_aggregate(aggregate: ConstituencyAggregate) -> dict[str, Any]:
    """Serialize a domain aggregate into a current-schema stored body."""
    return AggregateDocument.from_domain(aggregate).to_store()
