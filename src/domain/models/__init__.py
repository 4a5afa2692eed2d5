"""Domain models for the Nagrik Ledger.

Contains value objects and domain models that represent
core business concepts. These models are immutable and
contain no infrastructure dependencies.
"""

from src.domain.models.constituency_aggregate import (
    ConstituencyAggregate,
    DepartmentStat,
)
from src.domain.models.contribution import Contribution, MetricKind, MetricType
from src.domain.models.participant import (
    DEFAULT_PSEUDONYM_BASE,
    DisplayLanguage,
    Participant,
    PseudonymCounter,
    format_pseudonym,
    format_pseudonym_bilingual,
)

__all__: list[str] = [
    "DEFAULT_PSEUDONYM_BASE",
    "ConstituencyAggregate",
    "Contribution",
    "DepartmentStat",
    "DisplayLanguage",
    "MetricKind",
    "MetricType",
    "Participant",
    "PseudonymCounter",
    "format_pseudonym",
    "format_pseudonym_bilingual",
]
