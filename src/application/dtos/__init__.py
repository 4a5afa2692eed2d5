"""Application DTOs (Data Transfer Objects).

These DTOs describe data crossing the boundary between the application
layer and the document store. They are distinct from:
- Domain models (immutable business objects)
- Stored documents (raw JSON-compatible dicts)

Pydantic models here give stored documents an explicit, versioned schema
with defaults, so legacy documents parse without field-presence checks at
call sites.
"""

from src.application.dtos.aggregate_document import (
    AGGREGATE_SCHEMA_VERSION,
    AggregateDocument,
    DepartmentStatDocument,
    parse_aggregate,
    serialize_aggregate,
)

__all__: list[str] = [
    "AGGREGATE_SCHEMA_VERSION",
    "AggregateDocument",
    "DepartmentStatDocument",
    "parse_aggregate",
    "serialize_aggregate",
]
