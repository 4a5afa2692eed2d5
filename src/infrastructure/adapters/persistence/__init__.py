"""Persistence adapters."""

from src.infrastructure.adapters.persistence.sql_document_store import (
    DOCUMENTS_DDL,
    SqlDocumentStore,
)

__all__: list[str] = ["DOCUMENTS_DDL", "SqlDocumentStore"]
