"""PostgreSQL document store adapter (SQLAlchemy async).

Implements DocumentStoreProtocol over a single `documents` table. Each
document is one row keyed by (collection, key) with a JSONB body and an
integer version used for compare-and-swap.

SQL Pattern:
    -- Create-if-absent: primary key violation means the key exists
    INSERT INTO documents (collection, key, data, version)
    VALUES (:collection, :key, CAST(:data AS JSONB), 1)

    -- Compare-and-swap
    UPDATE documents
    SET data = CAST(:data AS JSONB), version = version + 1
    WHERE collection = :collection AND key = :key AND version = :expected
    RETURNING version

Every statement runs in its own transaction. Driver and connection errors
surface as StoreUnavailableError; nothing is partially applied.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from src.application.ports.document_store import StoredDocument
from src.domain.errors.store import (
    ConcurrentModificationError,
    DocumentExistsError,
    DocumentNotFoundError,
    StoreUnavailableError,
)

logger = get_logger(__name__)

DOCUMENTS_DDL = """
    CREATE TABLE IF NOT EXISTS documents (
        collection TEXT NOT NULL,
        key TEXT NOT NULL,
        data JSONB NOT NULL,
        version INTEGER NOT NULL DEFAULT 1,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        PRIMARY KEY (collection, key)
    )
"""


def _decode(raw: Any) -> dict[str, Any]:
    # asyncpg hands JSONB back as text unless a codec is registered.
    if isinstance(raw, (str, bytes)):
        return json.loads(raw)
    return dict(raw)


class SqlDocumentStore:
    """SQLAlchemy async implementation of DocumentStoreProtocol.

    Attributes:
        _session_factory: SQLAlchemy async session factory for DB access.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize the adapter.

        Args:
            session_factory: SQLAlchemy async session factory.
        """
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(
        self, operation: str, collection: str
    ) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except IntegrityError:
            raise
        except (DBAPIError, OSError) as e:
            logger.error(
                "document_store_unavailable",
                operation=operation,
                collection=collection,
                error=str(e),
            )
            raise StoreUnavailableError(operation, collection, str(e)) from e

    async def ensure_schema(self) -> None:
        """Create the documents table if it does not exist."""
        async with self._transaction("ensure_schema", "documents") as session:
            await session.execute(text(DOCUMENTS_DDL))
        logger.info("document_store_schema_ready")

    async def get(self, collection: str, key: str) -> StoredDocument | None:
        async with self._transaction("get", collection) as session:
            result = await session.execute(
                text("""
                    SELECT data, version
                    FROM documents
                    WHERE collection = :collection AND key = :key
                """),
                {"collection": collection, "key": key},
            )
            row = result.fetchone()
        if row is None:
            return None
        return StoredDocument(collection, key, _decode(row[0]), int(row[1]))

    async def create(
        self, collection: str, key: str, data: Mapping[str, Any]
    ) -> StoredDocument:
        body = dict(data)
        try:
            async with self._transaction("create", collection) as session:
                await session.execute(
                    text("""
                        INSERT INTO documents (collection, key, data, version)
                        VALUES (:collection, :key, CAST(:data AS JSONB), 1)
                    """),
                    {"collection": collection, "key": key, "data": json.dumps(body)},
                )
        except IntegrityError as e:
            raise DocumentExistsError(collection, key) from e
        return StoredDocument(collection, key, body, 1)

    async def update(
        self,
        collection: str,
        key: str,
        data: Mapping[str, Any],
        expected_version: int,
    ) -> StoredDocument:
        body = dict(data)
        async with self._transaction("update", collection) as session:
            result = await session.execute(
                text("""
                    UPDATE documents
                    SET data = CAST(:data AS JSONB),
                        version = version + 1,
                        updated_at = now()
                    WHERE collection = :collection
                      AND key = :key
                      AND version = :expected_version
                    RETURNING version
                """),
                {
                    "collection": collection,
                    "key": key,
                    "data": json.dumps(body),
                    "expected_version": expected_version,
                },
            )
            row = result.fetchone()
            if row is None:
                current = await session.execute(
                    text("""
                        SELECT version
                        FROM documents
                        WHERE collection = :collection AND key = :key
                    """),
                    {"collection": collection, "key": key},
                )
                actual = current.scalar()
                if actual is None:
                    raise DocumentNotFoundError(collection, key)
                raise ConcurrentModificationError(
                    collection, key, expected_version, actual_version=int(actual)
                )
        return StoredDocument(collection, key, body, int(row[0]))

    async def query(self, collection: str, **equals: Any) -> list[StoredDocument]:
        # Top-level containment of scalars is field equality.
        async with self._transaction("query", collection) as session:
            result = await session.execute(
                text("""
                    SELECT key, data, version
                    FROM documents
                    WHERE collection = :collection
                      AND data @> CAST(:filter AS JSONB)
                    ORDER BY key
                """),
                {"collection": collection, "filter": json.dumps(equals)},
            )
            rows = result.fetchall()
        return [
            StoredDocument(collection, row[0], _decode(row[1]), int(row[2]))
            for row in rows
        ]

    async def batch_create(
        self, collection: str, items: Mapping[str, Mapping[str, Any]]
    ) -> int:
        if not items:
            return 0
        current_key = ""
        try:
            async with self._transaction("batch_create", collection) as session:
                for current_key, data in items.items():
                    await session.execute(
                        text("""
                            INSERT INTO documents (collection, key, data, version)
                            VALUES (:collection, :key, CAST(:data AS JSONB), 1)
                        """),
                        {
                            "collection": collection,
                            "key": current_key,
                            "data": json.dumps(dict(data)),
                        },
                    )
        except IntegrityError as e:
            raise DocumentExistsError(collection, current_key) from e
        logger.debug("document_batch_created", collection=collection, count=len(items))
        return len(items)
