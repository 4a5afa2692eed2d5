"""Infrastructure stubs for development and testing.

Available stubs:
- DocumentStoreStub: In-memory document store with conditional writes and
  failure injection

WARNING: These stubs are NOT for production use.
Production implementations are in src/infrastructure/adapters/.
"""

from src.infrastructure.stubs.document_store_stub import DocumentStoreStub

__all__: list[str] = ["DocumentStoreStub"]
