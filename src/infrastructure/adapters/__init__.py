"""Infrastructure adapters for the Nagrik Ledger.

Adapters implement the ports defined in the application layer,
providing concrete implementations for external services.
"""

from src.infrastructure.adapters.persistence import SqlDocumentStore

__all__: list[str] = ["SqlDocumentStore"]
