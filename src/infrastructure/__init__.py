"""
Infrastructure layer - External adapters for the Nagrik Ledger.

This layer contains:
- PostgreSQL document store adapter (SQLAlchemy async)
- In-memory stubs for development and tests
- Structured logging configuration

IMPORT RULES:
- CAN import from: domain, application
- Implements ports defined in application layer
"""
