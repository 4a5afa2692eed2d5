"""
Application layer - Use cases and orchestration for the Nagrik Ledger.

This layer contains:
- Application services (allocation, submission, reconciliation)
- Port definitions (abstract interfaces for infrastructure)
- DTOs for stored document schemas

IMPORT RULES:
- CAN import from: domain, config
- CANNOT import from: infrastructure, bootstrap
"""
