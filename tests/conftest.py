"""
Pytest configuration and shared fixtures for Nagrik Ledger tests.

Testing Standards:
- All async tests use pytest.mark.asyncio (auto mode enabled in pyproject.toml)
- Use AsyncMock for async function mocking
- Services run against DocumentStoreStub; no database is needed
- Unit tests go in tests/unit/
- Integration tests go in tests/integration/
"""

import pytest
import structlog


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio as the async backend."""
    return "asyncio"


@pytest.fixture
def project_version() -> str:
    """Provide the current project version for tests."""
    from src import __version__

    return __version__


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo any structlog configuration a test applied."""
    yield
    structlog.reset_defaults()
