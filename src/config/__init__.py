"""Configuration module for the Nagrik Ledger.

Available Configurations:
- PseudonymConfig: Nagrik number allocation (base value, retries, fallback range)
- LedgerConfig: Contribution value domains, fold retries, constituency range
"""

from src.config.ledger_config import (
    DEFAULT_LEDGER_CONFIG,
    DEFAULT_PSEUDONYM_CONFIG,
    TEST_LEDGER_CONFIG,
    TEST_PSEUDONYM_CONFIG,
    LedgerConfig,
    PseudonymConfig,
)

__all__ = [
    "LedgerConfig",
    "PseudonymConfig",
    "DEFAULT_LEDGER_CONFIG",
    "DEFAULT_PSEUDONYM_CONFIG",
    "TEST_LEDGER_CONFIG",
    "TEST_PSEUDONYM_CONFIG",
]
