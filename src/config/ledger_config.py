"""Identity and aggregation configuration.

This module defines configuration for nagrik number allocation and for the
constituency aggregate ledger, with environment variable overrides for
production tuning.

Environment Variables (Pseudonym):
- NAGRIK_PSEUDONYM_BASE: First nagrik number ever issued (default: 1001)
- NAGRIK_PSEUDONYM_MAX_ATTEMPTS: CAS attempts before giving up (default: 5)
- NAGRIK_PSEUDONYM_FALLBACK_MAX: Top of the degraded random range (default: 9999)
- NAGRIK_PSEUDONYM_BACKOFF_BASE: Base backoff in seconds (default: 0.02)
- NAGRIK_PSEUDONYM_BACKOFF_MAX: Backoff cap in seconds (default: 0.5)

Environment Variables (Ledger):
- NAGRIK_RATING_MIN / NAGRIK_RATING_MAX: Department rating domain (default: 1..5)
- NAGRIK_MANIFESTO_MAX: Highest manifesto score (default: 5)
- NAGRIK_FOLD_MAX_ATTEMPTS: Aggregate CAS attempts per fold (default: 5)
- NAGRIK_FOLD_BACKOFF_BASE: Base backoff in seconds (default: 0.01)
- NAGRIK_FOLD_BACKOFF_MAX: Backoff cap in seconds (default: 0.25)
- NAGRIK_CONSTITUENCY_FIRST / NAGRIK_CONSTITUENCY_LAST: Known constituency
  range for bootstrap and health checks (default: 1..243)
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _get_int_env(key: str, default: int) -> int:
    """Get integer environment variable with default.

    Args:
        key: Environment variable name.
        default: Default value if not set or invalid.

    Returns:
        Parsed integer value or default.
    """
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float_env(key: str, default: float) -> float:
    """Get float environment variable with default.

    Args:
        key: Environment variable name.
        default: Default value if not set or invalid.

    Returns:
        Parsed float value or default.
    """
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class PseudonymConfig:
    """Configuration for nagrik number allocation.

    Attributes:
        base_value: First nagrik number ever issued. Default: 1001.
        max_attempts: Bounded CAS retries before AllocationFailedError.
                     Default: 5.
        fallback_max: Top of the random range used for degraded
                     allocations (range starts at base_value). Default: 9999.
        backoff_base_seconds: First retry delay before jitter.
        backoff_max_seconds: Cap on the exponential retry delay.
        counter_key: Document key of the counter in the counters collection.
    """

    base_value: int = 1001
    max_attempts: int = 5
    fallback_max: int = 9999
    backoff_base_seconds: float = 0.02
    backoff_max_seconds: float = 0.5
    counter_key: str = "nagrik_number"

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.base_value < 1:
            raise ValueError(f"base_value must be positive, got {self.base_value}")
        if self.max_attempts < 1:
            raise ValueError(
                f"max_attempts must be at least 1, got {self.max_attempts}"
            )
        if self.fallback_max < self.base_value:
            raise ValueError(
                f"fallback_max ({self.fallback_max}) must not be below "
                f"base_value ({self.base_value})"
            )
        if self.backoff_base_seconds < 0 or self.backoff_max_seconds < 0:
            raise ValueError("backoff seconds must be non-negative")
        if not self.counter_key:
            raise ValueError("counter_key must not be empty")

    @classmethod
    def from_environment(cls) -> "PseudonymConfig":
        """Create config from environment variables with defaults.

        Returns:
            PseudonymConfig with values from environment or defaults.
        """
        return cls(
            base_value=_get_int_env("NAGRIK_PSEUDONYM_BASE", 1001),
            max_attempts=_get_int_env("NAGRIK_PSEUDONYM_MAX_ATTEMPTS", 5),
            fallback_max=_get_int_env("NAGRIK_PSEUDONYM_FALLBACK_MAX", 9999),
            backoff_base_seconds=_get_float_env("NAGRIK_PSEUDONYM_BACKOFF_BASE", 0.02),
            backoff_max_seconds=_get_float_env("NAGRIK_PSEUDONYM_BACKOFF_MAX", 0.5),
        )


@dataclass(frozen=True)
class LedgerConfig:
    """Configuration for contribution intake and aggregate maintenance.

    Attributes:
        rating_min: Lowest valid department rating. Default: 1.
        rating_max: Highest valid department rating. Default: 5.
        manifesto_max: Highest valid manifesto score. Default: 5.
        fold_max_attempts: Aggregate CAS attempts per fold. Default: 5.
        backoff_base_seconds: First retry delay before jitter.
        backoff_max_seconds: Cap on the exponential retry delay.
        constituency_first: Lowest known constituency id. Default: 1.
        constituency_last: Highest known constituency id. Default: 243.
    """

    rating_min: int = 1
    rating_max: int = 5
    manifesto_max: int = 5
    fold_max_attempts: int = 5
    backoff_base_seconds: float = 0.01
    backoff_max_seconds: float = 0.25
    constituency_first: int = 1
    constituency_last: int = 243

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.rating_min > self.rating_max:
            raise ValueError(
                f"rating_min ({self.rating_min}) must not exceed "
                f"rating_max ({self.rating_max})"
            )
        if self.manifesto_max < 1:
            raise ValueError(
                f"manifesto_max must be positive, got {self.manifesto_max}"
            )
        if self.fold_max_attempts < 1:
            raise ValueError(
                f"fold_max_attempts must be at least 1, got {self.fold_max_attempts}"
            )
        if self.backoff_base_seconds < 0 or self.backoff_max_seconds < 0:
            raise ValueError("backoff seconds must be non-negative")
        if not 1 <= self.constituency_first <= self.constituency_last:
            raise ValueError(
                f"invalid constituency range {self.constituency_first}.."
                f"{self.constituency_last}"
            )

    @classmethod
    def from_environment(cls) -> "LedgerConfig":
        """Create config from environment variables with defaults.

        Returns:
            LedgerConfig with values from environment or defaults.
        """
        return cls(
            rating_min=_get_int_env("NAGRIK_RATING_MIN", 1),
            rating_max=_get_int_env("NAGRIK_RATING_MAX", 5),
            manifesto_max=_get_int_env("NAGRIK_MANIFESTO_MAX", 5),
            fold_max_attempts=_get_int_env("NAGRIK_FOLD_MAX_ATTEMPTS", 5),
            backoff_base_seconds=_get_float_env("NAGRIK_FOLD_BACKOFF_BASE", 0.01),
            backoff_max_seconds=_get_float_env("NAGRIK_FOLD_BACKOFF_MAX", 0.25),
            constituency_first=_get_int_env("NAGRIK_CONSTITUENCY_FIRST", 1),
            constituency_last=_get_int_env("NAGRIK_CONSTITUENCY_LAST", 243),
        )


# Pre-defined configurations

DEFAULT_PSEUDONYM_CONFIG = PseudonymConfig()
DEFAULT_LEDGER_CONFIG = LedgerConfig()

# Testing configs: no backoff sleeps, small fallback range
TEST_PSEUDONYM_CONFIG = PseudonymConfig(
    backoff_base_seconds=0.0,
    backoff_max_seconds=0.0,
)
TEST_LEDGER_CONFIG = LedgerConfig(
    backoff_base_seconds=0.0,
    backoff_max_seconds=0.0,
)
