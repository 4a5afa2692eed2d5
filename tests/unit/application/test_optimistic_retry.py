"""Unit tests for optimistic retry backoff."""

import pytest

from src.application.services.optimistic_retry import backoff_delay


class TestBackoffDelay:
    def test_zero_base_means_no_delay(self) -> None:
        assert backoff_delay(3, 0.0, 0.0) == 0.0

    @pytest.mark.parametrize("attempt,expected", [(1, 0.1), (2, 0.2), (3, 0.4)])
    def test_exponential_with_positive_jitter(self, attempt: int, expected: float) -> None:
        delay = backoff_delay(attempt, 0.1, 10.0)
        assert expected * 1.1 <= delay <= expected * 1.25

    def test_capped(self) -> None:
        delay = backoff_delay(10, 0.1, 0.5)
        assert 0.55 <= delay <= 0.625
