"""Backoff helpers for optimistic (compare-and-swap) retry loops.

Delay grows exponentially from `base_seconds`, is capped at `max_seconds`,
then gets 10-25% positive jitter so that racers which collided once do not
collide again in lockstep.
"""

from __future__ import annotations

import asyncio
import random


def backoff_delay(attempt: int, base_seconds: float, max_seconds: float) -> float:
    """Delay before retry number `attempt` (1-based)."""
    if base_seconds <= 0 or max_seconds <= 0:
        return 0.0
    delay = min(max_seconds, base_seconds * (2 ** (attempt - 1)))
    jitter = delay * random.uniform(0.1, 0.25)
    return delay + jitter


async def sleep_before_retry(
    attempt: int, base_seconds: float, max_seconds: float
) -> None:
    # Always yield, even with zero backoff, so the winner can finish its write.
    await asyncio.sleep(backoff_delay(attempt, base_seconds, max_seconds))
