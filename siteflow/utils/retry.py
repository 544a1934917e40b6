from __future__ import annotations

import random


def compute_backoff(attempt: int, base: float = 1.5, jitter: float = 0.5) -> float:
    """Compute exponential backoff with jitter, in seconds."""
    delay = base ** attempt
    return delay + random.uniform(0, jitter)


def backoff_ms(attempt: int, base: float = 1.5, jitter: float = 0.5) -> int:
    """Backoff for ``attempt`` expressed in whole milliseconds."""
    return int(compute_backoff(attempt, base=base, jitter=jitter) * 1000)
