"""Retry backoff with jitter

The delay function is pure apart from the random source, so it can be
tested with a seeded ``random.Random`` and no sleeping at all.
"""
import random
from typing import Optional


def backoff_delay(
    attempt: int,
    base_seconds: float = 2.0,
    cap_seconds: float = 60.0,
    rng: Optional[random.Random] = None,
) -> float:
    """Delay before retry number ``attempt`` (0-based).

    The base doubles per attempt and is capped; up to 50% of the base is
    added as random jitter so workers rate-limited in the same pass do not
    retry in lockstep.

    Args:
        attempt: Retry number, 0 for the first retry
        base_seconds: Delay for attempt 0 before jitter
        cap_seconds: Upper bound for the un-jittered delay
        rng: Random source (defaults to the module-level generator)

    Returns:
        Delay in seconds, within [base, 1.5 * base] for the capped base
    """
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    base = min(cap_seconds, base_seconds * (2 ** attempt))
    jitter = (rng or random).uniform(0.0, 0.5 * base)
    return base + jitter
