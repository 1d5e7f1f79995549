from __future__ import annotations

from typing import Tuple

from .constants import PREFERRED_SEARCH_TO_BATCH_RATIO


def plan_parallelism(concurrency: int, preferred_ratio: float = PREFERRED_SEARCH_TO_BATCH_RATIO) -> Tuple[int, int]:
    """
    Splits the concurrency budget into (parallel_searches, parallel_batches).

    Guarantees parallel_searches * parallel_batches == concurrency, picking the divisor
    pair whose searches/batches ratio is closest to `preferred_ratio`. Ties go to the
    pair with fewer searches per batch.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be a positive integer, got {concurrency}")

    best: Tuple[int, int] = (1, concurrency)
    min_diff = float("inf")

    for searches in range(1, concurrency + 1):
        if concurrency % searches:
            continue

        batches = concurrency // searches
        diff = abs(searches / batches - preferred_ratio)
        if diff < min_diff:
            min_diff = diff
            best = (searches, batches)

    return best
