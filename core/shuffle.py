"""Shuffle logic (pure, no I/O).

Provides:
- Fisher–Yates shuffle (unbiased, injectable RNG)
- Sentinel prefix extraction from a queue snapshot
"""

from __future__ import annotations

import random
from typing import List, Optional, Sequence


# ---------------------------------------------------------------------------
# Fisher–Yates Shuffle
# ---------------------------------------------------------------------------

def fisher_yates_shuffle(
    items: List[str],
    rng: Optional[random.Random] = None,
) -> List[str]:
    """In-place unbiased Fisher–Yates (Knuth) shuffle.

    Walks forward: for ``i`` in ``0 .. n-2`` swap ``items[i]`` with
    ``items[j]``, ``j`` drawn uniformly from ``[i, n)``.

    Parameters
    ----------
    items:
        List of URIs to shuffle.  Will be **mutated** in place.
    rng:
        Optional ``random.Random`` instance for deterministic testing.

    Returns
    -------
    The same list (shuffled in place) for convenience.
    """
    rng = rng or random.Random()
    n = len(items)
    for i in range(n - 1):
        j = rng.randrange(i, n)
        items[i], items[j] = items[j], items[i]
    return items


# ---------------------------------------------------------------------------
# Sentinel prefix
# ---------------------------------------------------------------------------

def prefix_before_sentinel(uris: Sequence[str], sentinel: str) -> Optional[List[str]]:
    """Return the URIs before the first *sentinel*, or ``None`` if it is absent.

    Everything after the sentinel is auto-play content and is dropped.
    """
    try:
        end = uris.index(sentinel)
    except ValueError:
        return None
    return list(uris[:end])
