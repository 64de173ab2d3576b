from __future__ import annotations

import asyncio
from typing import Iterator

def next_backoff(prev: float, cap: float) -> float:
    """Exponential backoff progression with cap (no jitter)."""
    return min(prev * 2.0, cap)

def backoff_iter(initial: float = 0.25, cap: float = 30.0) -> Iterator[float]:
    """
    Deterministic iterator of backoff values:
    0.25, 0.5, 1, 2, 4, ... (capped).
    initial <= 0 yields zeros forever (retry immediately).
    """
    v = initial
    while True:
        yield max(0.0, v)
        v = next_backoff(v, cap) if v > 0 else 0.0

async def sleep_backoff(delay: float) -> None:
    """async sleep(delay), skipped entirely for non-positive delays."""
    if delay > 0:
        await asyncio.sleep(delay)
