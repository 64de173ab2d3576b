from __future__ import annotations

import time

# --- clocks used for windows and TTL bookkeeping ---

def monotonic_s() -> float:
    """Monotonic seconds (float). Immune to wall-clock jumps."""
    return time.monotonic()

def age_s(ts_past: float, now: float) -> float:
    """Non-negative elapsed time between ts_past and now (clamped at 0)."""
    return max(0.0, now - ts_past)

def is_expired(inserted_at: float, ttl_s: float, now: float) -> bool:
    """True once `ttl_s` or more has elapsed since `inserted_at`."""
    return now - inserted_at >= ttl_s
