from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

import structlog
from dotenv import load_dotenv


@dataclass(slots=True)
class CoalesceSettings:
    throttle_window_s: float = 0.05
    cache_ttl_s: float = 30.0
    cache_max_size: Optional[int] = None   # None -> unbounded
    log_level: str = "WARNING"


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _size_env(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        v = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    return v if v > 0 else None


def settings_from_env(*, dotenv: bool = True) -> CoalesceSettings:
    """
    Build settings from COALESCE_* environment variables (after loading .env).

      COALESCE_THROTTLE_WINDOW_S   default 0.05
      COALESCE_CACHE_TTL_S         default 30
      COALESCE_CACHE_MAX_SIZE      default unbounded (0 also means unbounded)
      COALESCE_LOG_LEVEL           default WARNING
    """
    if dotenv:
        load_dotenv()
    d = CoalesceSettings()
    return CoalesceSettings(
        throttle_window_s=_float_env("COALESCE_THROTTLE_WINDOW_S", d.throttle_window_s),
        cache_ttl_s=_float_env("COALESCE_CACHE_TTL_S", d.cache_ttl_s),
        cache_max_size=_size_env("COALESCE_CACHE_MAX_SIZE"),
        log_level=(os.getenv("COALESCE_LOG_LEVEL") or d.log_level).upper(),
    )


def configure_logging(level: str = "WARNING") -> None:
    """Filter structlog output below `level` (e.g. "DEBUG" to see per-key events)."""
    lvl = logging.getLevelName(level.upper())
    if not isinstance(lvl, int):
        raise ValueError(f"unknown log level {level!r}")
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(lvl))
