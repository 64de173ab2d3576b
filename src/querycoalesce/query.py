"""Public wrappers: throttle_query / cache_query and their decorator forms.

    async def fetch(symbol, *, fresh=False): ...

    fetch_batched = throttle_query(fetch, 0.05, resolver=lambda symbol, **_: symbol)
    fetch_cached = cache_query(fetch_batched, 30.0, resolver=lambda symbol, **_: symbol, max_size=500)

    @cached(ttl_s=10.0)
    async def load_profile(user_id): ...

Every wrap builds its own coordinator/store; nothing is shared between
wrapped functions. Wrapped results are plain coroutine functions, so the
two layers (and retry/timeout) compose in any order.
"""

from __future__ import annotations

import functools
from typing import Any, Awaitable, Callable, Optional, TypeVar

from querycoalesce.cache import CacheStore
from querycoalesce.config import settings_from_env
from querycoalesce.keys import default_resolver
from querycoalesce.resolver import Resolver
from querycoalesce.throttle import ThrottleCoordinator
from querycoalesce.utils.time import monotonic_s

_T = TypeVar("_T")
AsyncFn = Callable[..., Awaitable[_T]]

_UNSET: Any = object()


def throttle_query(
    fn: AsyncFn,
    window_s: float,
    resolver: Resolver = default_resolver,
) -> AsyncFn:
    """
    Collapse calls that share a group key within `window_s` into one call of
    `fn` with the most recent arguments; every caller gets that one outcome.
    """
    coordinator = ThrottleCoordinator(fn, window_s, resolver)

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        return await coordinator.call(*args, **kwargs)

    wrapper.coordinator = coordinator
    return wrapper


def cache_query(
    fn: AsyncFn,
    ttl_s: float,
    resolver: Resolver = default_resolver,
    max_size: Optional[int] = None,
    *,
    clock: Callable[[], float] = monotonic_s,
) -> AsyncFn:
    """
    Share one invocation of `fn` per group key for `ttl_s` seconds, in flight
    or settled. Failures are never cached. `max_size` bounds distinct keys
    (oldest insertion evicted first); None means unbounded.
    """
    store = CacheStore(fn, ttl_s, resolver, max_size=max_size, clock=clock)

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        return await store.call(*args, **kwargs)

    wrapper.store = store
    return wrapper


def throttled(
    window_s: Optional[float] = None,
    resolver: Resolver = default_resolver,
) -> Callable[[AsyncFn], AsyncFn]:
    """Decorator form of throttle_query; window_s defaults to COALESCE_THROTTLE_WINDOW_S."""
    if window_s is None:
        window_s = settings_from_env(dotenv=False).throttle_window_s

    def decorator(fn: AsyncFn) -> AsyncFn:
        return throttle_query(fn, window_s, resolver)

    return decorator


def cached(
    ttl_s: Optional[float] = None,
    resolver: Resolver = default_resolver,
    max_size: Any = _UNSET,
) -> Callable[[AsyncFn], AsyncFn]:
    """
    Decorator form of cache_query. An omitted ttl_s / max_size falls back to
    COALESCE_CACHE_TTL_S / COALESCE_CACHE_MAX_SIZE; an explicit max_size=None
    is always unbounded.

    Settings are read from the process environment only; call load_dotenv()
    at startup if they live in a .env file.
    """
    if ttl_s is None or max_size is _UNSET:
        s = settings_from_env(dotenv=False)
        if ttl_s is None:
            ttl_s = s.cache_ttl_s
        if max_size is _UNSET:
            max_size = s.cache_max_size

    def decorator(fn: AsyncFn) -> AsyncFn:
        return cache_query(fn, ttl_s, resolver, max_size)

    return decorator
