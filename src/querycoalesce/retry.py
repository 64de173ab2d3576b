"""Retry and timeout wrappers for coroutine functions.

Both forward arguments untouched, so decorating a method works as usual:
`self` is just the first positional argument.

    fetch = retry_async_util(client.fetch, times=2, timeout_s=5.0)
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Awaitable, Callable, Optional

import structlog

from querycoalesce.errors import QueryTimeoutError
from querycoalesce.utils.backoff import backoff_iter, sleep_backoff

log = structlog.get_logger("querycoalesce.retry")

AsyncFn = Callable[..., Awaitable[Any]]


def retry_async(
    fn: AsyncFn,
    times: int = 0,
    *,
    backoff_s: float = 0.0,
    max_backoff_s: float = 30.0,
) -> AsyncFn:
    """
    Re-invoke `fn` up to `times` extra attempts when it raises.
    The last attempt's exception propagates. Attempts are counted per call.
    With backoff_s > 0, waits backoff_s, 2*backoff_s, ... (capped) between attempts.
    """
    if times < 0:
        raise ValueError("times must be >= 0")

    @functools.wraps(fn)
    async def _retry(*args: Any, **kwargs: Any) -> Any:
        delays = backoff_iter(backoff_s, max_backoff_s)
        attempt = 0
        while True:
            try:
                return await fn(*args, **kwargs)
            except Exception as e:
                if attempt >= times:
                    raise
                attempt += 1
                delay = next(delays)
                log.info("retry_attempt", fn=getattr(fn, "__name__", "?"), attempt=attempt, err=str(e), backoff_s=delay)
                await sleep_backoff(delay)

    return _retry


def timeout(fn: AsyncFn, timeout_s: Optional[float]) -> AsyncFn:
    """
    Race `fn` against a timer of `timeout_s` seconds; QueryTimeoutError on expiry.
    timeout_s None or negative returns `fn` itself (no timer at all).
    """
    if timeout_s is None or timeout_s < 0:
        return fn

    @functools.wraps(fn)
    async def _race(*args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.wait_for(fn(*args, **kwargs), timeout=timeout_s)
        except asyncio.TimeoutError:
            log.info("call_timeout", fn=getattr(fn, "__name__", "?"), timeout_s=timeout_s)
            raise QueryTimeoutError(timeout_s) from None

    return _race


def retry_async_util(fn: AsyncFn, times: int = 0, timeout_s: Optional[float] = None) -> AsyncFn:
    """timeout(retry_async(fn, times), timeout_s): the timer covers all attempts."""
    return timeout(retry_async(fn, times), timeout_s)
