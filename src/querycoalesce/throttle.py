from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import structlog

from querycoalesce.keys import default_resolver
from querycoalesce.resolver import Resolver, invoke_resolver
from querycoalesce.utils.time import age_s, monotonic_s

log = structlog.get_logger("querycoalesce.throttle")


@dataclass(slots=True)
class ThrottleStats:
    windows_opened: int = 0
    calls_coalesced: int = 0     # calls that joined an already-open window
    invocations: int = 0
    failures: int = 0


@dataclass(slots=True)
class PendingWindow:
    key: str
    args: tuple
    kwargs: dict
    opened_at: float
    waiters: list[asyncio.Future] = field(default_factory=list)
    handle: Optional[asyncio.TimerHandle] = None


class ThrottleCoordinator:
    """
    Time-window batching per group key.

    The first call for a key opens a window of `window_s` seconds. Calls that
    arrive while it is open only replace the recorded arguments and queue up
    as waiters; the timer is never pushed back. When the timer fires the
    window is dropped, the wrapped function runs once with the latest
    arguments, and its single outcome is delivered to every waiter.

    Usage:
        coord = ThrottleCoordinator(fetch_quote, window_s=0.05, resolver=lambda sym, *_: sym)
        result = await coord.call("NVDA", fresh=True)
    """

    def __init__(
        self,
        fn: Callable[..., Awaitable[Any]],
        window_s: float,
        resolver: Resolver = default_resolver,
    ):
        if window_s < 0:
            raise ValueError("window_s must be >= 0")
        self._fn = fn
        self.window_s = float(window_s)
        self._resolver = resolver
        self._windows: dict[str, PendingWindow] = {}
        self._running: set[asyncio.Future] = set()
        self.stats = ThrottleStats()

    # ---------------------------- public API ---------------------------- #

    async def call(self, *args: Any, **kwargs: Any) -> Any:
        # resolver failures surface here, before any window exists
        key = invoke_resolver(self._resolver, args, kwargs)
        return await self._attach(key, args, kwargs)

    def pending_keys(self) -> list[str]:
        return list(self._windows)

    def is_open(self, key: str) -> bool:
        return key in self._windows

    # --------------------------- core internals ------------------------- #

    def _attach(self, key: str, args: tuple, kwargs: dict) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()

        window = self._windows.get(key)
        if window is None:
            window = PendingWindow(key=key, args=args, kwargs=kwargs, opened_at=monotonic_s())
            window.handle = loop.call_later(self.window_s, self._fire, key)
            self._windows[key] = window
            self.stats.windows_opened += 1
            log.debug("throttle_window_open", key=key, window_s=self.window_s)
        else:
            window.args = args
            window.kwargs = kwargs
            self.stats.calls_coalesced += 1

        window.waiters.append(waiter)
        return waiter

    def _fire(self, key: str) -> None:
        window = self._windows.pop(key, None)
        if window is None:
            return
        self.stats.invocations += 1
        log.debug(
            "throttle_window_fire",
            key=key,
            waiters=len(window.waiters),
            open_for_s=round(age_s(window.opened_at, monotonic_s()), 4),
        )

        try:
            task = asyncio.ensure_future(self._fn(*window.args, **window.kwargs))
        except Exception as e:
            # fn raised before producing an awaitable
            self._reject(window, e)
            return

        self._running.add(task)
        task.add_done_callback(lambda t: self._settle(window, t))

    def _settle(self, window: PendingWindow, task: asyncio.Future) -> None:
        self._running.discard(task)
        if task.cancelled():
            for w in window.waiters:
                if not w.done():
                    w.cancel()
            return
        exc = task.exception()
        if exc is not None:
            self._reject(window, exc)
            return
        result = task.result()
        for w in window.waiters:
            if not w.done():
                w.set_result(result)

    def _reject(self, window: PendingWindow, exc: BaseException) -> None:
        self.stats.failures += 1
        log.warning("throttle_invocation_failed", key=window.key, err=str(exc), waiters=len(window.waiters))
        for w in window.waiters:
            if not w.done():
                w.set_exception(exc)
