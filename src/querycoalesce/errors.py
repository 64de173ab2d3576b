from __future__ import annotations


class QueryError(Exception):
    """Base class for errors raised by the coalescing layer itself."""


class ResolverError(QueryError):
    """
    The caller-supplied resolver raised while deriving a group key.

    Raised before any window, cache entry or downstream call is created.
    The resolver's exception is available as `cause` and `__cause__`.
    """
    message = "Resolver function failed"

    def __init__(self, cause: BaseException):
        super().__init__(self.message)
        self.cause = cause


class QueryTimeoutError(QueryError, TimeoutError):
    """A call wrapped by `timeout()` did not settle in time."""

    def __init__(self, timeout_s: float):
        super().__init__("timeout")
        self.timeout_s = timeout_s
