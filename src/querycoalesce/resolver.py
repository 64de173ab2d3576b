from __future__ import annotations

from typing import Any, Callable

import structlog

from querycoalesce.errors import ResolverError
from querycoalesce.keys import serialize

log = structlog.get_logger("querycoalesce.resolver")

Resolver = Callable[..., Any]


def invoke_resolver(resolver: Resolver, args: tuple, kwargs: dict) -> str:
    """
    Run `resolver(*args, **kwargs)` and serialize its output into a group key.

    Any exception from the resolver is re-raised as ResolverError, chained
    from the original, before the caller has touched any shared state.
    """
    try:
        raw = resolver(*args, **kwargs)
    except Exception as e:
        log.warning("resolver_failed", resolver=getattr(resolver, "__name__", repr(resolver)), err=str(e))
        raise ResolverError(e) from e
    return serialize(raw)
