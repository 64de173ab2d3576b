"""Group-key derivation.

serialize() turns whatever a resolver returns into a canonical string
suitable as a dict key:

    serialize({"b": 1, "a": [2, 1]})  ->  "{a:[1],[2],b:1}"

Sequence elements are sorted after serialization, so [1, 2] and [2, 1]
produce the same key. A container met again while still being walked
(a reference back to one of its ancestors) is emitted as CIRCULAR, which
bounds the walk on cyclic graphs. Shared but acyclic containers serialize
in full each time they appear.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import Any

CIRCULAR = "[Circular]"

_SEQUENCE_TYPES = (list, tuple, set, frozenset)


def serialize(value: Any) -> str:
    """Canonical, cycle-safe string for `value`."""
    return _serialize(value, {})


def default_resolver(*args: Any, **kwargs: Any) -> list:
    """Group by the full argument list (keyword arguments appended as a mapping)."""
    key = list(args)
    if kwargs:
        key.append(dict(kwargs))
    return key


def _is_structured(value: Any) -> bool:
    return isinstance(value, Mapping) or (
        dataclasses.is_dataclass(value) and not isinstance(value, type)
    )


def _fields(value: Any) -> list[tuple[str, Any]]:
    if isinstance(value, Mapping):
        return [(str(k), v) for k, v in value.items()]
    return [(f.name, getattr(value, f.name)) for f in dataclasses.fields(value)]


def _serialize(value: Any, path: dict[int, Any]) -> str:
    is_seq = isinstance(value, _SEQUENCE_TYPES)
    if not (is_seq or _is_structured(value)):
        return str(value)

    # only containers on the current path count; holding them keeps their ids unique
    if id(value) in path:
        return CIRCULAR
    path[id(value)] = value
    try:
        if is_seq:
            return ",".join(sorted(f"[{_serialize(item, path)}]" for item in value))
        pairs = sorted(_fields(value), key=lambda kv: kv[0])
        body = ",".join(f"{name}:{_serialize(v, path)}" for name, v in pairs)
        return "{" + body + "}"
    finally:
        del path[id(value)]
