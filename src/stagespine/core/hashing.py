"""
Deterministic hashing utilities for content-addressed stage caching.

Provides stable, reproducible fingerprints for arbitrary structured values.
Cache keys, artifact hashes and source content hashes are all derived here,
so two structurally identical sessions always agree on every key they
compute.

Manifesto:
    A content-addressed cache is only as good as its hash function:
    - **Canonical:** Mapping key order, set iteration order and object
      identity never change a hash
    - **Type-aware:** ``1`` and ``"1"`` and ``True`` hash differently
    - **Total or loud:** Values that cannot be canonicalized raise, they are
      never hashed by ``id()`` or default ``repr()``
    - **Deterministic:** Same structure always produces same hash, across
      processes and interpreter runs

Architecture:
    ::

        value ──► canonicalize() ──► canonical JSON tree
                                          │
                                          ▼
                         json.dumps(sort_keys, compact)
                                          │
                                          ▼
                                   sha256 hexdigest ──► stable_hash()

        Canonical forms:
        ┌──────────────────────┬────────────────────────────────────────┐
        │ None/bool/int/str    │ as-is                                  │
        │ float                │ {"$float": repr} (NaN/inf safe)        │
        │ bytes                │ {"$bytes": hex}                        │
        │ list/tuple           │ [canonical items]                      │
        │ dict/Mapping         │ sorted [[key, value], ...]             │
        │ set/frozenset        │ {"$set": sorted canonical items}       │
        │ Enum                 │ {"$enum": "Cls.NAME", "value": ...}    │
        │ dataclass            │ {"$type": qualname, "fields": {...}}   │
        │ pydantic model       │ {"$type": qualname, "fields": dump}    │
        │ Path                 │ {"$path": posix string}                │
        │ object w/ __dict__   │ {"$type": qualname, "fields": vars}    │
        └──────────────────────┴────────────────────────────────────────┘

Examples:
    >>> stable_hash({"b": 1, "a": 2}) == stable_hash({"a": 2, "b": 1})
    True
    >>> stable_hash({1, 2, 3}) == stable_hash({3, 2, 1})
    True
    >>> stable_hash(1) == stable_hash("1")
    False

Tags:
    hashing, fingerprint, cache-key, content-addressing, stagespine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import math
from collections.abc import Mapping
from enum import Enum
from pathlib import PurePath
from typing import Any

from stagespine.core.errors import UnhashableValueError


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute a flat deterministic hash from scalar values.

    Concatenates the string form of every value with a ``|`` delimiter and
    hashes the result with SHA-256. Suitable for hashing source text and
    other flat identifiers; use :func:`stable_hash` for structured values.

    Examples:
        >>> compute_hash("a", "b") != compute_hash("b", "a")
        True
        >>> len(compute_hash("text", length=16))
        16

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 32 = 128 bits)

    Returns:
        Hex string of specified length
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode("utf-8", "surrogatepass")).hexdigest()[:length]


def canonicalize(value: Any, *, _active: set[int] | None = None) -> Any:
    """
    Convert an arbitrary structured value into a canonical JSON tree.

    The returned tree contains only ``None``, ``bool``, ``int``, ``str``,
    lists and string-keyed dicts, and is identical for any two values that
    are structurally equal regardless of construction order.

    Args:
        value: Value to canonicalize

    Returns:
        JSON-compatible canonical representation

    Raises:
        UnhashableValueError: For self-referencing structures and values with
            no structural representation (functions, modules, sockets, ...)
    """
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, Enum):
        return {
            "$enum": f"{type(value).__qualname__}.{value.name}",
            "value": canonicalize(value.value, _active=_active),
        }
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value):
            return {"$float": "nan"}
        return {"$float": repr(value)}
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {"$bytes": bytes(value).hex()}
    if isinstance(value, PurePath):
        return {"$path": value.as_posix()}

    active = _active if _active is not None else set()
    marker = id(value)
    if marker in active:
        raise UnhashableValueError(
            "Cannot hash self-referencing structure",
            value_type=type(value).__qualname__,
        )
    active.add(marker)
    try:
        return _canonicalize_container(value, active)
    finally:
        active.discard(marker)


def _canonicalize_container(value: Any, active: set[int]) -> Any:
    if isinstance(value, (list, tuple)):
        return [canonicalize(item, _active=active) for item in value]
    if isinstance(value, Mapping):
        pairs = [
            [canonicalize(k, _active=active), canonicalize(v, _active=active)]
            for k, v in value.items()
        ]
        pairs.sort(key=lambda pair: _encode(pair[0]))
        return {"$map": pairs}
    if isinstance(value, (set, frozenset)):
        items = [canonicalize(item, _active=active) for item in value]
        items.sort(key=_encode)
        return {"$set": items}
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {
            f.name: canonicalize(getattr(value, f.name), _active=active)
            for f in dataclasses.fields(value)
        }
        return {"$type": type(value).__qualname__, "fields": fields}
    if hasattr(value, "model_dump") and hasattr(type(value), "model_fields"):
        dumped = value.model_dump(mode="python")
        return {"$type": type(value).__qualname__, "fields": canonicalize(dumped, _active=active)}

    state = _object_state(value)
    if state is None:
        raise UnhashableValueError(
            f"Cannot derive a stable hash for {type(value).__qualname__}",
            value_type=type(value).__qualname__,
        )
    return {"$type": type(value).__qualname__, "fields": canonicalize(state, _active=active)}


def _object_state(value: Any) -> dict[str, Any] | None:
    if callable(value) or isinstance(value, type):
        return None
    state: dict[str, Any] = {}
    has_state = False
    if hasattr(value, "__dict__"):
        state.update(vars(value))
        has_state = True
    for cls in type(value).__mro__:
        for slot in getattr(cls, "__slots__", ()):
            if slot in ("__dict__", "__weakref__") or not hasattr(value, slot):
                continue
            state[slot] = getattr(value, slot)
            has_state = True
    return state if has_state else None


def _encode(canonical: Any) -> str:
    return json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def stable_hash(value: Any, *, length: int = 64) -> str:
    """
    Compute a content fingerprint for an arbitrary structured value.

    Examples:
        >>> stable_hash([1, 2]) != stable_hash([2, 1])
        True
        >>> stable_hash({"x": 1}) == stable_hash({"x": 1})
        True

    Args:
        value: Any canonicalizable value
        length: Hex digest length (default 64 = full SHA-256)

    Returns:
        Hex string of specified length
    """
    encoded = _encode(canonicalize(value))
    return hashlib.sha256(encoded.encode("utf-8", "surrogatepass")).hexdigest()[:length]


__all__ = [
    "canonicalize",
    "compute_hash",
    "stable_hash",
]
