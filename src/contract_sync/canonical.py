"""Deterministic JSON canonicalization and hashing helpers.

Canonical output sorts every mapping key by code point, keeps sequence order,
and leaves scalars untouched so that ``true`` and ``"true"`` stay distinct.
The compact form is used for comparison and hashing; :func:`pretty` expands
the same tree for the committed snapshot.
"""

from __future__ import annotations

import hashlib
import json
import math
from collections.abc import Mapping
from typing import TypeAlias

__all__ = [
    "SpecDocument",
    "canonicalize",
    "digest",
    "hash_canonical",
    "pretty",
    "sort_value",
]

SpecDocument: TypeAlias = (
    dict[str, "SpecDocument"] | list["SpecDocument"] | str | int | float | bool | None
)

_SCALAR_TYPES = (str, int, float, bool, type(None))


def sort_value(value: object) -> SpecDocument:
    """Return a copy of ``value`` with every mapping rebuilt in sorted key order.

    Args:
        value: Arbitrary tree of mappings, sequences and JSON scalars.

    Returns:
        Normalised tree whose dictionaries iterate in ordinal key order.

    Raises:
        TypeError: If the tree contains a non JSON-compatible value or a
            mapping key that is not a string.
        ValueError: If the tree contains a non-finite float.
    """

    if isinstance(value, (list, tuple)):
        return [sort_value(item) for item in value]
    if isinstance(value, Mapping):
        for key in value:
            if not isinstance(key, str):
                raise TypeError(
                    f"Mapping keys must be strings, got {type(key).__name__}"
                )
        return {key: sort_value(value[key]) for key in sorted(value)}
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"Non-finite number {value!r} is not valid JSON")
    if isinstance(value, _SCALAR_TYPES):
        return value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonicalize(obj: object) -> str:
    """
    Return deterministic JSON serialization for obj.

    Keys are ordered by :func:`sort_value` rather than the encoder, compact
    separators keep the output whitespace-stable for hashing, and non-ASCII
    text is escaped so any parsed string (lone surrogates included) encodes.
    """
    return json.dumps(
        sort_value(obj),
        separators=(",", ":"),
        ensure_ascii=True,
        allow_nan=False,
    )


def digest(text: str) -> str:
    """Return the lowercase SHA-256 hex digest of ``text`` encoded as UTF-8."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_canonical(obj: object) -> str:
    """Return SHA-256 hex digest over the canonicalized JSON representation."""
    return digest(canonicalize(obj))


def pretty(obj: object) -> str:
    """Render the canonical tree with two-space indentation and a final newline."""
    expanded = json.dumps(
        json.loads(canonicalize(obj)), indent=2, ensure_ascii=True, allow_nan=False
    )
    return f"{expanded}\n"
