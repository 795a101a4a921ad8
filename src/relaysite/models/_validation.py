"""Shared validation helpers for frozen dataclass models.

Private module, not part of the public API. Used by ``__post_init__``
methods in sibling model modules to enforce runtime type constraints on
events and filters.
"""

from __future__ import annotations

import string
from typing import Any


_HEX_DIGITS = frozenset(string.hexdigits.lower())


def validate_instance(value: Any, expected: type, name: str) -> None:
    """Raise ``TypeError`` if *value* is not an instance of *expected*."""
    if not isinstance(value, expected):
        article = "an" if expected.__name__[0] in "AEIOUaeiou" else "a"
        raise TypeError(f"{name} must be {article} {expected.__name__}, got {type(value).__name__}")


def validate_timestamp(value: Any, name: str) -> None:
    """Raise if *value* is not a non-negative ``int`` (``bool`` excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")


def validate_hex(value: Any, name: str, length: int) -> None:
    """Raise if *value* is not a lowercase hex string of exactly *length* chars."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    if len(value) != length or not set(value) <= _HEX_DIGITS:
        raise ValueError(f"{name} must be {length} lowercase hex characters")


def validate_tags(value: Any, name: str) -> None:
    """Raise if *value* is not a sequence of non-empty string sequences."""
    if not isinstance(value, (list, tuple)):
        raise TypeError(f"{name} must be a list, got {type(value).__name__}")
    for tag in value:
        if not isinstance(tag, (list, tuple)) or not tag:
            raise ValueError(f"{name} entries must be non-empty lists")
        for item in tag:
            if not isinstance(item, str):
                raise TypeError(f"{name} values must be str, got {type(item).__name__}")


def freeze_tags(tags: Any) -> tuple[tuple[str, ...], ...]:
    """Convert nested tag lists into nested tuples."""
    return tuple(tuple(tag) for tag in tags)
