"""Runtime checks run by the model ``__post_init__`` methods.

Every helper raises ``TypeError`` for a value of the wrong type and
``ValueError`` for a well-typed value out of range. Messages start with the
field name so they read well when surfaced by the CLI.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


_HEX_DIGITS = frozenset("0123456789abcdef")


def _wrong_type(name: str, wanted: str, value: Any) -> TypeError:
    return TypeError(f"{name} must be {wanted}, got {type(value).__name__}")


def validate_instance(value: Any, expected: type, name: str) -> None:
    """Require *value* to be an instance of *expected*."""
    if isinstance(value, expected):
        return
    label = expected.__name__
    raise _wrong_type(name, f"{'an' if label[0].lower() in 'aeiou' else 'a'} {label}", value)


def validate_int_range(value: Any, name: str, *, minimum: int = 0, maximum: int | None = None) -> None:
    """Raise if *value* is not an ``int`` (``bool`` excluded) inside the range."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise _wrong_type(name, "an int", value)
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise ValueError(f"{name} must be <= {maximum}")


def validate_str_no_null(value: Any, name: str) -> None:
    """Require a ``str`` without null bytes."""
    if not isinstance(value, str):
        raise _wrong_type(name, "a str", value)
    if "\x00" in value:
        raise ValueError(f"{name} contains null bytes")


def validate_hex(value: Any, name: str, length: int) -> None:
    """Require exactly *length* lowercase hex characters."""
    if not isinstance(value, str):
        raise _wrong_type(name, "a str", value)
    if not is_hex(value, length):
        raise ValueError(f"{name} must be {length} lowercase hex characters")


def is_hex(value: Any, length: int) -> bool:
    """Return True if *value* is a lowercase hex string of *length* chars."""
    return isinstance(value, str) and len(value) == length and _HEX_DIGITS.issuperset(value)


def freeze_tags(tags: Any, name: str = "tags") -> tuple[tuple[str, ...], ...]:
    """Validate a tag list and return it as a tuple of string tuples.

    Each tag must be a non-string sequence of strings. Strings are rejected
    at both levels because a bare ``str`` is itself a sequence.
    """
    if isinstance(tags, str | bytes) or not isinstance(tags, Sequence):
        raise _wrong_type(name, "a sequence of tags", tags)
    frozen: list[tuple[str, ...]] = []
    for i, tag in enumerate(tags):
        if isinstance(tag, str | bytes) or not isinstance(tag, Sequence):
            raise TypeError(f"{name}[{i}] must be a sequence of strings")
        for value in tag:
            if not isinstance(value, str):
                raise TypeError(f"{name}[{i}] values must be str, got {type(value).__name__}")
        frozen.append(tuple(tag))
    return tuple(frozen)
