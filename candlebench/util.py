"""Small formatting helpers shared by the inspectors."""

from __future__ import annotations

from collections.abc import Sequence
from math import prod

_DECIMAL_UNITS = ("kB", "MB", "GB", "TB", "PB", "EB")


def num_elements(shape: Sequence[int]) -> int:
    """Number of elements in a tensor of the given shape (1 for a scalar)."""
    return prod(shape) if shape else 1


def format_shape(shape: Sequence[int]) -> str:
    """Render a shape as ``[a, b, c]``."""
    return "[" + ", ".join(str(dim) for dim in shape) + "]"


def format_number(n: int) -> str:
    """Render an integer with thousands separators."""
    return f"{n:,}"


def format_size(n: int) -> str:
    """Render a byte count with decimal (power of 1000) units."""
    if n < 1000:
        return f"{n} B"
    value = float(n)
    unit = _DECIMAL_UNITS[0]
    for unit in _DECIMAL_UNITS:
        value /= 1000.0
        if value < 1000.0:
            break
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {unit}"


def truncate(value: str, max_chars: int) -> str:
    """Cut ``value`` to ``max_chars`` characters, marking the cut with '...'."""
    if len(value) <= max_chars:
        return value
    return value[:max_chars] + "..."