"""Hashable keys built from a sequence of column values."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any


def new_map_key(values: Iterable[Any]) -> tuple[Any, ...]:
    """Return a hashable key that compares equal for equal value sequences."""
    return tuple(values)