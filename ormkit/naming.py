"""Conversions between CamelCase and snake_case names (ASCII only)."""

from __future__ import annotations


def _is_upper(c: str) -> bool:
    return "A" <= c <= "Z"


def _is_lower(c: str) -> bool:
    return "a" <= c <= "z"


def underscore(s: str) -> str:
    """Convert ``"CamelCasedString"`` to ``"camel_cased_string"``."""
    out: list[str] = []
    last = len(s) - 1
    for i, c in enumerate(s):
        if not _is_upper(c):
            out.append(c)
            continue
        if 0 < i < last and (_is_lower(s[i - 1]) or _is_lower(s[i + 1])):
            out.append("_")
        out.append(c.lower())
    return "".join(out)


def camel_cased(s: str) -> str:
    """Convert ``"snake_case"`` to ``"SnakeCase"``."""
    out: list[str] = []
    upper_next = True
    for c in s:
        if c == "_":
            upper_next = True
            continue
        if upper_next:
            if _is_lower(c):
                c = c.upper()
            upper_next = False
        out.append(c)
    return "".join(out)


def to_exported(s: str) -> str:
    """Upper-case the first character if it is an ASCII lower-case letter."""
    if s and _is_lower(s[0]):
        return s[0].upper() + s[1:]
    return s