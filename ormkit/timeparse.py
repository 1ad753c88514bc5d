"""Parsing of the date and time text forms that databases return."""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone

_DATE = r"(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})"
_TIME = r"(?P<hour>\d{1,2}):(?P<minute>\d{2}):(?P<second>\d{2})(?:\.(?P<frac>\d+))?"
_OFF_HMS = r"(?P<sign>[+-])(?P<oh>\d{2}):(?P<om>\d{2}):(?P<os>\d{2})"
_OFF_HM = r"(?P<sign>[+-])(?P<oh>\d{2}):(?P<om>\d{2})"
_OFF_H = r"(?P<sign>[+-])(?P<oh>\d{2})"
_OFF_RFC = r"(?:(?P<zulu>Z)|(?P<sign>[+-])(?P<oh>\d{2}):(?P<om>\d{2}))"

_TIMESTAMPTZ1 = re.compile(_DATE + " " + _TIME + _OFF_HMS)
_TIMESTAMPTZ2 = re.compile(_DATE + " " + _TIME + _OFF_HM)
_TIMESTAMPTZ3 = re.compile(_DATE + " " + _TIME + _OFF_H)
_TIMESTAMP = re.compile(_DATE + " " + _TIME)
_RFC3339 = re.compile(_DATE + "T" + _TIME + _OFF_RFC)
_TIMETZ1 = re.compile(_TIME + _OFF_HMS)
_TIMETZ2 = re.compile(_TIME + _OFF_HM)
_TIMETZ3 = re.compile(_TIME + _OFF_H)
_TIME_ONLY = re.compile(_TIME)
_DATE_ONLY = re.compile(_DATE)


def _match(pattern: re.Pattern[str], s: str) -> dict[str, str | None]:
    m = pattern.fullmatch(s)
    if m is None:
        raise ValueError(f"can't parse time={s!r}")
    return m.groupdict()


def _tz(parts: dict[str, str | None]) -> timezone:
    sign = parts.get("sign")
    if sign is None:
        return timezone.utc
    seconds = (
        int(parts.get("oh") or 0) * 3600
        + int(parts.get("om") or 0) * 60
        + int(parts.get("os") or 0)
    )
    if sign == "-":
        seconds = -seconds
    return timezone(timedelta(seconds=seconds))


def _micro(frac: str | None) -> int:
    return int((frac or "")[:6].ljust(6, "0"))


def _time(parts: dict[str, str | None], tz: timezone) -> time:
    return time(
        int(parts["hour"]),
        int(parts["minute"]),
        int(parts["second"]),
        _micro(parts.get("frac")),
        tzinfo=tz,
    )


def _datetime(parts: dict[str, str | None], tz: timezone) -> datetime:
    day = date(int(parts["year"]), int(parts["month"]), int(parts["day"]))
    return datetime.combine(day, _time(parts, tz))


def _parse_datetime(pattern: re.Pattern[str], s: str) -> datetime:
    parts = _match(pattern, s)
    try:
        return _datetime(parts, _tz(parts))
    except ValueError as exc:
        raise ValueError(f"can't parse time={s!r}: {exc}") from None


def _parse_time(pattern: re.Pattern[str], s: str) -> time:
    parts = _match(pattern, s)
    try:
        return _time(parts, _tz(parts))
    except ValueError as exc:
        raise ValueError(f"can't parse time={s!r}: {exc}") from None


def parse_time(s: str) -> datetime | time:
    """Parse a date, time, timestamp or timestamp with time zone.

    Dates and timestamps give a ``datetime``; time-of-day values give a
    ``time``. Values without an offset are taken as UTC. Fractions of a
    second beyond microseconds are truncated. Raises ``ValueError``.
    """
    length = len(s)

    if length >= len("2006-01-02 15:04:05"):
        sep = s[10]
        if sep == " ":
            if s[length - 6] in "+-":
                return _parse_datetime(_TIMESTAMPTZ2, s)
            if s[length - 3] in "+-":
                return _parse_datetime(_TIMESTAMPTZ3, s)
            if s[length - 9] in "+-":
                return _parse_datetime(_TIMESTAMPTZ1, s)
            return _parse_datetime(_TIMESTAMP, s)
        if sep == "T":
            return _parse_datetime(_RFC3339, s)

    if length >= len("15:04:05-07"):
        if s[length - 6] in "+-":
            return _parse_time(_TIMETZ2, s)
        if s[length - 3] in "+-":
            return _parse_time(_TIMETZ3, s)
        if s[length - 9] in "+-":
            return _parse_time(_TIMETZ1, s)

    if length < len("15:04:05"):
        raise ValueError(f"can't parse time={s!r}")

    if s[2] == ":":
        return _parse_time(_TIME_ONLY, s)
    parts = _match(_DATE_ONLY, s)
    try:
        return datetime(
            int(parts["year"]), int(parts["month"]), int(parts["day"]), tzinfo=timezone.utc
        )
    except ValueError as exc:
        raise ValueError(f"can't parse time={s!r}: {exc}") from None