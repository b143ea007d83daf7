from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as a UTC-naive datetime (the form stored in every column)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _is_bare_date(value: str) -> bool:
    return len(value) == 10 and value[4] == "-" and value[7] == "-"


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Read a client timestamp into UTC-naive form.

    - None / "" -> None
    - "2024-06-11" (date pickers) -> midnight UTC that day
    - naive "2024-06-11T14:30" -> taken as UTC
    - "...Z" / "...+05:00" -> converted to UTC

    Raises ValueError on anything else.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if _is_bare_date(s):
        d = date.fromisoformat(s)
        return datetime(d.year, d.month, d.day)

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_date_range(
    start: Optional[str],
    end: Optional[str],
) -> tuple[Optional[datetime], Optional[datetime]]:
    """
    List filter bounds as (inclusive start, exclusive end).

    A bare end date covers that whole day; an end timestamp is inclusive to
    the second.
    """
    lower = parse_iso_datetime(start)
    upper = parse_iso_datetime(end)
    if upper is not None:
        if _is_bare_date(end.strip()):
            upper = upper + timedelta(days=1)
        else:
            upper = upper + timedelta(seconds=1)
    return lower, upper


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """API form of a stored datetime: second precision, trailing 'Z'."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
