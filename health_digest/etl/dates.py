"""
Date helpers for Apple Health date strings such as ``2023-09-08 07:12:58 +0200``.

Day keys deliberately use only the leading ``YYYY-MM-DD``: time of day and
the UTC offset are dropped, so a record is attributed to the calendar day
printed in the export.
"""
import re
from datetime import datetime, timezone
from typing import Optional, Tuple

_DAY_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")


def parse_day_timestamp(date_str: Optional[str]) -> Optional[int]:
    """Return ms since epoch for UTC midnight of the leading date, or None."""
    if not date_str:
        return None
    match = _DAY_RE.search(date_str)
    if match is None:
        return None
    try:
        day = datetime(int(match.group(1)), int(match.group(2)), int(match.group(3)),
                       tzinfo=timezone.utc)
    except ValueError:
        return None
    return int(day.timestamp() * 1000)


def date_key(timestamp: Optional[int]) -> Optional[str]:
    """``YYYY-MM-DD`` for a ms timestamp, in UTC."""
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def normalize_date(date_str: Optional[str]) -> Optional[Tuple[int, str]]:
    """``(timestamp_ms, day_key)`` for a raw date attribute, or None if unparseable."""
    ts = parse_day_timestamp(date_str)
    if ts is None:
        return None
    return ts, date_key(ts)


def parse_health_datetime(date_str: Optional[str]) -> Optional[datetime]:
    """
    Parse the full ``%Y-%m-%d %H:%M:%S %z`` form, falling back to the
    offset-less form.  Used only where sub-day precision matters (workout
    durations).
    """
    if not date_str:
        return None
    try:
        return datetime.strptime(date_str.strip(), "%Y-%m-%d %H:%M:%S %z")
    except ValueError:
        try:
            return datetime.strptime(date_str.strip(), "%Y-%m-%d %H:%M:%S")
        except ValueError:
            return None
