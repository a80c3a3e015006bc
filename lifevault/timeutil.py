"""
lifevault/timeutil.py
Timestamp helpers. The platform returns ISO-8601 strings; everything here
works in timezone-aware UTC.
"""

from datetime import datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a platform timestamp. Accepts a trailing 'Z' and naive values
    (treated as UTC). Returns None for empty or unparseable input.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
