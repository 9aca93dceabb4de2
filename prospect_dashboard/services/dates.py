"""
Timestamp normalization.

Timestamps arrive as ISO-8601 strings (``2026-02-11T10:30:00.000Z``),
space-separated exports (``2026-02-11 10:30:00`` / ``2026-02-11 1:57:53.000``),
bare dates, or anything else a CSV export produced. They are normalized to
timezone-aware UTC datetimes before any comparison, and rendered back as
millisecond ISO strings (``2026-02-11T10:30:00.000Z``) in stored documents.
Naive inputs are read as UTC.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Optional

import pandas as pd

from prospect_dashboard.models.schemas import validate_date_string

logger = logging.getLogger(__name__)

_SPACE_SEPARATED = re.compile(
    r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[ T](\d{1,2}):(\d{1,2})(?::(\d{1,2}))?(?:\.\d+)?)?$"
)

__all__ = [
    "utcnow",
    "parse_timestamp",
    "normalize_timestamp",
    "to_iso",
    "normalize_iso",
    "month_key",
    "day_key",
    "validate_date_string",
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a timestamp string into an aware UTC datetime.

    Returns:
        The parsed datetime, or None if the value is empty or unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    text = str(value).strip()
    if not text:
        return None

    try:
        return _as_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass

    match = _SPACE_SEPARATED.match(text)
    if match:
        year, month, day, hour, minute, second = match.groups()
        try:
            return datetime(
                int(year), int(month), int(day),
                int(hour or 0), int(minute or 0), int(second or 0),
                tzinfo=timezone.utc,
            )
        except ValueError:
            return None

    parsed = pd.to_datetime(text, errors="coerce", utc=True)
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def normalize_timestamp(value: Optional[str], now: Optional[datetime] = None) -> datetime:
    """
    Parse ``value``, falling back to ``now`` (processing time) when it is
    missing or unparseable. Never raises.
    """
    parsed = parse_timestamp(value)
    if parsed is not None:
        return parsed
    if value:
        logger.debug(f"Unparseable timestamp {value!r}, using processing time")
    return now or utcnow()


def to_iso(value: datetime) -> str:
    """Render as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    value = _as_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def normalize_iso(value: Optional[str], now: Optional[datetime] = None) -> str:
    return to_iso(normalize_timestamp(value, now))


def month_key(value: datetime) -> str:
    return _as_utc(value).strftime("%Y-%m")


def day_key(value: datetime) -> str:
    return _as_utc(value).strftime("%Y-%m-%d")
