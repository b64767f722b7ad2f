"""Local-day bucketing of commit instants."""

from __future__ import annotations

from collections import Counter
from datetime import UTC, date, datetime, timedelta, timezone, tzinfo
import logging
import re
from typing import Iterable, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dailycommit.crawlers.github.client import sanitize_log_extra
from dailycommit.models.commit_event import CommitEvent

logger = logging.getLogger(__name__)

DayBuckets = dict[str, int]
TimezoneLike = Union[tzinfo, str, int, float, None]

_OFFSET_RE = re.compile(r"^(?:UTC|GMT)?\s*([+-])(\d{1,2})(?::?(\d{2}))?$", re.IGNORECASE)


def resolve_timezone(value: TimezoneLike) -> tzinfo:
    """Resolve a caller-supplied timezone.

    Accepts a ``tzinfo``, an IANA name (``"America/New_York"``), an offset
    string (``"-05:00"``, ``"+0530"``, ``"UTC-5"``), or minutes east of UTC
    (``-300`` for UTC-5). ``None`` means UTC.

    Raises:
        ValueError: if the value cannot be interpreted.
    """
    if value is None:
        return UTC
    if isinstance(value, tzinfo):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid timezone: {value!r}")
    if isinstance(value, (int, float)):
        return timezone(timedelta(minutes=value))

    text = str(value).strip()
    if text.upper() in ("UTC", "Z", "GMT"):
        return UTC

    match = _OFFSET_RE.match(text)
    if match:
        sign, hours, minutes = match.groups()
        delta = timedelta(hours=int(hours), minutes=int(minutes or 0))
        if delta >= timedelta(hours=24):
            raise ValueError(f"Invalid timezone offset: {value!r}")
        return timezone(-delta if sign == "-" else delta)

    try:
        return ZoneInfo(text)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {value!r}") from exc


def local_day(instant: datetime, tz: tzinfo) -> date:
    """Calendar date of ``instant`` in ``tz``; naive instants are UTC."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant.astimezone(tz).date()


def day_key(day: date) -> str:
    return day.isoformat()


def bucketize(events: Iterable[CommitEvent], tz: TimezoneLike = None) -> DayBuckets:
    """Count commits per local calendar day.

    Each instant is converted to the caller's local date, not the host's or
    the server's. Days without commits get no entry.
    """
    zone = resolve_timezone(tz)
    counts: Counter[str] = Counter()

    for event in events:
        timestamp = getattr(event, "timestamp", None)
        if not isinstance(timestamp, datetime):
            logger.warning(
                "Skipping commit without a valid timestamp",
                extra=sanitize_log_extra(repository=getattr(event, "repository", None), sha=getattr(event, "sha", None)),
            )
            continue
        counts[day_key(local_day(timestamp, zone))] += 1

    return dict(counts)
