#!/usr/bin/env python3
"""
Shared date utilities for Jira workflow analysis
Used by timeline.py, stage_stats.py, wip_violations.py, report_generator.py and flow_report.py
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Union

from config import HOURS_PER_DAY


# Jira writes offsets without a colon: 2024-03-30T09:15:00.000+0100
_COMPACT_OFFSET = re.compile(r'([+-])(\d{2})(\d{2})$')


def now_utc() -> datetime:
    """Current time as a timezone-aware UTC datetime"""
    return datetime.now(timezone.utc)


def parse_jira_date(value: Union[str, datetime]) -> datetime:
    """
    Parse a timestamp from the Jira API or an exported CSV.

    Args:
        value: ISO string like "2024-03-30T09:15:00.000+0100", "2024-03-30T08:15:00Z",
               or an existing datetime

    Returns:
        Timezone-aware datetime. Values without an offset are taken as UTC.

    Raises:
        ValueError: If the string is not a recognisable ISO timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        text = _COMPACT_OFFSET.sub(r'\1\2:\3', text)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Invalid datetime format: {value}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_hours(delta: timedelta) -> float:
    """Convert a timedelta to fractional hours"""
    return delta.total_seconds() / 3600


def hours_to_days(hours: float) -> float:
    return hours / HOURS_PER_DAY


def to_days(delta: timedelta) -> float:
    """Convert a timedelta to fractional days"""
    return delta.total_seconds() / (24 * 3600)


def truncate_to_day(moment: datetime) -> date:
    """Calendar day of a timestamp, in the timestamp's own offset"""
    return moment.date()


def iter_days(start: datetime, end: datetime) -> Iterator[date]:
    """
    Yield every calendar day touched by [start, end], both ends inclusive.

    Both ends are read in start's offset, so an end stamped in another zone
    (e.g. "now" in UTC) cannot fall on an earlier day than the start.
    """
    if start.tzinfo is not None and end.tzinfo is not None:
        end = end.astimezone(start.tzinfo)
    current = truncate_to_day(start)
    last = truncate_to_day(end)
    while current <= last:
        yield current
        current += timedelta(days=1)


def month_key(day: date) -> str:
    """Month bucket for a day, formatted YYYY-MM"""
    return day.strftime('%Y-%m')
