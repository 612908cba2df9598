#!/usr/bin/env python3
"""
WIP limit violation detection

Two views of the same question:
- continuous: sweep the occupancy events and measure every span during
  which a stage held more issues than its limit
- daily: count an issue as present for a whole calendar day if it was in the
  stage at any point that day, then count violating days per month
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from itertools import groupby
from typing import Dict, Iterable, List, Mapping, Sequence

from occupancy import OccupancyEvent
from timeline import StageInterval
from utils_dates import iter_days, month_key, to_days


@dataclass(frozen=True)
class ViolationSpan:
    """A maximal stretch of time a stage spent over its WIP limit"""
    status: str
    start: datetime
    end: datetime
    open_ended: bool = False

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def duration_days(self) -> float:
        return to_days(self.duration)


@dataclass(frozen=True)
class ViolationSummary:
    status: str
    limit: int
    violation_count: int
    longest_violation_days: float


@dataclass(frozen=True)
class MonthlyViolation:
    month: str
    status: str
    violating_day_count: int


def detect_violation_spans(status: str, events: Sequence[OccupancyEvent], limit: int) -> List[ViolationSpan]:
    """
    Sweep one status's occupancy events and return its violation spans.

    All events sharing a timestamp are applied before the count is compared
    with the limit, so the reported spans are maximal. If the data ends while
    the stage is still over its limit, the last span is closed at the final
    event time and marked open_ended.
    """
    spans = []
    count = 0
    violation_start = None
    last_time = None

    for time, group in groupby(events, key=lambda e: e.time):
        for event in group:
            count += event.delta
        last_time = time

        if count > limit and violation_start is None:
            violation_start = time
        elif count <= limit and violation_start is not None:
            spans.append(ViolationSpan(status, violation_start, time))
            violation_start = None

    if violation_start is not None:
        spans.append(ViolationSpan(status, violation_start, last_time, open_ended=True))

    return spans


def detect_all_violation_spans(events_by_status: Mapping[str, Sequence[OccupancyEvent]],
                               wip_limits: Mapping[str, int]) -> Dict[str, List[ViolationSpan]]:
    """Run the continuous sweep for every monitored status that has events"""
    return {
        status: detect_violation_spans(status, events, wip_limits[status])
        for status, events in events_by_status.items()
        if status in wip_limits
    }


def summarize_violations(spans_by_status: Mapping[str, List[ViolationSpan]],
                         wip_limits: Mapping[str, int]) -> List[ViolationSummary]:
    """Violation count and longest span (days) for each monitored status"""
    summaries = []
    for status, limit in wip_limits.items():
        spans = spans_by_status.get(status, [])
        summaries.append(ViolationSummary(
            status=status,
            limit=limit,
            violation_count=len(spans),
            longest_violation_days=max((span.duration_days for span in spans), default=0.0)
        ))
    return summaries


def build_daily_wip(intervals: Iterable[StageInterval],
                    wip_limits: Mapping[str, int]) -> Dict[date, Dict[str, int]]:
    """
    Count issues present per calendar day for each monitored status.

    Every day from the interval's start day through its end day (inclusive)
    gets one count, so an issue touching a day counts for that whole day.
    """
    daily_wip: Dict[date, Dict[str, int]] = defaultdict(lambda: defaultdict(int))

    for interval in intervals:
        if interval.status not in wip_limits:
            continue
        for day in iter_days(interval.start, interval.end):
            daily_wip[day][interval.status] += 1

    return {day: dict(counts) for day, counts in daily_wip.items()}


def calculate_monthly_violations(daily_wip: Mapping[date, Mapping[str, int]],
                                 wip_limits: Mapping[str, int]) -> List[MonthlyViolation]:
    """One violating day per (day, status) over its limit, grouped by YYYY-MM"""
    violations: Dict[tuple, int] = defaultdict(int)

    for day, counts in daily_wip.items():
        for status, count in counts.items():
            limit = wip_limits.get(status)
            if limit is not None and count > limit:
                violations[(month_key(day), status)] += 1

    return [
        MonthlyViolation(month=month, status=status, violating_day_count=days)
        for (month, status), days in sorted(violations.items())
    ]
