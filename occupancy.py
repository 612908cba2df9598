#!/usr/bin/env python3
"""
Occupancy signal for WIP-monitored stages

Each stage interval becomes an enter event at its start and an exit event at
its end. Sorted per status, the events describe how many issues sit in a
stage at any moment.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Dict, Iterable, Iterator, Mapping, Sequence, Tuple

from timeline import StageInterval


class OccupancyKind(IntEnum):
    """Event kind; the numeric order is the tie-break at equal timestamps"""
    EXIT = 0
    ENTER = 1


@dataclass(frozen=True)
class OccupancyEvent:
    time: datetime
    status: str
    kind: OccupancyKind

    @property
    def delta(self) -> int:
        return 1 if self.kind == OccupancyKind.ENTER else -1


def build_occupancy_events(intervals: Iterable[StageInterval],
                           wip_limits: Mapping[str, int]) -> Dict[str, Tuple[OccupancyEvent, ...]]:
    """
    Merge intervals of monitored statuses into sorted enter/exit events.

    At identical timestamps exits are ordered before enters, so an issue
    leaving a stage at the instant another arrives never counts as overlap.

    Args:
        intervals: Stage intervals across all issues
        wip_limits: Monitored status -> limit; other statuses are skipped

    Returns:
        Status -> events in processing order, materialized so both violation
        detectors can consume the same sequence
    """
    events_by_status: Dict[str, list] = {}

    for interval in intervals:
        if interval.status not in wip_limits:
            continue
        events = events_by_status.setdefault(interval.status, [])
        events.append(OccupancyEvent(interval.start, interval.status, OccupancyKind.ENTER))
        events.append(OccupancyEvent(interval.end, interval.status, OccupancyKind.EXIT))

    return {
        status: tuple(sorted(events, key=lambda e: (e.time, e.kind)))
        for status, events in events_by_status.items()
    }


def occupancy_signal(events: Sequence[OccupancyEvent]) -> Iterator[Tuple[datetime, int]]:
    """Yield (time, concurrent count) after applying each event in order"""
    count = 0
    for event in events:
        count += event.delta
        yield event.time, count


def peak_occupancy(events: Sequence[OccupancyEvent]) -> int:
    return max((count for _, count in occupancy_signal(events)), default=0)
