#!/usr/bin/env python3
"""
Stage duration aggregation

Folds stage intervals into per-status totals, counts and maxima, either for
the whole dataset or per issue.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from timeline import StageInterval
from utils_dates import hours_to_days


@dataclass
class StageStats:
    """Accumulated time spent in one status"""
    total_hours: float = 0.0
    occurrence_count: int = 0
    max_hours: float = 0.0

    def add(self, hours: float):
        self.total_hours += hours
        self.occurrence_count += 1
        self.max_hours = max(self.max_hours, hours)

    @property
    def average_hours(self) -> float:
        # Derived on read, never kept as a running value
        if self.occurrence_count == 0:
            return 0.0
        return self.total_hours / self.occurrence_count

    @property
    def total_days(self) -> float:
        return hours_to_days(self.total_hours)

    @property
    def max_days(self) -> float:
        return hours_to_days(self.max_hours)

    @property
    def average_days(self) -> float:
        return hours_to_days(self.average_hours)


class StageStatsTable:
    """Per-run aggregator of StageStats keyed by status"""

    def __init__(self):
        self._stats: Dict[str, StageStats] = {}

    def add(self, interval: StageInterval):
        """Fold a single interval into its status's totals"""
        self._stats.setdefault(interval.status, StageStats()).add(interval.duration_hours)

    def add_all(self, intervals: Iterable[StageInterval]) -> 'StageStatsTable':
        for interval in intervals:
            self.add(interval)
        return self

    def stats(self, status: str) -> Optional[StageStats]:
        return self._stats.get(status)

    @property
    def statuses(self) -> List[str]:
        return list(self._stats.keys())

    def items(self) -> List[Tuple[str, StageStats]]:
        return list(self._stats.items())

    def __len__(self) -> int:
        return len(self._stats)

    def longest_stage(self) -> Optional[Tuple[str, StageStats]]:
        """Status with the highest average time per stay"""
        if not self._stats:
            return None
        return max(self._stats.items(), key=lambda entry: entry[1].average_hours)

    def max_task_age(self) -> Optional[Tuple[str, StageStats]]:
        """Status holding the single longest individual stay"""
        if not self._stats:
            return None
        return max(self._stats.items(), key=lambda entry: entry[1].max_hours)

    def to_dataframe(self) -> pd.DataFrame:
        """Tabular view: status, total_hours, count, max_hours, avg_hours"""
        rows = [
            {
                'status': status,
                'total_hours': round(stats.total_hours, 2),
                'count': stats.occurrence_count,
                'max_hours': round(stats.max_hours, 2),
                'avg_hours': round(stats.average_hours, 2),
            }
            for status, stats in self._stats.items()
        ]
        return pd.DataFrame(rows, columns=['status', 'total_hours', 'count', 'max_hours', 'avg_hours'])


def aggregate_stage_durations(intervals: Iterable[StageInterval]) -> StageStatsTable:
    """Dataset-wide stage statistics across all issues"""
    return StageStatsTable().add_all(intervals)


def aggregate_per_item(intervals: Iterable[StageInterval]) -> Dict[str, StageStatsTable]:
    """One StageStatsTable per issue key"""
    tables: Dict[str, StageStatsTable] = {}
    for interval in intervals:
        tables.setdefault(interval.item_id, StageStatsTable()).add(interval)
    return tables


def stage_records(intervals: Iterable[StageInterval]) -> List[Dict]:
    """Per-interval (issueKey, status, hoursSpent) rows for time-in-stage reporting"""
    return [
        {
            'issueKey': interval.item_id,
            'status': interval.status,
            'hoursSpent': round(interval.duration_hours, 2),
        }
        for interval in intervals
    ]
