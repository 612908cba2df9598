#!/usr/bin/env python3
"""
Issue timeline reconstruction

Turns a Jira issue's creation time, its status changelog and its terminal time
into an ordered, gap-free list of stage intervals.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from utils import get_issue_key
from utils_dates import parse_jira_date, to_days, to_hours


@dataclass(frozen=True)
class StatusChangeEvent:
    """One observed transition of an issue into to_status"""
    occurred_at: datetime
    to_status: str
    from_status: Optional[str] = None


@dataclass(frozen=True)
class StageInterval:
    """Time an issue spent in one status, [start, end)"""
    item_id: str
    status: str
    start: datetime
    end: datetime

    @property
    def duration_hours(self) -> float:
        return to_hours(self.end - self.start)

    @property
    def duration_days(self) -> float:
        return to_days(self.end - self.start)


@dataclass
class IssueHistory:
    """Everything the timeline builder needs to know about one issue"""
    item_id: str
    created_at: datetime
    initial_status: Optional[str]
    events: List[StatusChangeEvent] = field(default_factory=list)
    resolved_at: Optional[datetime] = None

    def terminal_time(self, now: datetime) -> datetime:
        """Resolution time for closed issues, otherwise the analysis time in the creation offset"""
        if self.resolved_at is not None:
            return self.resolved_at
        if self.created_at.tzinfo is not None and now.tzinfo is not None:
            return now.astimezone(self.created_at.tzinfo)
        return now


def build_issue_timeline(item_id: str,
                         created_at: datetime,
                         initial_status: str,
                         events: Sequence[StatusChangeEvent],
                         terminal_time: datetime) -> List[StageInterval]:
    """
    Build the ordered stage intervals for one issue.

    Events are sorted by time; sorted() is stable so simultaneous transitions
    keep their changelog order. A span is only recorded when it has positive
    length, so back-to-back transitions at the same instant and a terminal
    time at or before the last transition leave no zero-length stays behind.

    Args:
        item_id: Issue key
        created_at: Issue creation time
        initial_status: Status the issue was created in
        events: Status changes, in any order
        terminal_time: Resolution time or "now"

    Returns:
        Contiguous, non-overlapping intervals in time order
    """
    intervals = []
    current_status = initial_status
    current_start = created_at

    for event in sorted(events, key=lambda e: e.occurred_at):
        if event.occurred_at > current_start:
            intervals.append(StageInterval(item_id, current_status, current_start, event.occurred_at))
        current_status = event.to_status
        current_start = event.occurred_at

    if terminal_time > current_start:
        intervals.append(StageInterval(item_id, current_status, current_start, terminal_time))

    return intervals


def extract_status_changes(issue: Dict) -> List[StatusChangeEvent]:
    """
    Extract status transitions from a Jira issue's changelog.

    Only items with field == "status" are kept. Order follows the changelog as
    retrieved (histories, then items within a history); callers sort.
    """
    changes = []
    histories = (issue.get('changelog') or {}).get('histories', [])

    for history in histories:
        created = history.get('created')
        if not created:
            continue
        for item in history.get('items', []):
            if item.get('field') != 'status':
                continue
            to_status = item.get('toString')
            if not to_status:
                continue
            changes.append(StatusChangeEvent(
                occurred_at=parse_jira_date(created),
                to_status=to_status,
                from_status=item.get('fromString')
            ))

    return changes


def infer_initial_status(issue: Dict, changes: Optional[List[StatusChangeEvent]] = None) -> Optional[str]:
    """
    Work out which status an issue was created in.

    The changelog records transitions, not the starting state, so the
    fromString of the earliest transition is used. An issue that never changed
    status is still in the status it was created with.
    """
    if changes is None:
        changes = extract_status_changes(issue)

    if changes:
        earliest = min(changes, key=lambda e: e.occurred_at)
        if earliest.from_status:
            return earliest.from_status

    status = ((issue.get('fields') or {}).get('status') or {}).get('name')
    return status or None


def issue_history_from_jira(issue: Dict) -> IssueHistory:
    """Convert a raw Jira search result issue into an IssueHistory"""
    fields = issue.get('fields') or {}
    changes = extract_status_changes(issue)
    resolved = fields.get('resolutiondate')

    return IssueHistory(
        item_id=get_issue_key(issue) or str(issue.get('id', '')),
        created_at=parse_jira_date(fields['created']),
        initial_status=infer_initial_status(issue, changes),
        events=changes,
        resolved_at=parse_jira_date(resolved) if resolved else None
    )


def histories_from_jira(issues: Sequence[Dict]) -> Tuple[List[IssueHistory], List[str]]:
    """
    Convert a batch of raw Jira issues, skipping any with unusable timestamps.

    Returns:
        (histories, keys of issues that could not be converted)
    """
    histories = []
    skipped = []

    for issue in issues:
        try:
            histories.append(issue_history_from_jira(issue))
        except (KeyError, ValueError, TypeError):
            skipped.append(get_issue_key(issue) or '?')

    return histories, skipped


def build_timelines(histories: Sequence[IssueHistory], now: datetime) -> Tuple[Dict[str, List[StageInterval]], List[str]]:
    """
    Build timelines for a batch of issues.

    Returns:
        (intervals by issue key, keys skipped because no starting status could be inferred)
    """
    timelines = {}
    skipped = []

    for history in histories:
        if not history.initial_status:
            skipped.append(history.item_id)
            continue
        timelines[history.item_id] = build_issue_timeline(
            history.item_id,
            history.created_at,
            history.initial_status,
            history.events,
            history.terminal_time(now)
        )

    return timelines, skipped


def flatten_timelines(timelines: Dict[str, List[StageInterval]]) -> List[StageInterval]:
    return [interval for intervals in timelines.values() for interval in intervals]
