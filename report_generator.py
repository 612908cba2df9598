#!/usr/bin/env python3
"""
Report Generation Module for Jira Workflow Analysis
Handles CSV persistence, console tables and charts for stage times and WIP violations
Separated from flow_report.py for better modularity
"""

from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import matplotlib.pyplot as plt
import pandas as pd
from rich.console import Console
from rich.table import Table

from stage_stats import StageStatsTable, stage_records
from timeline import StageInterval
from utils_dates import parse_jira_date
from wip_violations import MonthlyViolation, ViolationSpan, ViolationSummary


INTERVAL_COLUMNS = ['issueKey', 'status', 'startDate', 'endDate', 'hoursSpent']
STAGE_STATS_COLUMNS = ['status', 'total_hours', 'count', 'max_hours', 'avg_hours']
VIOLATION_SUMMARY_COLUMNS = ['status', 'limit', 'violations', 'longest_violation_days']
VIOLATION_SPAN_COLUMNS = ['status', 'start', 'end', 'duration_days', 'open_ended']
MONTHLY_VIOLATION_COLUMNS = ['month', 'column', 'violations']


# ============================================================================
# CSV PERSISTENCE
# ============================================================================

def intervals_to_dataframe(intervals: Sequence[StageInterval]) -> pd.DataFrame:
    """Time-in-stage records with each stay's start and end added"""
    df = pd.DataFrame(stage_records(intervals), columns=['issueKey', 'status', 'hoursSpent'])
    df.insert(2, 'startDate', [interval.start.isoformat() for interval in intervals])
    df.insert(3, 'endDate', [interval.end.isoformat() for interval in intervals])
    return df[INTERVAL_COLUMNS]


def save_stage_intervals_csv(intervals: Sequence[StageInterval], filename: str) -> str:
    intervals_to_dataframe(intervals).to_csv(filename, index=False)
    return filename


def load_stage_intervals_csv(filename: str, now: datetime) -> List[StageInterval]:
    """
    Read an interval CSV written by save_stage_intervals_csv.

    A blank endDate marks a stage the issue is still in; it runs until now.
    Rows whose end is not after their start are dropped.

    Raises:
        FileNotFoundError: If the CSV does not exist
        ValueError: If required columns are missing
    """
    if not Path(filename).exists():
        raise FileNotFoundError(f"❌ Error: {filename} not found")

    df = pd.read_csv(filename, dtype=str)
    missing = {'issueKey', 'status', 'startDate', 'endDate'} - set(df.columns)
    if missing:
        raise ValueError(f"❌ {filename} is missing columns: {', '.join(sorted(missing))}")

    intervals = []
    for row in df.itertuples(index=False):
        start = parse_jira_date(row.startDate)
        if isinstance(row.endDate, str) and row.endDate.strip():
            end = parse_jira_date(row.endDate)
        else:
            end = now.astimezone(start.tzinfo)
        if end > start:
            intervals.append(StageInterval(row.issueKey, row.status, start, end))
    return intervals


def save_stage_stats_csv(table: StageStatsTable, filename: str) -> str:
    table.to_dataframe().to_csv(filename, index=False)
    return filename


def save_per_issue_stats_csv(tables: Mapping[str, StageStatsTable], filename: str) -> str:
    """Time in stage per issue: one row per (issueKey, status)"""
    frames = []
    for issue_key, table in tables.items():
        df = table.to_dataframe()
        df.insert(0, 'issueKey', issue_key)
        frames.append(df)
    columns = ['issueKey'] + STAGE_STATS_COLUMNS
    result = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame(columns=columns)
    result[columns].to_csv(filename, index=False)
    return filename


def violation_summaries_to_dataframe(summaries: Sequence[ViolationSummary]) -> pd.DataFrame:
    rows = [
        {
            'status': summary.status,
            'limit': summary.limit,
            'violations': summary.violation_count,
            'longest_violation_days': round(summary.longest_violation_days, 2),
        }
        for summary in summaries
    ]
    return pd.DataFrame(rows, columns=VIOLATION_SUMMARY_COLUMNS)


def save_violation_summary_csv(summaries: Sequence[ViolationSummary], filename: str) -> str:
    violation_summaries_to_dataframe(summaries).to_csv(filename, index=False)
    return filename


def save_violation_spans_csv(spans_by_status: Mapping[str, List[ViolationSpan]], filename: str) -> str:
    rows = [
        {
            'status': span.status,
            'start': span.start.isoformat(),
            'end': span.end.isoformat(),
            'duration_days': round(span.duration_days, 4),
            'open_ended': span.open_ended,
        }
        for spans in spans_by_status.values()
        for span in spans
    ]
    pd.DataFrame(rows, columns=VIOLATION_SPAN_COLUMNS).to_csv(filename, index=False)
    return filename


def monthly_violations_to_dataframe(violations: Sequence[MonthlyViolation]) -> pd.DataFrame:
    rows = [
        {'month': v.month, 'column': v.status, 'violations': v.violating_day_count}
        for v in violations
    ]
    return pd.DataFrame(rows, columns=MONTHLY_VIOLATION_COLUMNS)


def save_monthly_violations_csv(violations: Sequence[MonthlyViolation], filename: str) -> str:
    monthly_violations_to_dataframe(violations).to_csv(filename, index=False)
    return filename


# ============================================================================
# CONSOLE PRESENTATION
# ============================================================================

class ReportGenerator:
    """Prints stage and WIP reports to the console and renders charts"""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def print_stage_statistics(self, table: StageStatsTable):
        """Stage statistics table followed by the Longest Stage / Max Task Age headlines"""
        if not len(table):
            self.console.print("No stage intervals to report", style="yellow")
            return

        output = Table(title="📊 Stage Statistics")
        for column in ['Stage', 'Total Hours', 'Total Days', 'Count', 'Max Hours', 'Max Days', 'Avg Hours', 'Avg Days']:
            output.add_column(column, justify="left" if column == 'Stage' else "right")

        for status, stats in table.items():
            output.add_row(
                status,
                f"{stats.total_hours:.2f}",
                f"{stats.total_days:.2f}",
                str(stats.occurrence_count),
                f"{stats.max_hours:.2f}",
                f"{stats.max_days:.2f}",
                f"{stats.average_hours:.2f}",
                f"{stats.average_days:.2f}",
            )
        self.console.print(output)

        longest_status, longest = table.longest_stage()
        oldest_status, oldest = table.max_task_age()
        self.console.print(f"⏱️ Longest Stage: \"{longest_status}\" with avg {longest.average_days:.2f} days")
        self.console.print(f"🏆 Max Task Age: \"{oldest_status}\" had the oldest item: {oldest.max_days:.2f} days")

    def print_violation_summary(self, summaries: Sequence[ViolationSummary],
                                spans_by_status: Optional[Mapping[str, List[ViolationSpan]]] = None):
        for summary in summaries:
            self.console.print(f"\n[bold]{summary.status}[/bold] (Limit: {summary.limit})")
            self.console.print(f"- Violations: {summary.violation_count}")
            self.console.print(f"- Longest Violation: {summary.longest_violation_days:.2f} days")
            spans = (spans_by_status or {}).get(summary.status, [])
            if spans and spans[-1].open_ended:
                self.console.print("- ⚠️  Still over limit at the end of the data", style="yellow")

    def print_monthly_violations(self, violations: Sequence[MonthlyViolation]):
        if not violations:
            self.console.print("✅ No days over WIP limit", style="green")
            return

        output = Table(title="📅 WIP Violations by Month")
        output.add_column("Month")
        output.add_column("Column")
        output.add_column("Violating Days", justify="right")
        for v in violations:
            output.add_row(v.month, v.status, str(v.violating_day_count))
        self.console.print(output)

    def create_wip_chart(self, daily_wip: Mapping[date, Mapping[str, int]], wip_limits: Mapping[str, int],
                         intervals: Sequence[StageInterval], output_file: str) -> Optional[str]:
        """Daily WIP per monitored stage against its limit, plus stage duration spread"""
        if not daily_wip:
            return None

        import seaborn as sns

        wip_df = pd.DataFrame.from_dict(daily_wip, orient='index').sort_index().fillna(0)
        wip_df.index = pd.to_datetime(wip_df.index)
        wip_df = wip_df.reindex(pd.date_range(wip_df.index.min(), wip_df.index.max(), freq='D'), fill_value=0)

        plt.style.use('seaborn-v0_8')
        fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(15, 10))
        fig.suptitle('WIP Analysis', fontsize=14, fontweight='bold')

        # 1. Daily WIP against limits
        for status in wip_df.columns:
            line = ax1.plot(wip_df.index, wip_df[status], label=status)[0]
            ax1.axhline(wip_limits[status], color=line.get_color(), linestyle='--', alpha=0.7)
        ax1.set_title('Daily WIP by Stage (dashed: limit)')
        ax1.set_ylabel('Issues in Stage')
        ax1.legend()

        # 2. Stage durations
        durations = pd.DataFrame(
            [(interval.status, interval.duration_days) for interval in intervals],
            columns=['Status', 'Duration_Days']
        )
        if not durations.empty:
            sns.boxplot(data=durations, x='Status', y='Duration_Days', ax=ax2)
            ax2.tick_params(axis='x', rotation=45)
        ax2.set_title('Time in Stage Distribution')
        ax2.set_ylabel('Days')

        plt.tight_layout()
        plt.savefig(output_file, dpi=150, bbox_inches='tight')
        plt.close(fig)

        self.console.print(f"✅ WIP chart saved to: {output_file}", style="green")
        return output_file
