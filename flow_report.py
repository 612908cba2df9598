#!/usr/bin/env python3
"""
Jira Workflow Flow Analyzer

Rebuilds each issue's status timeline from its changelog, then reports time spent
per stage and WIP limit violations (continuous spans and violating days per month).
"""
# /// script
# requires-python = ">=3.8"
# dependencies = [
#     "requests",
#     "pandas",
#     "matplotlib",
#     "seaborn",
#     "python-dotenv",
#     "rich",
# ]
# ///

import argparse
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import requests
from dotenv import load_dotenv
from rich.console import Console

from config import (
    ISSUE_STAGE_STATS_FILE,
    MONTHLY_VIOLATIONS_FILE,
    REPORT_OUTPUT_DIR,
    STAGE_INTERVALS_FILE,
    STAGE_STATS_FILE,
    VIOLATION_SPANS_FILE,
    WIP_CHART_FILE,
    WIP_VIOLATIONS_FILE,
    get_jira_base_url,
    get_wip_limits,
)
from occupancy import build_occupancy_events
from report_generator import (
    ReportGenerator,
    load_stage_intervals_csv,
    save_monthly_violations_csv,
    save_per_issue_stats_csv,
    save_stage_intervals_csv,
    save_stage_stats_csv,
    save_violation_spans_csv,
    save_violation_summary_csv,
)
from stage_stats import StageStatsTable, aggregate_per_item, aggregate_stage_durations
from sync_issues import create_syncer_from_env, load_issues_from_json
from timeline import StageInterval, build_timelines, flatten_timelines, histories_from_jira
from utils import generate_issue_url
from utils_dates import now_utc
from wip_violations import (
    MonthlyViolation,
    ViolationSpan,
    ViolationSummary,
    build_daily_wip,
    calculate_monthly_violations,
    detect_all_violation_spans,
    summarize_violations,
)


@dataclass
class FlowAnalysis:
    """Everything computed in one run"""
    intervals: List[StageInterval]
    stage_stats: StageStatsTable
    stats_by_issue: Dict[str, StageStatsTable]
    spans_by_status: Dict[str, List[ViolationSpan]]
    violation_summaries: List[ViolationSummary]
    daily_wip: Dict
    monthly_violations: List[MonthlyViolation]
    skipped_issues: List[str] = field(default_factory=list)


def intervals_from_issues(issues: List[Dict], now: datetime):
    """Raw Jira issues -> (all stage intervals, keys of issues that were skipped)"""
    histories, unparseable = histories_from_jira(issues)
    timelines, no_start_status = build_timelines(histories, now)
    return flatten_timelines(timelines), unparseable + no_start_status


def analyze_intervals(intervals: List[StageInterval], wip_limits: Mapping[str, int]) -> FlowAnalysis:
    """Run the duration aggregation and both violation detectors over one interval set"""
    events_by_status = build_occupancy_events(intervals, wip_limits)
    spans_by_status = detect_all_violation_spans(events_by_status, wip_limits)
    daily_wip = build_daily_wip(intervals, wip_limits)

    return FlowAnalysis(
        intervals=intervals,
        stage_stats=aggregate_stage_durations(intervals),
        stats_by_issue=aggregate_per_item(intervals),
        spans_by_status=spans_by_status,
        violation_summaries=summarize_violations(spans_by_status, wip_limits),
        daily_wip=daily_wip,
        monthly_violations=calculate_monthly_violations(daily_wip, wip_limits),
    )


def write_reports(analysis: FlowAnalysis, output_dir: str) -> List[str]:
    """Write all CSV outputs; returns the written paths"""
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    return [
        save_stage_intervals_csv(analysis.intervals, str(out / STAGE_INTERVALS_FILE)),
        save_stage_stats_csv(analysis.stage_stats, str(out / STAGE_STATS_FILE)),
        save_per_issue_stats_csv(analysis.stats_by_issue, str(out / ISSUE_STAGE_STATS_FILE)),
        save_violation_summary_csv(analysis.violation_summaries, str(out / WIP_VIOLATIONS_FILE)),
        save_violation_spans_csv(analysis.spans_by_status, str(out / VIOLATION_SPANS_FILE)),
        save_monthly_violations_csv(analysis.monthly_violations, str(out / MONTHLY_VIOLATIONS_FILE)),
    ]


def parse_arguments(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description='Analyze Jira stage times and WIP limit violations',
        epilog='''
Input (pick one):
  --load-json FILE      Issues synced earlier with sync_issues.py
  --intervals-csv FILE  Stage intervals written by an earlier run
  (neither)             Fetch live from Jira using JIRA_* / PROJECT_KEY settings

WIP limits come from config.py, or WIP_LIMITS_JSON='{"In Progress": 6}'.
        ''',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument('--load-json', type=str, help='Load issues from a JSON file written by sync_issues.py')
    source.add_argument('--intervals-csv', type=str, help='Load stage intervals from a CSV instead of issues')
    parser.add_argument('--jql', help='Custom JQL when fetching live')
    parser.add_argument('--limit', type=int, help='Limit number of issues to fetch (for debugging)')
    parser.add_argument('--output-dir', default=REPORT_OUTPUT_DIR, help=f'Directory for CSV output (default: {REPORT_OUTPUT_DIR})')
    parser.add_argument('--chart', action='store_true', help='Also render a WIP chart PNG')
    return parser.parse_args(argv)


def run_flow_report(argv: Optional[List[str]] = None) -> Optional[FlowAnalysis]:
    """Load, analyze and report; returns the FlowAnalysis, or None when no report was produced"""
    args = parse_arguments(argv)
    load_dotenv()
    console = Console()

    try:
        wip_limits = get_wip_limits()
    except ValueError as e:
        console.print(f"❌ {e}", style="red")
        return

    now = now_utc()
    skipped = []

    try:
        if args.intervals_csv:
            console.print(f"📂 Loading stage intervals from {args.intervals_csv}...")
            intervals = load_stage_intervals_csv(args.intervals_csv, now)
        else:
            if args.load_json:
                console.print(f"📂 Loading issues from {args.load_json}...")
                issues = load_issues_from_json(args.load_json)
            else:
                issues = create_syncer_from_env().fetch_issues(jql=args.jql, limit=args.limit)
            intervals, skipped = intervals_from_issues(issues, now)
            console.print(f"🔄 Built timelines for {len(issues) - len(skipped)} of {len(issues)} issues")
    except (FileNotFoundError, ValueError) as e:
        console.print(str(e), style="red")
        return
    except requests.exceptions.RequestException as e:
        console.print(f"❌ Jira request failed: {e}", style="red")
        return
    except KeyboardInterrupt:
        console.print("\n⚠️  Process interrupted by user. No report generated.", style="yellow")
        return

    if skipped:
        console.print(f"⚠️  Skipped {len(skipped)} issues without a usable timeline:", style="yellow")
        base_url = get_jira_base_url()
        for issue_key in skipped[:10]:
            console.print(f"   - {generate_issue_url(issue_key, base_url)}", style="yellow")

    if not intervals:
        console.print("No stage intervals found - unable to generate report", style="yellow")
        return

    analysis = analyze_intervals(intervals, wip_limits)
    analysis.skipped_issues = skipped

    reporter = ReportGenerator(console)
    reporter.print_stage_statistics(analysis.stage_stats)
    reporter.print_violation_summary(analysis.violation_summaries, analysis.spans_by_status)
    reporter.print_monthly_violations(analysis.monthly_violations)

    for path in write_reports(analysis, args.output_dir):
        console.print(f"✅ Results saved to {path}", style="green")

    if args.chart:
        reporter.create_wip_chart(analysis.daily_wip, wip_limits, analysis.intervals,
                                  str(Path(args.output_dir) / WIP_CHART_FILE))

    return analysis


def main(argv: Optional[List[str]] = None):
    """Main execution function"""
    run_flow_report(argv)


if __name__ == "__main__":
    main()
