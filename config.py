"""
Configuration module for Jira Workflow Flow Analyzer
Contains all configurable constants and settings used across the application.
"""

import json
import os
from typing import Dict, Any


# ============================================================================
# WIP LIMITS
# ============================================================================

# Monitored workflow stages and their work-in-progress limits.
# Statuses missing from this table are ignored by the WIP reports.
WIP_LIMITS: Dict[str, int] = {
    'In Progress': 6,
    'Testing/Review': 3,
}


# ============================================================================
# JIRA API SETTINGS
# ============================================================================

# Jira caps search page size at 100
JIRA_MAX_RESULTS: int = 100

JIRA_SEARCH_PATH: str = "/rest/api/3/search"

# API responses cached on disk for this many days
CACHE_EXPIRY_DAYS: int = 7

CACHE_BASE_DIR: str = ".cache/jira"


# ============================================================================
# REPORT FORMATTING
# ============================================================================

REPORT_OUTPUT_DIR: str = "flow_report"
ISSUES_JSON_FILE: str = "jira_issues.json"
STAGE_INTERVALS_FILE: str = "jira_stage_intervals.csv"
STAGE_STATS_FILE: str = "jira_stage_times.csv"
ISSUE_STAGE_STATS_FILE: str = "jira_stage_times_by_issue.csv"
VIOLATION_SPANS_FILE: str = "jira_wip_violation_spans.csv"
WIP_VIOLATIONS_FILE: str = "jira_wip_violations.csv"
MONTHLY_VIOLATIONS_FILE: str = "jira_wip_violations_monthly.csv"
WIP_CHART_FILE: str = "wip_analysis.png"

HOURS_PER_DAY: int = 24


# ============================================================================
# ENVIRONMENT VARIABLE HELPERS
# ============================================================================

def get_jira_base_url() -> str:
    """Get Jira site URL from environment variables."""
    return os.getenv('JIRA_BASE_URL', '').rstrip('/')

def get_jira_email() -> str:
    """Get Jira account email from environment variables."""
    return os.getenv('JIRA_EMAIL', '')

def get_jira_api_token() -> str:
    """Get Jira API token from environment variables."""
    return os.getenv('JIRA_API_TOKEN', '')

def get_project_key() -> str:
    """Get Jira project key from environment variables."""
    return os.getenv('PROJECT_KEY', '')


def parse_wip_limits(raw: str) -> Dict[str, int]:
    """
    Parse a JSON object of status name -> WIP limit.

    Args:
        raw: JSON text like '{"In Progress": 6, "Testing/Review": 3}'

    Returns:
        Dictionary of monitored statuses and their limits

    Raises:
        ValueError: If the text is not an object of positive integer limits
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"WIP limits are not valid JSON: {e}")

    if not isinstance(data, dict):
        raise ValueError("WIP limits must be a JSON object of status -> limit")

    limits = {}
    for status, limit in data.items():
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValueError(f"WIP limit for '{status}' must be a positive integer, got {limit!r}")
        limits[str(status)] = limit
    return limits


def get_wip_limits() -> Dict[str, int]:
    """Get WIP limits, honouring a WIP_LIMITS_JSON override from the environment."""
    raw = os.getenv('WIP_LIMITS_JSON', '')
    if raw.strip():
        return parse_wip_limits(raw)
    return dict(WIP_LIMITS)


# ============================================================================
# CONFIGURATION VALIDATION
# ============================================================================

def validate_configuration() -> Dict[str, Any]:
    """Validate configuration and return status."""
    config_status = {
        'jira_base_url': bool(get_jira_base_url()),
        'jira_email': bool(get_jira_email()),
        'jira_api_token': bool(get_jira_api_token()),
        'project_key': get_project_key(),
        'issues': []
    }

    # Check for required configurations
    if not config_status['jira_base_url']:
        config_status['issues'].append('JIRA_BASE_URL environment variable not set')
    if not config_status['jira_email']:
        config_status['issues'].append('JIRA_EMAIL environment variable not set')
    if not config_status['jira_api_token']:
        config_status['issues'].append('JIRA_API_TOKEN environment variable not set')
    if not config_status['project_key']:
        config_status['issues'].append('PROJECT_KEY environment variable not set')

    try:
        config_status['wip_limits'] = get_wip_limits()
    except ValueError as e:
        config_status['wip_limits'] = {}
        config_status['issues'].append(str(e))

    return config_status


# Export key constants for easy import
__all__ = [
    'WIP_LIMITS',
    'JIRA_MAX_RESULTS',
    'JIRA_SEARCH_PATH',
    'CACHE_EXPIRY_DAYS',
    'CACHE_BASE_DIR',
    'REPORT_OUTPUT_DIR',
    'ISSUES_JSON_FILE',
    'STAGE_INTERVALS_FILE',
    'STAGE_STATS_FILE',
    'ISSUE_STAGE_STATS_FILE',
    'VIOLATION_SPANS_FILE',
    'WIP_VIOLATIONS_FILE',
    'MONTHLY_VIOLATIONS_FILE',
    'WIP_CHART_FILE',
    'HOURS_PER_DAY',
    'get_jira_base_url',
    'get_jira_email',
    'get_jira_api_token',
    'get_project_key',
    'parse_wip_limits',
    'get_wip_limits',
    'validate_configuration'
]
