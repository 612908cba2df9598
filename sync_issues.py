#!/usr/bin/env python3
"""
Jira Issues Data Sync

Fetches Jira issues with their status changelog, caches API responses, and saves
the data as JSON for analysis by flow_report.py. This script handles all Jira API
interactions.
"""
# /// script
# requires-python = ">=3.8"
# dependencies = [
#     "requests",
#     "python-dotenv",
#     "rich",
# ]
# ///

import argparse
import hashlib
import json
import pickle
import shutil
import signal
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import requests
from dotenv import load_dotenv

from config import (
    CACHE_BASE_DIR,
    CACHE_EXPIRY_DAYS,
    ISSUES_JSON_FILE,
    JIRA_MAX_RESULTS,
    JIRA_SEARCH_PATH,
    get_jira_api_token,
    get_jira_base_url,
    get_jira_email,
    get_project_key,
    validate_configuration,
)
from utils import InterruptedException, StatusDisplay


class JiraDataSyncer:
    """Sync Jira project issues and changelogs to JSON files"""

    def __init__(self, base_url: str, email: str, api_token: str, project_key: str):
        self.base_url = base_url.rstrip('/')
        self.email = email
        self.project_key = project_key
        self.session = requests.Session()
        self.session.auth = (email, api_token)
        self.session.headers.update({'Accept': 'application/json'})
        self.status = StatusDisplay()
        self.interrupted = False  # Shared interrupt flag
        self.original_signal_handler = None
        self._cache_hit_count = 0
        self._cache_save_count = 0

        # Cache setup
        self.cache_dir = Path(CACHE_BASE_DIR) / project_key
        cache_existed = self.cache_dir.exists()
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.cache_expiry_days = CACHE_EXPIRY_DAYS

        if cache_existed:
            cache_files = list(self.cache_dir.glob("**/*.cache"))
            if cache_files:
                self.status.print(f"💾 Using cache directory: {self.cache_dir} ({len(cache_files)} cached files)")

    def _get_cache_key(self, url: str, params: Dict = None) -> str:
        """Generate a cache key for a request"""
        # Sort params to ensure consistent key generation
        params_str = ""
        if params:
            params_str = "&".join(f"{k}={v}" for k, v in sorted(params.items()))
        key_data = f"{url}?{params_str}"
        return hashlib.md5(key_data.encode()).hexdigest()

    def _get_cache_file(self, cache_key: str) -> Path:
        """Get the cache file path for a given key with subdirectory structure"""
        # First two characters as subdirectory to avoid OS file limits
        cache_subdir = self.cache_dir / cache_key[:2]
        cache_subdir.mkdir(exist_ok=True)
        return cache_subdir / f"{cache_key}.cache"

    def _is_cache_valid(self, cache_file: Path) -> bool:
        """Check if cache file exists and is not expired"""
        if not cache_file.exists():
            return False
        cache_age = datetime.now() - datetime.fromtimestamp(cache_file.stat().st_mtime)
        return cache_age.days < self.cache_expiry_days

    def _save_to_cache(self, cache_key: str, data: Dict):
        """Save data to cache"""
        try:
            with open(self._get_cache_file(cache_key), 'wb') as f:
                pickle.dump(data, f)
            self._cache_save_count += 1
        except OSError as e:
            # Cache failures shouldn't break the sync
            self.status.print(f"⚠️  Cache save failed: {e}", style="yellow")

    def _load_from_cache(self, cache_key: str) -> Optional[Dict]:
        """Load data from cache"""
        cache_file = self._get_cache_file(cache_key)
        if not self._is_cache_valid(cache_file):
            return None
        try:
            with open(cache_file, 'rb') as f:
                return pickle.load(f)
        except (OSError, pickle.UnpicklingError, EOFError) as e:
            self.status.print(f"⚠️  Cache load failed: {e}", style="yellow")
            return None

    def clear_cache(self):
        """Clear all cached data for this project"""
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self.status.print(f"✅ Cache cleared for {self.project_key}", style="green")
        else:
            self.status.print(f"ℹ️  No cache found for {self.project_key}")

    @staticmethod
    def clear_cache_for_project(project_key: str):
        """Static method to clear cache for a specific project"""
        cache_dir = Path(CACHE_BASE_DIR) / project_key
        if cache_dir.exists():
            shutil.rmtree(cache_dir)
            print(f"✅ Cache cleared for {project_key}")
        else:
            print(f"ℹ️  No cache found for {project_key}")

    def _setup_interrupt_handler(self):
        """Set up interrupt handler that sets the shared flag"""
        def signal_handler(signum, frame):
            self.interrupted = True

        self.original_signal_handler = signal.signal(signal.SIGINT, signal_handler)

    def _restore_interrupt_handler(self):
        """Restore the original interrupt handler"""
        if self.original_signal_handler is not None:
            signal.signal(signal.SIGINT, self.original_signal_handler)
            self.original_signal_handler = None

    def _check_interrupted(self):
        """Check if user has interrupted and raise exception if so"""
        if self.interrupted:
            raise InterruptedException("User interrupted the process")

    def _make_request(self, url: str, params: Dict = None) -> Dict:
        """Make Jira API request with caching and rate limiting"""
        cache_key = self._get_cache_key(url, params)
        cached_data = self._load_from_cache(cache_key)
        if cached_data is not None:
            self._cache_hit_count += 1
            return cached_data

        response = self.session.get(url, params=params)

        # Jira Cloud signals throttling with 429 and a Retry-After header
        if response.status_code == 429:
            retry_after = str(response.headers.get('Retry-After', ''))
            # Retry-After may also be an HTTP date
            sleep_time = (int(retry_after) if retry_after.isdigit() else 60) + 1
            for i in range(sleep_time):
                if self.interrupted:
                    raise InterruptedException("User interrupted during rate limit wait")
                self.status.update(f"⏳ Rate limited - waiting {sleep_time - i}s before retry...", style="yellow")
                time.sleep(1)
            response = self.session.get(url, params=params)

        # Don't cache error responses - they could be temporary
        if response.status_code >= 400:
            response.raise_for_status()

        data = response.json()
        self._save_to_cache(cache_key, data)
        return data

    def default_jql(self) -> str:
        return f"project={self.project_key} ORDER BY created ASC"

    def fetch_issues(self, jql: Optional[str] = None, limit: Optional[int] = None) -> List[Dict]:
        """Fetch all issues matching the JQL, with changelog, using startAt pagination"""
        jql = jql or self.default_jql()
        url = f"{self.base_url}{JIRA_SEARCH_PATH}"
        issues = []
        start_at = 0
        total = None

        self.status.print(f"🔍 Fetching issues for {self.project_key} ({jql})...")
        if limit:
            self.status.print(f"⚠️  Limiting to first {limit} issues for debugging")

        self.interrupted = False
        self._setup_interrupt_handler()
        self.status.start("⏳ Fetching issues...")

        try:
            while total is None or start_at < total:
                self._check_interrupted()
                params = {
                    'jql': jql,
                    'expand': 'changelog',
                    'startAt': start_at,
                    'maxResults': JIRA_MAX_RESULTS,
                }
                data = self._make_request(url, params)
                page = data.get('issues', [])
                total = data.get('total', 0)

                if not page:
                    break

                issues.extend(page)
                start_at += len(page)
                self.status.update(f"📥 Fetched {len(issues)}/{total} issues...")

                if limit and len(issues) >= limit:
                    issues = issues[:limit]
                    break

            for i, issue in enumerate(issues):
                if i % 10 == 0:
                    self._check_interrupted()
                self._complete_changelog(issue)

        except InterruptedException:
            self.status.print(f"⚠️  User interrupted! Keeping {len(issues)} issues fetched so far...", style="yellow bold")
        finally:
            self._restore_interrupt_handler()
            self.status.stop()

        self.status.print(f"✅ Fetched {len(issues)} issues", style="green")
        return issues

    def fetch_issue_changelog(self, issue_key: str) -> List[Dict]:
        """Fetch the complete changelog for one issue"""
        url = f"{self.base_url}/rest/api/3/issue/{issue_key}/changelog"
        histories = []
        start_at = 0

        while True:
            data = self._make_request(url, {'startAt': start_at, 'maxResults': JIRA_MAX_RESULTS})
            values = data.get('values', [])
            histories.extend(values)
            start_at += len(values)
            if data.get('isLast', True) or not values:
                break

        return histories

    def _complete_changelog(self, issue: Dict):
        """Search results embed at most 100 histories; page in the rest when truncated"""
        changelog = issue.get('changelog') or {}
        histories = changelog.get('histories', [])
        if changelog.get('total', len(histories)) > len(histories):
            changelog['histories'] = self.fetch_issue_changelog(issue['key'])
            changelog['total'] = len(changelog['histories'])
            issue['changelog'] = changelog

    def _show_cache_stats(self):
        """Show cache usage statistics"""
        if self._cache_hit_count or self._cache_save_count:
            self.status.print(f"💾 Cache hits: {self._cache_hit_count}, new cache saves: {self._cache_save_count}", style="dim")

    def sync_issues_to_json(self, output_file: str, jql: Optional[str] = None, limit: Optional[int] = None) -> int:
        """Sync Jira issues with changelog to a JSON file; returns the number of issues written"""
        issues = self.fetch_issues(jql=jql, limit=limit)

        if not issues:
            self.status.print("No issues found for project")
            return 0

        json_data = {
            'project': {
                'jira_base_url': self.base_url,
                'project_key': self.project_key,
                'jql': jql or self.default_jql(),
                'sync_date': datetime.now(timezone.utc).isoformat(),
                'total_issues_synced': len(issues),
            },
            'issues': issues
        }

        with open(output_file, 'w') as f:
            json.dump(json_data, f, indent=2, default=str)

        self.status.print(f"✅ Synced {len(issues)} issues to {output_file}", style="green bold")
        self._show_cache_stats()
        return len(issues)


def load_issues_from_json(json_file: str) -> List[Dict]:
    """
    Load issues written by sync_issues_to_json.

    Accepts the {"project": ..., "issues": [...]} structure or a bare list of issues.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file holds neither structure
    """
    path = Path(json_file)
    if not path.exists():
        raise FileNotFoundError(f"❌ Error: {json_file} not found. Run 'uv run sync_issues.py' first to fetch data")

    with open(path, 'r') as f:
        data = json.load(f)

    if isinstance(data, dict) and 'issues' in data:
        return data['issues']
    if isinstance(data, list):
        return data
    raise ValueError(f"❌ {json_file} does not contain a list of Jira issues")


def create_syncer_from_env() -> JiraDataSyncer:
    """Build a syncer from environment configuration, loading .env first"""
    load_dotenv()
    status = validate_configuration()
    missing = [issue for issue in status['issues'] if 'environment variable' in issue]
    if missing:
        raise ValueError("Missing Jira configuration: " + "; ".join(missing))
    return JiraDataSyncer(get_jira_base_url(), get_jira_email(), get_jira_api_token(), get_project_key())


def main():
    """Main execution function"""
    parser = argparse.ArgumentParser(
        description='Sync Jira project issues and status changelogs to a JSON file',
        epilog='''
Configuration (environment or .env file):
  JIRA_BASE_URL, JIRA_EMAIL, JIRA_API_TOKEN, PROJECT_KEY

Cache Management:
  API responses are cached for 1 week to speed up subsequent runs.
  Cache directory: .cache/jira/PROJECT_KEY/
        ''',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--output', '-o', default=ISSUES_JSON_FILE, help=f'Output JSON file name (default: {ISSUES_JSON_FILE})')
    parser.add_argument('--jql', help='Custom JQL query (default: all issues in PROJECT_KEY)')
    parser.add_argument('--limit', type=int, help='Limit number of issues to sync (for debugging)')
    parser.add_argument('--clear-cache', action='store_true', help='Clear cache for PROJECT_KEY and exit')
    args = parser.parse_args()

    load_dotenv()

    if args.clear_cache:
        project_key = get_project_key()
        if not project_key:
            print("Error: --clear-cache requires PROJECT_KEY to be set")
            return
        JiraDataSyncer.clear_cache_for_project(project_key)
        return

    try:
        syncer = create_syncer_from_env()
    except ValueError as e:
        print(f"❌ {e}")
        return

    try:
        syncer.sync_issues_to_json(output_file=args.output, jql=args.jql, limit=args.limit)
    except KeyboardInterrupt:
        print("\n\n⚠️  Process interrupted by user. No data synced.")
    except requests.exceptions.RequestException as e:
        print(f"\n❌ Jira request failed: {e}")


if __name__ == "__main__":
    main()
