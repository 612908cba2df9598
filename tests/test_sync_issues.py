#!/usr/bin/env python3
"""
Unit tests for sync_issues.py - Jira data collection functionality
"""
# /// script
# requires-python = ">=3.8"
# dependencies = [
#     "requests",
#     "rich",
#     "python-dotenv",
#     "pytest",
# ]
# ///

import unittest
from unittest.mock import Mock, patch
import json
import os
import sys
import tempfile
from pathlib import Path

import requests

# Add parent directory to path to import sync_issues module
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from sync_issues import JiraDataSyncer, create_syncer_from_env, load_issues_from_json


def mock_response(payload, status_code=200, headers=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    response.headers = headers or {}
    response.text = json.dumps(payload)
    return response


def make_issue(n, histories=None, total=None):
    histories = histories or []
    return {
        "key": f"ABC-{n}",
        "fields": {"created": "2024-03-01T09:00:00.000+0000", "status": {"name": "To Do"}},
        "changelog": {"histories": histories, "total": len(histories) if total is None else total},
    }


class TestJiraDataSyncer(unittest.TestCase):
    """Test the JiraDataSyncer class"""

    def setUp(self):
        """Set up test fixtures"""
        self.temp_dir = tempfile.TemporaryDirectory()
        self.cache_patch = patch('sync_issues.CACHE_BASE_DIR', self.temp_dir.name)
        self.cache_patch.start()
        self.sync = JiraDataSyncer("https://example.atlassian.net/", "me@example.com", "token", "ABC")

    def tearDown(self):
        self.cache_patch.stop()
        self.temp_dir.cleanup()

    def test_init(self):
        """Test JiraDataSyncer initialization"""
        self.assertEqual(self.sync.base_url, "https://example.atlassian.net")
        self.assertEqual(self.sync.project_key, "ABC")
        self.assertEqual(self.sync.session.auth, ("me@example.com", "token"))
        self.assertTrue(self.sync.cache_dir.exists())
        self.assertEqual(self.sync.cache_dir, Path(self.temp_dir.name) / "ABC")

    def test_cache_key_ignores_param_order(self):
        key1 = self.sync._get_cache_key("https://x/api", {"a": 1, "b": 2})
        key2 = self.sync._get_cache_key("https://x/api", {"b": 2, "a": 1})
        self.assertEqual(key1, key2)
        self.assertNotEqual(key1, self.sync._get_cache_key("https://x/api", {"a": 2, "b": 2}))

    def test_make_request_uses_cache(self):
        """Second identical request is served from disk"""
        with patch.object(self.sync.session, 'get', return_value=mock_response({"ok": True})) as mock_get:
            first = self.sync._make_request("https://x/api", {"startAt": 0})
            second = self.sync._make_request("https://x/api", {"startAt": 0})

        self.assertEqual(first, {"ok": True})
        self.assertEqual(second, {"ok": True})
        mock_get.assert_called_once()
        self.assertEqual(self.sync._cache_hit_count, 1)

    @patch('sync_issues.time.sleep')
    def test_make_request_rate_limit(self, mock_sleep):
        """429 waits Retry-After (+1s) then retries"""
        limited = mock_response({}, status_code=429, headers={'Retry-After': '2'})
        success = mock_response({"success": True})

        with patch.object(self.sync.session, 'get', side_effect=[limited, success]):
            result = self.sync._make_request("https://x/api")

        self.assertEqual(result, {"success": True})
        self.assertEqual(mock_sleep.call_count, 3)

    @patch('sync_issues.time.sleep')
    def test_make_request_rate_limit_with_date_header(self, mock_sleep):
        """A non-numeric Retry-After falls back to the default 60s wait"""
        limited = mock_response({}, status_code=429, headers={'Retry-After': 'Wed, 21 Oct 2026 07:28:00 GMT'})
        success = mock_response({"success": True})

        with patch.object(self.sync.session, 'get', side_effect=[limited, success]):
            result = self.sync._make_request("https://x/api")

        self.assertEqual(result, {"success": True})
        self.assertEqual(mock_sleep.call_count, 61)

    def test_make_request_error_not_cached(self):
        error = mock_response({}, status_code=401)
        error.raise_for_status.side_effect = requests.exceptions.HTTPError("401 Unauthorized")

        with patch.object(self.sync.session, 'get', return_value=error):
            with self.assertRaises(requests.exceptions.HTTPError):
                self.sync._make_request("https://x/api")

        self.assertEqual(list(self.sync.cache_dir.glob("**/*.cache")), [])

    def test_fetch_issues_paginates_until_total(self):
        pages = [
            mock_response({"issues": [make_issue(i) for i in range(100)], "total": 150}),
            mock_response({"issues": [make_issue(i) for i in range(100, 150)], "total": 150}),
        ]
        with patch.object(self.sync.session, 'get', side_effect=pages) as mock_get:
            issues = self.sync.fetch_issues()

        self.assertEqual(len(issues), 150)
        self.assertEqual(mock_get.call_count, 2)
        second_params = mock_get.call_args_list[1][1]['params']
        self.assertEqual(second_params['startAt'], 100)
        self.assertEqual(second_params['expand'], 'changelog')
        self.assertEqual(second_params['jql'], "project=ABC ORDER BY created ASC")

    def test_fetch_issues_respects_limit(self):
        page = mock_response({"issues": [make_issue(i) for i in range(100)], "total": 500})
        with patch.object(self.sync.session, 'get', return_value=page) as mock_get:
            issues = self.sync.fetch_issues(limit=5)

        self.assertEqual(len(issues), 5)
        mock_get.assert_called_once()

    def test_fetch_issues_stops_on_empty_page(self):
        page = mock_response({"issues": [], "total": 10})
        with patch.object(self.sync.session, 'get', return_value=page):
            self.assertEqual(self.sync.fetch_issues(), [])

    def test_truncated_changelog_is_completed(self):
        """Issues whose embedded changelog is cut short get their full history fetched"""
        embedded = [{"created": "2024-03-01T10:00:00.000+0000", "items": []}]
        search = mock_response({"issues": [make_issue(1, histories=embedded, total=3)], "total": 1})
        full = mock_response({
            "values": [{"created": f"2024-03-0{d}T10:00:00.000+0000", "items": []} for d in (1, 2, 3)],
            "isLast": True,
        })
        with patch.object(self.sync.session, 'get', side_effect=[search, full]) as mock_get:
            issues = self.sync.fetch_issues()

        self.assertEqual(len(issues[0]["changelog"]["histories"]), 3)
        self.assertIn("/rest/api/3/issue/ABC-1/changelog", mock_get.call_args_list[1][0][0])

    def test_sync_issues_to_json(self):
        output = Path(self.temp_dir.name) / "issues.json"
        page = mock_response({"issues": [make_issue(1), make_issue(2)], "total": 2})

        with patch.object(self.sync.session, 'get', return_value=page):
            written = self.sync.sync_issues_to_json(str(output))

        self.assertEqual(written, 2)
        data = json.loads(output.read_text())
        self.assertEqual(data["project"]["project_key"], "ABC")
        self.assertEqual(data["project"]["total_issues_synced"], 2)
        self.assertEqual([i["key"] for i in data["issues"]], ["ABC-1", "ABC-2"])

    def test_clear_cache(self):
        self.sync._save_to_cache("abcdef", {"x": 1})
        self.assertTrue(list(self.sync.cache_dir.glob("**/*.cache")))
        self.sync.clear_cache()
        self.assertEqual(list(self.sync.cache_dir.glob("**/*.cache")), [])


class TestLoadIssuesFromJson(unittest.TestCase):
    """Test loading synced data"""

    def test_load_wrapped_and_bare_formats(self):
        with tempfile.TemporaryDirectory() as tmp:
            wrapped = Path(tmp) / "wrapped.json"
            wrapped.write_text(json.dumps({"project": {}, "issues": [make_issue(1)]}))
            bare = Path(tmp) / "bare.json"
            bare.write_text(json.dumps([make_issue(2)]))

            self.assertEqual(load_issues_from_json(str(wrapped))[0]["key"], "ABC-1")
            self.assertEqual(load_issues_from_json(str(bare))[0]["key"], "ABC-2")

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_issues_from_json("/nonexistent/issues.json")

    def test_invalid_structure(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "bad.json"
            path.write_text(json.dumps({"something": "else"}))
            with self.assertRaises(ValueError):
                load_issues_from_json(str(path))


class TestCreateSyncerFromEnv(unittest.TestCase):
    """Test environment-driven construction"""

    @patch('sync_issues.load_dotenv')
    @patch.dict(os.environ, {}, clear=True)
    def test_missing_configuration(self, mock_load_dotenv):
        with self.assertRaises(ValueError) as ctx:
            create_syncer_from_env()
        self.assertIn("JIRA_BASE_URL", str(ctx.exception))


if __name__ == '__main__':
    unittest.main()
