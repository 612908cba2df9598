#!/usr/bin/env python3
"""
Shared utilities for Jira workflow analysis
Contains the console status display and Jira issue key/URL helpers
Used by sync_issues.py, timeline.py and flow_report.py
"""

from typing import Any, Dict, Optional

from rich.console import Console
from rich.live import Live
from rich.text import Text


class InterruptedException(Exception):
    """Exception raised when user interrupts the process"""
    pass


class StatusDisplay:
    """Handle status updates with a rich live line"""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self.live = None
        self.current_status = ""

    def start(self, initial_message: str = "Starting..."):
        """Start the status display"""
        self.current_status = initial_message
        text = Text(initial_message, style="cyan")
        self.live = Live(text, console=self.console, refresh_per_second=4)
        self.live.start()

    def update(self, message: str, style: str = "cyan"):
        """Update the status message"""
        self.current_status = message
        if self.live:
            self.live.update(Text(message, style=style))
        else:
            self.console.print(message, style=style)

    def stop(self, final_message: str = None):
        """Stop the status display"""
        if self.live:
            self.live.stop()
            self.live = None
        self.current_status = ""
        if final_message:
            self.console.print(final_message)

    def print(self, message: str, style: str = None):
        """Print a message without disrupting status display"""
        if self.live:
            self.live.stop()
            self.console.print(message, style=style)
            text = Text(self.current_status, style="cyan")
            self.live = Live(text, console=self.console, refresh_per_second=4)
            self.live.start()
        else:
            self.console.print(message, style=style)


def get_issue_key(issue: Dict[str, Any]) -> Optional[str]:
    """
    Extract the issue key from raw Jira data or a flattened record.

    Args:
        issue: Issue dictionary that may contain 'key' or 'issueKey'

    Returns:
        Issue key like "ABC-123", or None if not found
    """
    key = issue.get('key', issue.get('issueKey'))
    return str(key) if key else None


def generate_issue_url(issue_key: str, base_url: Optional[str] = None) -> str:
    """
    Generate a Jira browse URL for an issue.

    Returns:
        https://<site>/browse/<KEY>, or just the key when no site is known
    """
    if base_url:
        return f"{base_url.rstrip('/')}/browse/{issue_key}"
    return issue_key
