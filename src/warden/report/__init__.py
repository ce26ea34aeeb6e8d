"""
Reporting module for Warden.

Rich terminal output for the CLI:
    - Decisions: allow/deny with reason and deciding rule
    - Audit entries: tabular log view
    - Audit stats: totals, denial rate, breakdowns
    - Timelines: bucketed activity with bars

Example:
    from warden.report import render_decision, render_entries

    render_decision("acme", request, result)
    render_entries(api.get_recent_audit_entries())
"""

from warden.report.console import (
    render_decision,
    render_entries,
    render_stats,
    render_timeline,
)

__all__ = [
    "render_decision",
    "render_entries",
    "render_stats",
    "render_timeline",
]
