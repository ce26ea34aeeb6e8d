"""
Console rendering for Warden.

Renders permission decisions, audit entries, audit statistics and
activity timelines with Rich for the CLI.

Design Principles:
    - Decision at a glance: allow/deny icon and color first
    - Reason always shown: every decision explains itself
    - Stable columns: the same layout for every query
"""

from typing import Iterable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from warden.schema import (
    AuditEntry,
    AuditResult,
    AuditStats,
    EvaluationResult,
    PermissionRequest,
    TimelineBucket,
)

# Status icons
ICON_SUCCESS = "[green]✓[/green]"
ICON_ERROR = "[red]✗[/red]"
ICON_DENIED = "[yellow]⊘[/yellow]"

RESULT_ICONS = {
    AuditResult.SUCCESS: ICON_SUCCESS,
    AuditResult.DENIED: ICON_DENIED,
    AuditResult.ERROR: ICON_ERROR,
}

# Widest bar in the timeline chart
BAR_WIDTH = 40


def render_decision(
    tenant_id: str,
    request: PermissionRequest,
    result: EvaluationResult,
    console: Console | None = None,
) -> None:
    """
    Print a single permission decision.

    Args:
        tenant_id: Tenant the request was checked in
        request: The request that was evaluated
        result: The evaluation outcome
        console: Rich Console instance (creates one if not provided)
    """
    if console is None:
        console = Console()

    header = Text()
    if result.allowed:
        header.append("ALLOWED", style="bold green")
        header.append(" ✓", style="green")
    else:
        header.append("DENIED", style="bold red")
        header.append(" ⊘", style="yellow")
    header.append(" │ ", style="dim")
    header.append(tenant_id, style="bold cyan")

    console.print(Panel(header, expand=False))
    console.print(f"  [dim]Actor:[/dim]    {request.actor_type.value}:{request.actor_id}")
    console.print(f"  [dim]Action:[/dim]   {request.action.value}")
    console.print(f"  [dim]Resource:[/dim] {request.resource}")
    if request.context:
        pairs = ", ".join(f"{k}={v!r}" for k, v in request.context.items())
        console.print(f"  [dim]Context:[/dim]  {pairs}")
    console.print(f"  [dim]Reason:[/dim]   {result.reason}")
    if result.matched_policy is not None:
        console.print(
            f"  [dim]Policy:[/dim]   {result.matched_policy} (rule {result.matched_rule})"
        )


def render_entries(
    entries: Iterable[AuditEntry],
    console: Console | None = None,
) -> None:
    """Print audit entries as a table, in the order given."""
    if console is None:
        console = Console()

    entries = list(entries)
    if not entries:
        console.print("[dim]No audit entries found.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", expand=True)
    table.add_column("Time", style="dim", no_wrap=True)
    table.add_column("", width=2, justify="center")
    table.add_column("Tenant", style="cyan")
    table.add_column("Actor")
    table.add_column("Action")
    table.add_column("Resource")
    table.add_column("Reason", overflow="fold")

    for entry in entries:
        table.add_row(
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            RESULT_ICONS.get(entry.result, ""),
            entry.tenant_id or "-",
            f"{entry.actor_type.value}:{entry.actor_id}",
            entry.action,
            entry.resource,
            str(entry.details.get("reason", "")),
        )

    console.print(table)
    console.print(f"[dim]{len(entries)} entries[/dim]")


def render_stats(stats: AuditStats, console: Console | None = None) -> None:
    """Print aggregate audit statistics."""
    if console is None:
        console = Console()

    console.print("[bold]Audit Summary[/bold]")
    console.print(f"  Total entries: {stats.total}")
    console.print(f"  Denial rate:   {stats.denial_rate:.1%}")
    console.print()

    for title, counts in (
        ("By result", stats.by_result),
        ("By actor type", stats.by_actor_type),
        ("By action", stats.by_action),
        ("By tenant", stats.by_tenant),
    ):
        if not counts:
            continue
        table = Table(title=title, show_header=False, title_justify="left")
        table.add_column("Key", style="cyan")
        table.add_column("Count", justify="right")
        for key, count in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
            table.add_row(key, str(count))
        console.print(table)


def render_timeline(
    buckets: Iterable[TimelineBucket],
    console: Console | None = None,
) -> None:
    """Print timeline buckets with a proportional bar per bucket."""
    if console is None:
        console = Console()

    buckets = list(buckets)
    if not buckets:
        console.print("[dim]No activity in range.[/dim]")
        return

    peak = max(bucket.total for bucket in buckets) or 1

    table = Table(show_header=True, header_style="bold")
    table.add_column("Bucket start", style="dim", no_wrap=True)
    table.add_column("Total", justify="right")
    table.add_column("Allowed", justify="right", style="green")
    table.add_column("Denied", justify="right", style="yellow")
    table.add_column("Error", justify="right", style="red")
    table.add_column("Activity")

    for bucket in buckets:
        width = round(bucket.total / peak * BAR_WIDTH)
        table.add_row(
            bucket.start.strftime("%Y-%m-%d %H:%M"),
            str(bucket.total),
            str(bucket.success),
            str(bucket.denied),
            str(bucket.error),
            "█" * width,
        )

    console.print(table)
