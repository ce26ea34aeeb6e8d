"""
CLI entry point for Warden.

This module provides the Typer-based command-line interface for Warden.

Commands:
    validate        Validate a policy document
    check           Check one request against a policy document
    audit query     List stored audit entries
    audit stats     Summarize stored audit entries
    audit timeline  Show bucketed activity
    audit export    Export stored audit entries as JSONL or JSON
    audit purge     Delete stored entries older than a cutoff

Architecture Note:
    The CLI is intentionally thin - it parses arguments and delegates to
    PermissionAPI and AuditDB. Everything it does is available
    programmatically.
"""

import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
import yaml
from rich.console import Console

from warden import __version__
from warden.api import PermissionAPI, apply_policy_document
from warden.audit import AuditLogger
from warden.errors import StorageError, WardenError
from warden.report import render_decision, render_entries, render_stats, render_timeline
from warden.schema import (
    ActorType,
    AuditQuery,
    AuditResult,
    ExportFormat,
    PermissionRequest,
    PolicyDocument,
    load_policy_document,
)
from warden.store import AuditDB

# Exit codes for `warden check`
EXIT_ALLOWED = 0
EXIT_DENIED = 1
EXIT_LOAD_ERROR = 2

# Initialize Typer app with metadata
app = typer.Typer(
    name="warden",
    help="Multi-tenant access control with an append-only audit trail.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]warden[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    Warden - Policy-based permissions for users, agents and services.

    Evaluate access requests against tenant policies and inspect the
    audit trail of past decisions.
    """
    pass


def _configure_logging(verbose: bool) -> None:
    """Send library logs to stderr; DEBUG with --verbose, WARNING otherwise."""
    if logging.getLogger().handlers and not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=verbose,
    )


def _output_json_error(error_type: str, message: str, include_traceback: bool = False) -> None:
    """Output an error in JSON format."""
    output: dict[str, Any] = {
        "error": True,
        "error_type": error_type,
        "message": message,
    }
    if include_traceback:
        output["traceback"] = traceback.format_exc()
    print(json.dumps(output, indent=2))


def _load_document(policy_path: Path, json_output: bool, debug: bool) -> PolicyDocument:
    try:
        return load_policy_document(policy_path)
    except Exception as e:
        if json_output:
            _output_json_error("policy_load_error", str(e), debug)
        else:
            console.print(f"[red]Error loading policy document: {e}[/red]")
            if debug:
                console.print(f"[dim]{traceback.format_exc()}[/dim]")
        raise typer.Exit(code=EXIT_LOAD_ERROR)


def parse_context(pairs: list[str]) -> dict[str, Any]:
    """
    Parse KEY=VALUE pairs into a request context.

    Values are read as YAML scalars, so "score=15" gives an int and
    "tags=[a, b]" gives a list.

    Raises:
        ValueError: If a pair has no "=", an empty key or an unparseable value
    """
    context: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            msg = f"Invalid context entry '{pair}', expected KEY=VALUE"
            raise ValueError(msg)
        if not raw.strip():
            context[key] = ""
            continue
        try:
            context[key] = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            msg = f"Invalid value for context key '{key}': {raw!r}"
            raise ValueError(msg) from e
    return context


# =============================================================================
# Policy Commands
# =============================================================================


@app.command()
def validate(
    policy_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the policy document (YAML).",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results as JSON."),
    ] = False,
) -> None:
    """
    Validate a policy document.

    Loads the document, builds every policy and prints a summary.

    Example:
        $ warden validate policies.yaml
    """
    document = _load_document(policy_path, json_output, debug=False)

    try:
        with PermissionAPI(document.config) as api:
            apply_policy_document(api, document)
            policies = api.list_policies(document.tenant)
    except WardenError as e:
        if json_output:
            _output_json_error("policy_invalid", str(e))
        else:
            console.print(f"[red]Invalid policy document: {e}[/red]")
        raise typer.Exit(code=EXIT_LOAD_ERROR)

    if json_output:
        output = {
            "valid": True,
            "tenant": document.tenant,
            "policies": [
                {
                    "name": p.name,
                    "priority": p.priority,
                    "enabled": p.enabled,
                    "rules": len(p.rules),
                }
                for p in policies
            ],
        }
        print(json.dumps(output, indent=2))
        return

    console.print(f"[green]✓[/green] Valid policy document for tenant [cyan]{document.tenant}[/cyan]")
    for p in policies:
        state = "" if p.enabled else " [dim](disabled)[/dim]"
        console.print(f"  [bold]{p.priority:>4}[/bold]  {p.name} ({len(p.rules)} rules){state}")


@app.command()
def check(
    policy_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the policy document (YAML).",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    actor_id: Annotated[
        str,
        typer.Option("--actor-id", help="Id of the requesting actor."),
    ],
    actor_type: Annotated[
        str,
        typer.Option("--actor-type", help="Actor type: user, agent, service or system."),
    ],
    resource: Annotated[
        str,
        typer.Option("--resource", "-r", help="Resource being accessed (e.g. doc:42)."),
    ],
    action: Annotated[
        str,
        typer.Option("--action", "-a", help="Requested action (read, create, ...)."),
    ],
    context: Annotated[
        Optional[list[str]],
        typer.Option("--context", "-c", help="Request attribute as KEY=VALUE. Repeatable."),
    ] = None,
    tenant: Annotated[
        Optional[str],
        typer.Option("--tenant", "-t", help="Tenant to check in. Defaults to the document's tenant."),
    ] = None,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="SQLite database to persist audit entries to.", resolve_path=True),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the decision as JSON."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
) -> None:
    """
    Check a single request against a policy document.

    Exits 0 when allowed, 1 when denied and 2 when the document or request
    is invalid.

    Example:
        $ warden check policies.yaml --actor-id u1 --actor-type user \\
            --resource doc:42 --action read --context role=admin
    """
    _configure_logging(verbose)
    document = _load_document(policy_path, json_output, debug=verbose)
    tenant_id = tenant or document.tenant

    try:
        request = PermissionRequest(
            actor_id=actor_id,
            actor_type=actor_type,
            resource=resource,
            action=action,
            context=parse_context(context or []),
        )
    except ValueError as e:
        if json_output:
            _output_json_error("invalid_request", str(e), verbose)
        else:
            console.print(f"[red]Invalid request: {e}[/red]")
        raise typer.Exit(code=EXIT_LOAD_ERROR)

    sink: AuditDB | None = None
    if db is not None:
        try:
            sink = AuditDB(db)
        except StorageError as e:
            if json_output:
                _output_json_error("audit_db_error", str(e), verbose)
            else:
                console.print(f"[red]Cannot open audit database: {e}[/red]")
            raise typer.Exit(code=EXIT_LOAD_ERROR)

    try:
        with PermissionAPI(document.config, audit_sink=sink) as api:
            apply_policy_document(api, document)
            result = api.check_with_details(tenant_id, request)
    except WardenError as e:
        if json_output:
            _output_json_error("policy_invalid", str(e), verbose)
        else:
            console.print(f"[red]Invalid policy document: {e}[/red]")
        raise typer.Exit(code=EXIT_LOAD_ERROR)
    finally:
        if sink is not None:
            sink.close()

    if json_output:
        output = {
            "tenant": tenant_id,
            "request": request.model_dump(mode="json"),
            **result.model_dump(mode="json"),
        }
        print(json.dumps(output, indent=2))
    else:
        render_decision(tenant_id, request, result, console=console)

    raise typer.Exit(code=EXIT_ALLOWED if result.allowed else EXIT_DENIED)


# =============================================================================
# Audit Subcommand Group
# =============================================================================

audit_app = typer.Typer(
    name="audit",
    help="Inspect the audit trail stored in a SQLite database.",
    no_args_is_help=True,
)
app.add_typer(audit_app, name="audit")

DbOption = Annotated[
    Path,
    typer.Option(
        "--db",
        help="Path to the SQLite audit database.",
        exists=True,
        readable=True,
        resolve_path=True,
    ),
]


def _load_audit_log(db_path: Path, tenant_id: str | None = None) -> AuditLogger:
    """Read stored entries into an in-memory AuditLogger for querying."""
    audit_logger = AuditLogger()
    with AuditDB(db_path) as db:
        audit_logger.restore(db.list_entries(tenant_id))
    return audit_logger


def _parse_datetime(value: str | None, option: str) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        console.print(f"[red]Invalid {option}: '{value}' is not an ISO 8601 timestamp[/red]")
        raise typer.Exit(code=1)


@audit_app.command("query")
def audit_query(
    db: DbOption,
    tenant: Annotated[Optional[str], typer.Option("--tenant", "-t", help="Filter by tenant.")] = None,
    actor_id: Annotated[Optional[str], typer.Option("--actor-id", help="Filter by actor id.")] = None,
    actor_type: Annotated[
        Optional[ActorType], typer.Option("--actor-type", help="Filter by actor type.")
    ] = None,
    action: Annotated[Optional[str], typer.Option("--action", "-a", help="Filter by action.")] = None,
    resource: Annotated[
        Optional[str], typer.Option("--resource", "-r", help="Filter by resource.")
    ] = None,
    result: Annotated[
        Optional[AuditResult], typer.Option("--result", help="Filter by result.")
    ] = None,
    since: Annotated[
        Optional[str], typer.Option("--from", help="Only entries at or after this ISO timestamp.")
    ] = None,
    until: Annotated[
        Optional[str], typer.Option("--to", help="Only entries at or before this ISO timestamp.")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum entries to show.")] = 50,
    json_output: Annotated[bool, typer.Option("--json", help="Output entries as JSON.")] = False,
) -> None:
    """
    List stored audit entries, most recent first.

    Example:
        $ warden audit query --db audit.db --result denied -n 10
    """
    query = AuditQuery(
        tenant_id=tenant,
        actor_id=actor_id,
        actor_type=actor_type,
        action=action,
        resource=resource,
        result=result,
        from_date=_parse_datetime(since, "--from"),
        to_date=_parse_datetime(until, "--to"),
        limit=limit,
    )
    entries = _load_audit_log(db, tenant).query(query)

    if json_output:
        print(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    render_entries(entries, console=console)


@audit_app.command("stats")
def audit_stats(
    db: DbOption,
    tenant: Annotated[Optional[str], typer.Option("--tenant", "-t", help="Restrict to one tenant.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output stats as JSON.")] = False,
) -> None:
    """
    Summarize stored audit entries.

    Example:
        $ warden audit stats --db audit.db --tenant acme
    """
    stats = _load_audit_log(db, tenant).get_stats(tenant)

    if json_output:
        print(json.dumps(stats.model_dump(mode="json"), indent=2))
        return

    render_stats(stats, console=console)


@audit_app.command("timeline")
def audit_timeline(
    db: DbOption,
    bucket_minutes: Annotated[
        int,
        typer.Option("--bucket-minutes", "-b", help="Bucket size in minutes.", min=1),
    ] = 60,
    tenant: Annotated[Optional[str], typer.Option("--tenant", "-t", help="Restrict to one tenant.")] = None,
    actor_id: Annotated[Optional[str], typer.Option("--actor-id", help="Restrict to one actor.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output buckets as JSON.")] = False,
) -> None:
    """
    Show activity counts per time bucket.

    Example:
        $ warden audit timeline --db audit.db --bucket-minutes 15
    """
    try:
        buckets = _load_audit_log(db, tenant).get_timeline(
            tenant_id=tenant,
            actor_id=actor_id,
            bucket_minutes=bucket_minutes,
        )
    except WardenError as e:
        if json_output:
            _output_json_error("timeline_error", str(e))
        else:
            console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    if json_output:
        print(json.dumps([b.model_dump(mode="json") for b in buckets], indent=2))
        return

    render_timeline(buckets, console=console)


@audit_app.command("export")
def audit_export(
    db: DbOption,
    fmt: Annotated[
        ExportFormat,
        typer.Option("--format", "-f", help="Output format."),
    ] = ExportFormat.JSONL,
    tenant: Annotated[Optional[str], typer.Option("--tenant", "-t", help="Restrict to one tenant.")] = None,
    out: Annotated[
        Optional[Path],
        typer.Option("--out", "-o", help="Write to this file instead of stdout.", resolve_path=True),
    ] = None,
) -> None:
    """
    Export stored audit entries, oldest first.

    Example:
        $ warden audit export --db audit.db --format json --out audit.json
    """
    audit_log = _load_audit_log(db, tenant)
    payload = audit_log.export(AuditQuery(tenant_id=tenant), fmt)

    if out is None:
        sys.stdout.write(payload)
        if fmt == ExportFormat.JSON:
            sys.stdout.write("\n")
        return

    out.write_text(payload)
    console.print(f"[green]✓[/green] Exported {len(audit_log)} entries to {out}")


@audit_app.command("purge")
def audit_purge(
    db: DbOption,
    before: Annotated[
        str,
        typer.Option("--before", help="Delete entries older than this ISO 8601 timestamp."),
    ],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Don't ask for confirmation."),
    ] = False,
) -> None:
    """
    Delete stored entries older than a cutoff.

    Example:
        $ warden audit purge --db audit.db --before 2024-01-01T00:00:00+00:00 -y
    """
    cutoff = _parse_datetime(before, "--before")

    if not yes:
        typer.confirm(f"Delete audit entries older than {cutoff.isoformat()}?", abort=True)

    with AuditDB(db) as audit_db:
        removed = audit_db.purge(cutoff)

    console.print(f"[green]✓[/green] Purged {removed} entries")


if __name__ == "__main__":
    app()
