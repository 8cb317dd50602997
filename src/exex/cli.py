"""
CLI entry point for EXEX.

This module provides the Typer-based command-line interface for EXEX.

Commands:
    serve           Start the HTTP daemon
    check-path      Ask the policy engine about a path
    check-command   Ask the policy engine about a command
    config show     Print the effective configuration
    config path     Print the configuration file location
    config init     Write the default configuration file
    audit           Show the request audit trail
    doctor          Check the local environment

Architecture Note:
    The CLI is intentionally thin - it parses arguments and delegates to
    the config, policy and server modules.
"""

import json
import sys
from pathlib import Path
from typing import Annotated, Optional

import httpx
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from exex import __version__
from exex.config import (
    get_config_path,
    get_default_config,
    load_config,
    read_config,
    write_config,
)
from exex.errors import ConfigError, StorageError
from exex.logging_utils import configure_logging
from exex.policy import PolicyEngine
from exex.schema import Config, OperationStatus, PolicyDecision
from exex.store import AuditDB

app = typer.Typer(
    name="exex",
    help="Local execution daemon with path and command policy.",
    add_completion=False,
    no_args_is_help=True,
)

config_app = typer.Typer(
    name="config",
    help="Inspect and initialize the configuration file.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="Configuration file (default: the per-user location).",
    ),
]

JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output in JSON format."),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]exex[/bold] version {__version__}")
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
    EXEX - run commands and touch files for local clients, under policy.
    """


def _load(config_path: Path | None) -> Config:
    """
    Load an explicitly named config strictly, or the default one leniently.
    """
    if config_path is None:
        return load_config()
    try:
        return read_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Error loading configuration: {escape(e.message)}[/red]")
        raise typer.Exit(code=2) from e


def _print_decision(subject: str, decision: PolicyDecision, json_output: bool) -> None:
    if json_output:
        print(json.dumps({
            "subject": subject,
            "verdict": decision.verdict.value,
            "allowed": decision.allowed,
            "reason": decision.reason,
            "rule": decision.rule_matched,
        }, indent=2))
        return

    if decision.allowed:
        console.print(f"[green]ALLOW[/green] {escape(subject)}")
    else:
        console.print(f"[red]DENY[/red]  {escape(subject)}")
    console.print(f"  [dim]Reason:[/dim] {escape(decision.reason)}")
    if decision.rule_matched:
        console.print(f"  [dim]Rule:[/dim]   {escape(decision.rule_matched)}")


# =============================================================================
# Daemon
# =============================================================================


@app.command()
def serve(
    config_path: ConfigOption = None,
    host: Annotated[
        Optional[str],
        typer.Option("--host", help="Interface to bind (overrides the config)."),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Port to bind (overrides the config)."),
    ] = None,
    audit_db: Annotated[
        Optional[Path],
        typer.Option("--audit-db", help="SQLite audit trail (overrides the config)."),
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="debug, info, warning or error."),
    ] = None,
) -> None:
    """
    Start the HTTP daemon.

    Example:
        $ exex serve --port 8080 --audit-db exex-audit.db
    """
    from exex.server import run_server

    config = _load(config_path)
    configure_logging(
        level=log_level or config.logging.level,
        audit_file=config.logging.audit_file,
    )
    run_server(
        config,
        host=host,
        port=port,
        audit_db_path=str(audit_db) if audit_db else None,
    )


# =============================================================================
# Policy Checks
# =============================================================================


@app.command("check-path")
def check_path(
    path: Annotated[str, typer.Argument(help="Path to check.")],
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Check whether the daemon would touch a path.

    Exits 0 when allowed, 1 when denied.

    Example:
        $ exex check-path /etc/passwd
    """
    config = _load(config_path)
    with PolicyEngine.from_config(config) as engine:
        decision = engine.path_decision(path)
    _print_decision(path, decision, json_output)
    raise typer.Exit(code=0 if decision.allowed else 1)


@app.command("check-command")
def check_command(
    command: Annotated[str, typer.Argument(help="Command (or whole command line) to check.")],
    args: Annotated[
        Optional[list[str]],
        typer.Argument(help="Arguments, checked by the destructive-pattern heuristic."),
    ] = None,
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Check whether the daemon would run a command.

    Exits 0 when allowed, 1 when denied.

    Example:
        $ exex check-command git status
    """
    config = _load(config_path)
    with PolicyEngine.from_config(config) as engine:
        decision = engine.command_decision(command, args or None)
    subject = " ".join([command, *(args or [])])
    _print_decision(subject, decision, json_output)
    raise typer.Exit(code=0 if decision.allowed else 1)


# =============================================================================
# Configuration
# =============================================================================


@config_app.command("show")
def config_show(config_path: ConfigOption = None) -> None:
    """Print the effective configuration as JSON."""
    config = _load(config_path)
    print(config.model_dump_json(indent=2))


@config_app.command("path")
def config_path_cmd() -> None:
    """Print where the configuration file lives."""
    print(get_config_path())


@config_app.command("init")
def config_init(
    config_path: ConfigOption = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing file."),
    ] = False,
) -> None:
    """Write the platform default configuration."""
    target = config_path or get_config_path()
    if target.exists() and not force:
        console.print(f"[yellow]Configuration already exists: {target}[/yellow]")
        console.print("[dim]Use --force to overwrite it.[/dim]")
        raise typer.Exit(code=1)

    try:
        write_config(get_default_config(), target)
    except OSError as e:
        console.print(f"[red]Cannot write {target}: {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print(f"[green]Wrote default configuration:[/green] {target}")


# =============================================================================
# Audit Trail
# =============================================================================


@app.command()
def audit(
    db_path: Annotated[
        Path,
        typer.Argument(help="Audit database file.", exists=True, dir_okay=False),
    ],
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of events to show."),
    ] = 20,
    status: Annotated[
        Optional[OperationStatus],
        typer.Option("--status", help="Only show events with this status."),
    ] = None,
    json_output: JsonOption = False,
) -> None:
    """
    Show recent requests from the audit trail.

    Example:
        $ exex audit exex-audit.db --status denied
    """
    try:
        with AuditDB(db_path) as db:
            events = db.list_events(limit=limit, status=status)
            counts = db.count_by_status()
    except StorageError as e:
        console.print(f"[red]Error reading audit trail: {escape(e.message)}[/red]")
        raise typer.Exit(code=1) from e

    if json_output:
        print(json.dumps({
            "counts": counts,
            "events": [event.model_dump(mode="json") for event in events],
        }, indent=2))
        return

    if not events:
        console.print("[dim]No events recorded.[/dim]")
        return

    table = Table(title=f"Audit trail: {escape(str(db_path))}")
    table.add_column("Time", style="dim")
    table.add_column("Operation", style="cyan")
    table.add_column("Target")
    table.add_column("Status")
    table.add_column("Reason / Error")

    status_styles = {
        OperationStatus.SUCCESS: "[green]success[/green]",
        OperationStatus.ERROR: "[yellow]error[/yellow]",
        OperationStatus.DENIED: "[red]denied[/red]",
    }
    for event in events:
        table.add_row(
            event.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            event.operation,
            escape(event.target or ""),
            status_styles[event.status],
            escape(event.error or event.reason),
        )

    console.print(table)
    console.print(
        f"[dim]success={counts['success']} error={counts['error']} "
        f"denied={counts['denied']}[/dim]"
    )


# =============================================================================
# Doctor
# =============================================================================


@app.command()
def doctor(
    config_path: ConfigOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Check the local environment.

    Verifies:
    - Python version (3.11+)
    - Configuration file presence and validity
    - Whether a daemon answers on the configured address

    Example:
        $ exex doctor
    """
    checks = []
    all_ok = True

    # Check 1: Python version
    py_version = sys.version_info
    py_version_str = f"{py_version.major}.{py_version.minor}.{py_version.micro}"
    py_ok = py_version >= (3, 11)
    checks.append({
        "name": "Python version",
        "ok": py_ok,
        "value": py_version_str,
        "message": "OK" if py_ok else "Requires Python 3.11+",
    })
    all_ok = all_ok and py_ok

    # Check 2: Configuration file
    target = config_path or get_config_path()
    config = get_default_config()
    config_ok = True
    if not target.exists():
        config_message = "Not found (defaults are written on first start)"
    else:
        try:
            config = read_config(target)
            config_message = (
                f"Valid ({len(config.security.disallowed_paths)} deny, "
                f"{len(config.security.allowed_paths)} allow rules)"
            )
        except ConfigError as e:
            config_ok = False
            config_message = e.message
    checks.append({
        "name": "Configuration",
        "ok": config_ok,
        "value": str(target),
        "message": config_message,
    })
    all_ok = all_ok and config_ok

    # Check 3: Daemon reachability (informational)
    address = f"{config.server.host}:{config.server.port}"
    try:
        with httpx.Client(timeout=2.0) as client:
            response = client.get(f"http://{address}/health")
        daemon_message = (
            f"Running (version {response.json().get('version')})"
            if response.status_code == 200
            else f"HTTP {response.status_code}"
        )
    except httpx.HTTPError:
        daemon_message = "Not running. Start it with: exex serve"
    except ValueError:
        daemon_message = "Something else answers on this address"
    checks.append({
        "name": "Daemon",
        "ok": True,
        "value": address,
        "message": daemon_message,
    })

    if json_output:
        print(json.dumps({
            "ok": all_ok,
            "version": __version__,
            "checks": checks,
        }, indent=2))
    else:
        console.print(f"[bold]EXEX Doctor[/bold] v{__version__}")
        console.print()
        for check in checks:
            icon = "[green]✓[/green]" if check["ok"] else "[red]✗[/red]"
            if check["ok"]:
                console.print(
                    f"{icon} {check['name']}: [dim]{check['value']}[/dim] - {check['message']}"
                )
            else:
                console.print(f"{icon} {check['name']}: [dim]{check['value']}[/dim]")
                console.print(f"    [red]{escape(check['message'])}[/red]")
        console.print()
        if all_ok:
            console.print("[green]All checks passed![/green]")
        else:
            console.print("[yellow]Some checks failed. See above for details.[/yellow]")

    raise typer.Exit(code=0 if all_ok else 1)


if __name__ == "__main__":
    app()
