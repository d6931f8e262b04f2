"""CLI commands for capslap.

Diagnostics for the core worker: discovery report, liveness ping and raw calls.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from capslap import __logo__, __version__
from capslap.cli.shared.logging_utils import configure_console_logging, ensure_rotating_log_file
from capslap.config.loader import get_config
from capslap.config.schema import Config
from capslap.sidecar.core.errors import WorkerError
from capslap.sidecar.core.protocol import ProgressEvent
from capslap.sidecar.manager import SidecarManager
from capslap.sidecar.notices import describe_error
from capslap.sidecar.supervisor import WorkerSupervisor
from capslap.utils.exceptions import CapslapError

app = typer.Typer(
    name="capslap",
    help=f"{__logo__} capslap - caption studio worker bridge",
    no_args_is_help=True,
)

console = Console()

_state: dict[str, Any] = {"config_path": None, "binary": None}


def _load_config() -> Config:
    cfg = get_config(config_path=_state["config_path"])
    if _state["binary"]:
        cfg = cfg.model_copy(deep=True)
        cfg.sidecar.binary_path = _state["binary"]
    return cfg


def _print_error(exc: CapslapError) -> None:
    if isinstance(exc, WorkerError):
        notice = describe_error(exc)
        colour = "yellow" if notice.level == "warning" else "red"
        console.print(f"[{colour}]{notice.title}:[/{colour}] {escape(notice.description)}")
        console.print(f"[dim]{exc.code}: {escape(exc.raw)}[/dim]")
        return
    console.print(f"[red]{exc.code}:[/red] {escape(exc.message)}")


def _format_report(report: dict[str, Any]) -> None:
    table = Table(title="Worker Candidates")
    table.add_column("#", style="cyan")
    table.add_column("Path")
    table.add_column("Status")
    for index, row in enumerate(report.get("candidates", []), start=1):
        table.add_row(str(index), str(row.get("path", "")), "found" if row.get("exists") else "missing")
    console.print(table)

    checks = report.get("checks", {})
    check_table = Table(title="Worker Requirements")
    check_table.add_column("Check", style="cyan")
    check_table.add_column("Value")
    check_table.add_column("Status")
    rows = [
        ("binary", report.get("binary", ""), bool(checks.get("binaryExists"))),
        ("executable", report.get("binary", ""), bool(checks.get("binaryExecutable"))),
        ("tool dir", report.get("toolDir", ""), bool(checks.get("toolDirExists"))),
        ("ffmpeg", report.get("ffmpeg", ""), bool(checks.get("ffmpegExists"))),
    ]
    for name, value, ok in rows:
        check_table.add_row(name, str(value), "ok" if ok else "missing")
    console.print(check_table)
    suggestions = report.get("suggestions", [])
    if suggestions:
        console.print("[yellow]Suggestions:[/yellow]")
        for text in suggestions:
            console.print(f"- {text}")


@app.callback()
def main(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.json"),
    binary: Optional[str] = typer.Option(None, "--binary", "-b", help="Worker executable to use"),
    debug: bool = typer.Option(False, "--debug", help="Print debug logs to stderr"),
    logs: bool = typer.Option(False, "--logs", help="Also write logs to ~/.capslap/logs"),
):
    """Shared options."""
    _state["config_path"] = config
    _state["binary"] = binary
    try:
        cfg = get_config(config_path=config)
    except CapslapError as exc:
        _print_error(exc)
        raise typer.Exit(2)
    configure_console_logging("DEBUG" if debug else cfg.logging.level)
    if logs:
        ensure_rotating_log_file("capslap", level=cfg.logging.file_level)


@app.command()
def version():
    """Show the capslap version."""
    console.print(f"{__logo__} capslap v{__version__}")


@app.command()
def doctor(as_json: bool = typer.Option(False, "--json", help="Print the raw report as JSON")):
    """Report where the worker was found and whether its tools are bundled."""
    report = WorkerSupervisor(_load_config().sidecar).requirements_report()
    if as_json:
        console.print_json(json.dumps(report))
    else:
        _format_report(report)
    if not report["checks"]["binaryExists"]:
        raise typer.Exit(1)


@app.command()
def ping(timeout: float = typer.Option(5.0, "--timeout", help="Seconds to wait for the worker")):
    """Start the worker and check that it answers."""
    try:
        with SidecarManager(_load_config().sidecar) as manager:
            ok = manager.client.ping(timeout=timeout)
    except CapslapError as exc:
        _print_error(exc)
        raise typer.Exit(1)
    if not ok:
        console.print("[red]Worker answered ping without ok=true[/red]")
        raise typer.Exit(1)
    console.print("[green]✓[/green] Worker is responding")


@app.command()
def call(
    method: str = typer.Argument(..., help="Worker method, e.g. generateCaptions"),
    params: str = typer.Argument("{}", help="JSON params"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds to wait (default: config)"),
):
    """Send one raw request to the worker and print the result."""
    try:
        payload = json.loads(params)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid JSON params:[/red] {exc}")
        raise typer.Exit(2)

    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(method, total=1.0)

        def _on_progress(event: ProgressEvent) -> None:
            progress.update(task, completed=event.progress, description=event.status or method)

        try:
            with SidecarManager(_load_config().sidecar) as manager:
                result = manager.bridge.request(method, payload, on_progress=_on_progress, timeout=timeout)
        except CapslapError as exc:
            progress.stop()
            _print_error(exc)
            raise typer.Exit(1)
    console.print_json(json.dumps(result, ensure_ascii=False))
