"""
Monitoring commands: status, watch.
"""

import json
import time
from datetime import datetime
from typing import Annotated, Optional

import typer
from rich import print as rprint
from rich.console import Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..formatters import (
    clean_preview,
    format_ago,
    format_due,
    mini_log_preview,
    status_indicator,
    truncate,
)
from ..logging_config import setup_engine_logging
from ..models import AgentSnapshot
from ..status_constants import needs_attention
from ._shared import app, console, open_engine


def build_agents_table(snapshot: AgentSnapshot, style: str = "text",
                       now: Optional[datetime] = None) -> Table:
    """Render a snapshot's sessions in their stable order."""
    now = now or datetime.now()
    table = Table(box=None, pad_edge=False, header_style="bold dim")
    table.add_column("", no_wrap=True)
    table.add_column("agent", no_wrap=True)
    table.add_column("task")
    table.add_column("activity")
    table.add_column("output", no_wrap=True, justify="right")
    table.add_column("", no_wrap=True)

    for record in snapshot.sessions:
        flags = []
        if record.is_privileged_mode:
            flags.append("[bold yellow]yolo[/bold yellow]")
        if record.is_isolated:
            flags.append("[cyan]wt[/cyan]")
        if record.stale:
            flags.append("[dim]stale[/dim]")
        table.add_row(
            status_indicator(record.status, style),
            Text(record.display_name, style="bold"),
            Text(truncate(record.task_title or "-", 40)),
            Text(truncate(record.activity or mini_log_preview(record.captured_output) or "", 60),
                 style="dim"),
            format_ago(record.last_activity_at, now),
            " ".join(flags),
        )
    return table


def build_tasks_table(snapshot: AgentSnapshot) -> Table:
    table = Table(box=None, pad_edge=False, header_style="bold dim")
    table.add_column("due", no_wrap=True)
    table.add_column("task")
    table.add_column("status", no_wrap=True)
    for task in snapshot.pending_tasks:
        table.add_row(
            format_due(task.due_date) if task.due_date else "-",
            Text(task.label),
            task.status or "-",
        )
    return table


def build_preview(snapshot: AgentSnapshot, max_lines: int) -> Group:
    """Last few lines of every session's output, one panel each."""
    panels = []
    for record in snapshot.sessions:
        lines = clean_preview(record.captured_output)[-max_lines:]
        panels.append(Panel(Text("\n".join(lines)), title=record.display_name,
                            title_align="left", border_style="dim"))
    return Group(*panels)


def render_snapshot(snapshot: AgentSnapshot, style: str = "text"):
    parts = []
    if not snapshot.manager_available:
        parts.append(Text(f"⚠ {snapshot.warning}", style="bold yellow"))
    if snapshot.sessions:
        waiting = sum(1 for s in snapshot.sessions if needs_attention(s.status))
        header = f"{len(snapshot.sessions)} agent(s)"
        if waiting:
            header += f", {waiting} need attention"
        parts.append(Text(header, style="bold"))
        parts.append(build_agents_table(snapshot, style))
    else:
        parts.append(Text("No agents running. Start one with: swarm new <name>", style="dim"))
    if snapshot.pending_tasks:
        parts.append(Text(f"\nPending tasks ({len(snapshot.pending_tasks)})", style="bold"))
        parts.append(build_tasks_table(snapshot))
    return Group(*parts)


@app.command()
def status(
    as_json: Annotated[
        bool, typer.Option("--json", help="Print the snapshot as JSON")
    ] = False,
    preview: Annotated[
        bool, typer.Option("--preview", "-p", help="Also show recent output of each agent")
    ] = False,
):
    """Show every agent session and its current status."""
    with open_engine() as engine:
        snapshot = engine.reconciler.refresh()
        if as_json:
            typer.echo(json.dumps(snapshot.to_dict(), indent=2))
            return
        console.print(render_snapshot(snapshot, engine.config.status_style))
        if preview and snapshot.sessions:
            console.print(build_preview(snapshot, engine.config.preview_lines))


@app.command()
def watch(
    interval: Annotated[
        Optional[float], typer.Option("--interval", "-i", help="Seconds between polls")
    ] = None,
):
    """Live-updating agent table with desktop notifications (Ctrl-C to quit)."""
    with open_engine(notifications=True) as engine:
        setup_engine_logging()
        if interval is not None:
            engine.config.poll_interval = max(0.2, interval)
        reconciler = engine.reconciler
        style = engine.config.status_style
        reconciler.start()
        try:
            with Live(render_snapshot(reconciler.snapshot, style), console=console,
                      refresh_per_second=4) as live:
                while True:
                    time.sleep(0.25)
                    live.update(render_snapshot(reconciler.snapshot, style))
        except KeyboardInterrupt:
            rprint("[dim]stopped[/dim]")
