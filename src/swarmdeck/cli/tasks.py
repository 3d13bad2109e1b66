"""
Task document commands: task, tasks, start, done.
"""

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich import print as rprint
from rich.table import Table
from rich.text import Text

from ..formatters import format_due
from ..settings import to_display_name
from ._shared import app, console, open_engine


@app.command()
def task(
    description: Annotated[str, typer.Argument(help="What the agent should do")],
    notify: Annotated[
        Optional[str], typer.Option("--notify", "-n", help="Who to tell when done")
    ] = None,
    due: Annotated[
        Optional[str], typer.Option("--due", "-d", help="Due date (YYYY-MM-DD or MM-DD)")
    ] = None,
    repo: Annotated[
        str, typer.Option("--repo", "-r", help="Repository to work in")
    ] = ".",
    worktree: Annotated[
        bool, typer.Option("--worktree", "-w", help="Run in a fresh git worktree")
    ] = False,
    auto_accept: Annotated[
        bool,
        typer.Option("--auto-accept", "--yolo", help="Skip all permission prompts"),
    ] = False,
):
    """Write a task document and start an agent on it."""
    with open_engine() as engine:
        session_id = engine.lifecycle.create_agent(
            description,
            notify=notify,
            due=due,
            repo=repo,
            privileged=auto_accept,
            isolated=worktree,
        )
        linked = engine.reconciler.metadata_for(session_id)
    rprint(f"[green]✓[/green] Started [bold]{to_display_name(session_id)}[/bold]")
    if linked is not None and linked.linked_task_path:
        rprint(f"  [dim]task:[/dim] {linked.linked_task_path}")


@app.command("tasks")
def list_tasks(
    show_all: Annotated[
        bool, typer.Option("--all", "-a", help="Include tasks an agent is working on")
    ] = False,
):
    """List open task documents, soonest due first."""
    with open_engine() as engine:
        snapshot = engine.reconciler.refresh()
        tasks_dir = engine.registry.tasks_dir

    tasks = snapshot.tasks if show_all else snapshot.pending_tasks
    if not tasks:
        rprint(f"[dim]No open tasks in {tasks_dir}[/dim]")
        return

    table = Table(box=None, pad_edge=False, header_style="bold dim")
    table.add_column("due", no_wrap=True)
    table.add_column("task")
    table.add_column("status", no_wrap=True)
    table.add_column("file", style="dim")
    for record in tasks:
        label = Text(record.label)
        if record.has_active_session:
            label.append("  ● agent", style="green")
        table.add_row(
            format_due(record.due_date) if record.due_date else "-",
            label,
            record.status or "-",
            record.path.name,
        )
    console.print(table)


@app.command()
def start(
    task_path: Annotated[Path, typer.Argument(help="Task document to work on")],
    new: Annotated[
        bool, typer.Option("--new", help="Start another agent even if one is already on it")
    ] = False,
    repo: Annotated[
        str, typer.Option("--repo", "-r", help="Repository to work in")
    ] = ".",
    worktree: Annotated[
        bool, typer.Option("--worktree", "-w", help="Run in a fresh git worktree")
    ] = False,
    auto_accept: Annotated[
        bool,
        typer.Option("--auto-accept", "--yolo", help="Skip all permission prompts"),
    ] = False,
):
    """Start (or resume) an agent on an existing task document."""
    with open_engine() as engine:
        record = engine.registry.read_task(task_path.expanduser().resolve())
        if record is None:
            rprint(f"[red]✗[/red] Cannot read task: {task_path}")
            raise typer.Exit(code=1)
        engine.reconciler.refresh()
        existing = [] if new else engine.lifecycle.find_sessions_for_task(record)
        session_id = engine.lifecycle.start_from_task(
            record, force_new=new, privileged=auto_accept, repo=repo, isolated=worktree,
        )
    name = to_display_name(session_id)
    if session_id in existing:
        rprint(f"[yellow]→[/yellow] {record.label} is already running as [bold]{name}[/bold]")
    else:
        rprint(f"[green]✓[/green] Started [bold]{name}[/bold] on {record.label}")


@app.command()
def done(
    task_path: Annotated[Path, typer.Argument(help="Task document to complete")],
):
    """Mark a task done and move it to the archive."""
    with open_engine() as engine:
        record = engine.registry.read_task(task_path.expanduser())
        if record is None:
            rprint(f"[red]✗[/red] Cannot read task: {task_path}")
            raise typer.Exit(code=1)
        try:
            dest = engine.lifecycle.complete_task(record)
        except OSError as e:
            rprint(f"[red]✗[/red] Could not archive task: {e}")
            raise typer.Exit(code=1)
    rprint(f"[green]✓[/green] Archived to {dest}")
