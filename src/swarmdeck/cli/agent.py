"""
Agent session commands: new, send, mode, kill, prune, attach.
"""

import os
from typing import Annotated, Optional

import typer
from rich import print as rprint

from ..settings import get_tmux_socket, to_display_name
from ._shared import app, open_engine, session_id_for


@app.command()
def new(
    name: Annotated[str, typer.Argument(help="Name for the agent (letters, digits, - and _)")],
    agent: Annotated[
        Optional[str], typer.Option("--agent", "-a", help="Agent to run (claude, codex)")
    ] = None,
    repo: Annotated[
        str, typer.Option("--repo", "-r", help="Repository to work in")
    ] = ".",
    worktree: Annotated[
        bool, typer.Option("--worktree", "-w", help="Run in a fresh git worktree")
    ] = False,
    prompt: Annotated[
        Optional[str], typer.Option("--prompt", "-p", help="Initial prompt")
    ] = None,
    task: Annotated[
        Optional[str], typer.Option("--task", "-t", help="Task file to link")
    ] = None,
    auto_accept: Annotated[
        bool,
        typer.Option("--auto-accept", "--yolo", help="Skip all permission prompts"),
    ] = False,
):
    """Start a new agent in its own tmux session."""
    with open_engine() as engine:
        session_id = engine.lifecycle.start_agent(
            name,
            repo=repo,
            agent_kind=agent,
            task_path=task,
            prompt=prompt,
            isolated=worktree,
            privileged=auto_accept,
        )
    rprint(f"[green]✓[/green] Started [bold]{to_display_name(session_id)}[/bold]")
    if auto_accept:
        rprint("[yellow]⚠ running with permission prompts disabled[/yellow]")


@app.command()
def send(
    name: Annotated[str, typer.Argument(help="Agent to reply to")],
    message: Annotated[str, typer.Argument(help="Text to type (Enter is sent after it)")],
):
    """Reply to an agent, e.g. swarm send auth-bug "yes"."""
    session_id = session_id_for(name)
    with open_engine() as engine:
        engine.lifecycle.quick_reply(session_id, message)
    rprint(f"[green]✓[/green] Sent to {to_display_name(session_id)}")


@app.command()
def mode(
    name: Annotated[str, typer.Argument(help="Agent whose mode to cycle")],
):
    """Cycle the agent's permission mode (Shift+Tab)."""
    session_id = session_id_for(name)
    with open_engine() as engine:
        engine.lifecycle.cycle_mode(session_id)
    rprint(f"[green]✓[/green] Cycled mode for {to_display_name(session_id)}")


@app.command()
def kill(
    name: Annotated[str, typer.Argument(help="Agent to end")],
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")
    ] = False,
):
    """End an agent session and remove its worktree."""
    session_id = session_id_for(name)
    display = to_display_name(session_id)
    if not yes:
        yes = typer.confirm(f"Kill {display}?", default=False)
        if not yes:
            rprint("[dim]Cancelled[/dim]")
            raise typer.Exit(code=1)
    with open_engine() as engine:
        engine.lifecycle.end_session(session_id, confirmed=yes)
    rprint(f"[green]✓[/green] Killed {display}")


@app.command()
def prune():
    """Remove stored metadata of sessions that no longer exist."""
    with open_engine() as engine:
        removed = engine.lifecycle.prune()
    if not removed:
        rprint("[dim]Nothing to prune[/dim]")
        return
    for session_id in removed:
        rprint(f"  [dim]removed[/dim] {to_display_name(session_id)}")
    rprint(f"[green]✓[/green] Pruned {len(removed)} stale session(s)")


@app.command()
def attach(
    name: Annotated[str, typer.Argument(help="Agent to attach to")],
):
    """Attach this terminal to the agent's tmux session."""
    session_id = session_id_for(name)
    args = ["tmux"]
    socket = get_tmux_socket()
    if socket:
        args += ["-L", socket]
    args += ["attach-session", "-t", session_id]
    os.execvp("tmux", args)
