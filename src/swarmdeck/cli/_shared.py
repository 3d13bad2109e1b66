"""
Shared CLI state: Typer app, console, and engine helpers.
"""

from contextlib import contextmanager
from typing import Iterator

import typer
from rich import print as rprint
from rich.console import Console

from ..engine import Engine, build_engine
from ..exceptions import SwarmError
from ..logging_config import setup_cli_logging
from ..settings import to_session_id

# Main app
app = typer.Typer(
    name="swarm",
    help="Watch and steer AI coding agents running in tmux sessions",
    no_args_is_help=False,
    invoke_without_command=True,
    rich_markup_mode="rich",
)

# Console for rich output
console = Console()


@contextmanager
def open_engine(notifications: bool = False) -> Iterator[Engine]:
    """Build an engine for one command and always release it.

    Engine errors are printed and turned into exit code 1.
    """
    try:
        engine = build_engine(notifications=notifications)
    except SwarmError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    try:
        yield engine
    except SwarmError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    finally:
        engine.close()


def session_id_for(name: str) -> str:
    """Accept either "auth-bug" or "swarm-auth-bug"."""
    return to_session_id(name.strip())


@app.callback(invoke_without_command=True)
def main_callback(ctx: typer.Context):
    """Show the live agent table when no command is given."""
    setup_cli_logging()
    if ctx.invoked_subcommand is None:
        from .monitoring import watch

        watch(interval=None)
