"""
CLI interface for swarmdeck using Typer.
"""

# Import shared state (app, console, helpers) - must come first
from ._shared import app, main_callback  # noqa: F401

# Import submodules to register their commands with the Typer app
from . import agent  # noqa: F401
from . import monitoring  # noqa: F401
from . import tasks  # noqa: F401


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
