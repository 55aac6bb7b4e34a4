"""Latch CLI main entry point.

This module provides the CLI for Latch.
"""

import logging

import typer

from latch.cli.commands.identifier import generate_command, hash_command
from latch.cli.commands.init import init_command
from latch.cli.commands.maintenance import cleanup_command, clear_command

app = typer.Typer(
    name="latch",
    help="Latch CLI - server-side session management",
    add_completion=False,
)

# Register commands
app.command(name="init")(init_command)
app.command(name="generate")(generate_command)
app.command(name="hash")(hash_command)
app.command(name="cleanup")(cleanup_command)
app.command(name="clear")(clear_command)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable debug logging",
    ),
) -> None:
    """Latch CLI - server-side session management."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
