"""Identifier commands.

Usage:
    latch generate --count 3
    latch hash <identifier>
"""

import typer

from latch.core.exceptions import InvalidIdentifierError
from latch.session.identifier import (
    IDENTIFIER_BYTES,
    MIN_IDENTIFIER_BYTES,
    generate_identifier,
    hash_identifier,
    parse_identifier,
)


def generate_command(
    count: int = typer.Option(
        1,
        "--count", "-n",
        min=1,
        help="Number of identifiers to generate",
    ),
    nbytes: int = typer.Option(
        IDENTIFIER_BYTES,
        "--bytes",
        min=MIN_IDENTIFIER_BYTES,
        help="Random bytes per identifier",
    ),
) -> None:
    """Print fresh session identifiers and their store keys."""
    for _ in range(count):
        identifier = generate_identifier(nbytes)
        typer.echo(f"{identifier}  {hash_identifier(identifier)}")


def hash_command(
    identifier: str = typer.Argument(..., help="Session identifier"),
    nbytes: int = typer.Option(
        IDENTIFIER_BYTES,
        "--bytes",
        min=MIN_IDENTIFIER_BYTES,
        help="Random bytes the identifier was generated with",
    ),
) -> None:
    """Print the store key for a session identifier."""
    try:
        parse_identifier(identifier, nbytes)
    except InvalidIdentifierError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(hash_identifier(identifier))
