"""Store maintenance commands.

Usage:
    latch cleanup --config latch.yaml
    latch clear --config latch.yaml --yes
"""

import asyncio
from pathlib import Path
from typing import Optional

import typer

from latch.core.config import LatchConfig, config_from_env, load_config
from latch.core.exceptions import LatchError
from latch.storage import SessionStore, create_store


def _load_settings(config_path: Optional[Path]) -> LatchConfig:
    """Read the config file (if any) and apply environment overrides."""
    try:
        base = load_config(config_path) if config_path else {}
        return config_from_env(base)
    except (FileNotFoundError, ValueError, LatchError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


async def _cleanup(store: SessionStore) -> int:
    async with store:
        return await store.cleanup_expired()


async def _clear(store: SessionStore) -> None:
    async with store:
        await store.clear()


def cleanup_command(
    config_path: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Configuration file (YAML or JSON)",
    ),
) -> None:
    """Remove expired sessions from the configured store."""
    store = create_store(_load_settings(config_path))
    try:
        removed = asyncio.run(_cleanup(store))
    except LatchError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Removed {removed} expired sessions from {store.backend_name} store")


def clear_command(
    config_path: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Configuration file (YAML or JSON)",
    ),
    yes: bool = typer.Option(
        False,
        "--yes", "-y",
        help="Confirm removal of all sessions",
    ),
) -> None:
    """Remove all sessions from the configured store."""
    if not yes:
        typer.echo("Refusing to clear the store without --yes", err=True)
        raise typer.Exit(1)

    store = create_store(_load_settings(config_path))
    try:
        asyncio.run(_clear(store))
    except LatchError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Cleared {store.backend_name} store")
