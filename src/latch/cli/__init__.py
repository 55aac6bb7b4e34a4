"""Latch CLI.

This module provides the command-line interface for Latch.

Commands:
- latch init: Write a starter configuration file
- latch generate: Print fresh session identifiers
- latch hash: Print the store key for an identifier
- latch cleanup: Remove expired sessions from the configured store
- latch clear: Remove all sessions from the configured store
"""

from latch.cli.main import app, main

__all__ = ["app", "main"]
