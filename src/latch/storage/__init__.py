"""Latch session storage backends.

This module provides storage backends for session persistence:
- MemorySessionStore: In-memory storage (default)
- RedisSessionStore: Redis-backed storage (requires latch-session[redis])
- PostgreSQLSessionStore: PostgreSQL-backed storage (requires latch-session[postgresql])
"""

from latch.storage.base import SessionStore
from latch.storage.factory import create_store
from latch.storage.memory_store import MemorySessionStore

# Lazy imports for optional backends
__all__ = [
    "SessionStore",
    "MemorySessionStore",
    "RedisSessionStore",
    "PostgreSQLSessionStore",
    "create_store",
]


def __getattr__(name: str):
    """Lazy import optional storage backends."""
    if name == "RedisSessionStore":
        from latch.storage.redis_store import RedisSessionStore
        return RedisSessionStore
    elif name == "PostgreSQLSessionStore":
        from latch.storage.postgresql_store import PostgreSQLSessionStore
        return PostgreSQLSessionStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
