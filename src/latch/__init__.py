"""Latch - server-side session management core.

Latch binds cryptographically random session identifiers to mutable,
serializable session data, enforces expiry and renewal policy, and tracks
changes so that stores only write what changed. It is transport-agnostic:
an HTTP (or other) adapter feeds it the identifier a client presented and
gets back a cookie command to apply to the response.

Quick Start:
    from latch import MemorySessionStore, SessionManager

    manager = SessionManager(MemorySessionStore())
    session = await manager.load_session(cookie_value)
    session.set("role", "guest")
    command = await manager.commit(session)

Modules:
    - latch.core: Exceptions, clocks, record serialization, configuration
    - latch.session: Session entity, identifiers, renewal policy
    - latch.storage: Storage backends (Memory, Redis, PostgreSQL)
    - latch.manager: Request-cycle orchestration for transport adapters
    - latch.cli: CLI commands (latch init, latch generate, latch cleanup, ...)
"""

__version__ = "0.1.0"

# Core exports for convenience
from latch.core import (
    LatchError,
    ManualClock,
    MalformedRecordError,
    StorageUnavailableError,
    SystemClock,
)
from latch.session import (
    RenewalPolicy,
    Session,
    generate_identifier,
    hash_identifier,
)
from latch.storage import (
    MemorySessionStore,
    SessionStore,
    create_store,
)
from latch.manager import (
    CookieAction,
    SessionCookieCommand,
    SessionManager,
    create_session_manager,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "LatchError",
    "StorageUnavailableError",
    "MalformedRecordError",
    "SystemClock",
    "ManualClock",
    # Session
    "Session",
    "RenewalPolicy",
    "generate_identifier",
    "hash_identifier",
    # Storage
    "SessionStore",
    "MemorySessionStore",
    "create_store",
    # Manager
    "SessionManager",
    "SessionCookieCommand",
    "CookieAction",
    "create_session_manager",
]
