"""Request-cycle session handling.

SessionManager is what a transport adapter (HTTP middleware, WebSocket
handler, ...) talks to. Per request it:

1. Turns the identifier the client presented (if any) into a Session,
   falling back to a fresh one for unknown, malformed or expired identifiers
2. Lets application code work with the Session
3. Commits the Session and tells the adapter what to do with the client's
   copy of the identifier

Example:
    manager = SessionManager(MemorySessionStore())

    session = await manager.load_session(request.cookies.get("session"))
    session.set("role", "guest")
    command = await manager.commit(session)

    if command.action is CookieAction.SET:
        response.set_cookie("session", command.identifier, expires=command.expiry)
    elif command.action is CookieAction.DELETE:
        response.delete_cookie("session")
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from latch.core.clock import Clock
from latch.core.exceptions import StorageUnavailableError
from latch.session.identifier import hash_identifier, validate_identifier
from latch.session.renewal import SessionState, classify
from latch.session.session import Session
from latch.storage.base import SessionStore
from latch.storage.factory import create_store

if TYPE_CHECKING:
    from latch.core.config import LatchConfig

logger = logging.getLogger(__name__)


class CookieAction(str, Enum):
    """What the transport should do with the client's identifier."""

    SET = "set"
    DELETE = "delete"
    NO_CHANGE = "no_change"


@dataclass(frozen=True)
class SessionCookieCommand:
    """Instruction for the transport adapter after a commit.

    Attributes:
        action: SET, DELETE or NO_CHANGE.
        identifier: The identifier to deliver for SET.
        expiry: Expiry hint for the transport artifact; None means the
            session does not expire.
    """

    action: CookieAction
    identifier: Optional[str] = None
    expiry: Optional[datetime] = None

    @classmethod
    def set(cls, identifier: str, expiry: Optional[datetime]) -> "SessionCookieCommand":
        return cls(CookieAction.SET, identifier, expiry)

    @classmethod
    def delete(cls) -> "SessionCookieCommand":
        return cls(CookieAction.DELETE)

    @classmethod
    def no_change(cls) -> "SessionCookieCommand":
        return cls(CookieAction.NO_CHANGE)

    def __repr__(self) -> str:
        return f"SessionCookieCommand(action={self.action.value}, expiry={self.expiry})"


class SessionManager:
    """Load and commit sessions on behalf of a transport adapter.

    Attributes:
        store: The session store backend.
        default_lifetime: Lifetime given to fresh sessions, if any.
        fail_open: If True, a store outage while loading yields a fresh
            session instead of raising StorageUnavailableError.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        default_lifetime: Optional[timedelta] = None,
        fail_open: bool = False,
    ) -> None:
        self.store = store
        self.default_lifetime = default_lifetime
        self.fail_open = fail_open

    @property
    def clock(self) -> Clock:
        return self.store.clock

    def new_session(self, data: Optional[Dict[str, Any]] = None) -> Session:
        """Create a fresh, unsaved session bound to the store's clock."""
        session = Session(
            data,
            clock=self.store.clock,
            identifier_bytes=self.store.identifier_bytes,
        )
        if self.default_lifetime is not None:
            session.expire_in(self.default_lifetime)
        return session

    async def load_session(self, identifier: Optional[str]) -> Session:
        """Resolve the identifier presented by a client.

        Args:
            identifier: Raw identifier from the transport, or None.

        Returns:
            The stored session if the identifier is valid, otherwise a fresh
            session.

        Raises:
            StorageUnavailableError: If the store is down and fail_open is off.
        """
        if identifier is None:
            return self.new_session()

        try:
            session = await self.store.load_identifier(identifier)
        except StorageUnavailableError as e:
            if not self.fail_open:
                raise
            logger.warning("Continuing without stored session: %s", e)
            return self.new_session()

        state = classify(session, self.clock.now())
        if state is not SessionState.VALID:
            logger.debug("Presented session is %s, starting fresh", state.value)
            return self.new_session()
        return session

    async def commit(self, session: Session) -> SessionCookieCommand:
        """Persist ``session`` and report what the client must be told.

        Returns:
            SET with the identifier and expiry for new or renewed sessions
            and for sessions whose expiry changed; DELETE for destroyed or
            expired sessions that had been stored; NO_CHANGE otherwise.

        Raises:
            SessionConflictError: If another request rotated or destroyed
                the stored session since it was loaded.
        """
        was_persisted = not session.is_new
        removed = session.is_destroyed or session.is_expired(self.clock.now())
        previous = session.identifier
        expiry_changed = session.expiry_changed

        identifier = await self.store.save(session)

        if removed:
            if was_persisted:
                return SessionCookieCommand.delete()
            return SessionCookieCommand.no_change()
        if identifier is None:
            return SessionCookieCommand.no_change()

        if not was_persisted or identifier != previous or expiry_changed:
            return SessionCookieCommand.set(identifier, session.expiry)
        return SessionCookieCommand.no_change()

    async def destroy_session(self, identifier: str) -> None:
        """Remove the session a client identifier points to, if any."""
        if validate_identifier(identifier, self.store.identifier_bytes):
            await self.store.destroy(hash_identifier(identifier))


def create_session_manager(
    config: "LatchConfig",
    clock: Optional[Clock] = None,
) -> SessionManager:
    """Create a SessionManager with the store described by ``config``."""
    return SessionManager(
        create_store(config, clock=clock),
        default_lifetime=config.lifetime,
        fail_open=config.fail_open,
    )
