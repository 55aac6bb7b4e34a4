"""Base session storage interface.

This module defines the abstract interface for session storage backends.

The public operations (``load``, ``save``, ``persist``, ``destroy``,
``clear``) carry the session semantics: expiry filtering, change tracking,
renewal and identifier rotation. Backends only implement a small set of
storage primitives keyed by hashed key:

- ``_read``: fetch and decode a record
- ``_insert``: write a record only if the key is free
- ``_update``: replace a record only if its key still exists
- ``_rotate``: atomically move a record from one key to another
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from latch.core.clock import Clock, default_clock
from latch.core.exceptions import (
    IdentifierCollisionError,
    MalformedRecordError,
    UnknownIdentifierError,
)
from latch.core.serialization import SessionRecord
from latch.session.identifier import (
    IDENTIFIER_BYTES,
    hash_identifier,
    short_key,
    validate_identifier,
)
from latch.session.renewal import RenewalPolicy
from latch.session.session import Session

logger = logging.getLogger(__name__)

DEFAULT_MAX_ID_RETRIES = 8


class SessionStore(ABC):
    """Abstract interface for session storage.

    Implementations must provide the storage primitives below. Every store
    is configured at construction time with a renewal policy and a clock.

    Example implementations:
    - MemorySessionStore: In-memory storage (default)
    - RedisSessionStore: Redis-backed storage for distributed systems
    - PostgreSQLSessionStore: PostgreSQL-backed for persistence
    """

    backend_name = "abstract"

    def __init__(
        self,
        renewal: Optional[RenewalPolicy] = None,
        clock: Optional[Clock] = None,
        identifier_bytes: int = IDENTIFIER_BYTES,
        max_id_retries: int = DEFAULT_MAX_ID_RETRIES,
    ) -> None:
        """Initialize common store settings.

        Args:
            renewal: Renewal policy. Defaults to never renewing.
            clock: Time source for every expiry comparison.
            identifier_bytes: Entropy of identifiers issued by this store.
            max_id_retries: Attempts at finding a free identifier before
                giving up with IdentifierCollisionError.
        """
        if max_id_retries < 1:
            raise ValueError("max_id_retries must be at least 1")
        self.renewal = renewal or RenewalPolicy.disabled()
        self.clock = clock or default_clock()
        self.identifier_bytes = identifier_bytes
        self.max_id_retries = max_id_retries

    # =========================================================================
    # Backend primitives
    # =========================================================================

    @abstractmethod
    async def _read(self, hashed_key: str) -> Optional[SessionRecord]:
        """Fetch the record stored under ``hashed_key``.

        Returns:
            The decoded record (possibly expired), or None if absent.

        Raises:
            MalformedRecordError: If the stored data cannot be decoded.
            StorageUnavailableError: If the backend cannot be reached.
        """
        pass

    @abstractmethod
    async def _insert(self, hashed_key: str, record: SessionRecord) -> bool:
        """Store ``record`` only if ``hashed_key`` is free.

        Returns:
            False if the key was already taken.
        """
        pass

    @abstractmethod
    async def _update(self, hashed_key: str, record: SessionRecord) -> None:
        """Replace the record stored under ``hashed_key``.

        Never creates a record: a key that was rotated away or destroyed
        meanwhile must stay gone.

        Raises:
            SessionConflictError: If ``hashed_key`` no longer exists.
        """
        pass

    @abstractmethod
    async def _rotate(
        self,
        old_key: str,
        new_key: str,
        record: SessionRecord,
    ) -> bool:
        """Atomically replace the record at ``old_key`` with one at ``new_key``.

        No reader may observe both keys, or neither, during the swap.

        Returns:
            False (and nothing changed) if ``new_key`` was already taken.

        Raises:
            SessionConflictError: If ``old_key`` no longer exists.
        """
        pass

    @abstractmethod
    async def destroy(self, hashed_key: str) -> None:
        """Delete a session. Deleting an absent key is not an error.

        Args:
            hashed_key: The hashed key of the session.

        Raises:
            StorageUnavailableError: If the deletion fails.
        """
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove all sessions. Intended for maintenance and tests."""
        pass

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """Remove expired sessions.

        Returns:
            Number of sessions removed.
        """
        pass

    # =========================================================================
    # Session operations
    # =========================================================================

    async def load(self, hashed_key: str) -> Optional[Session]:
        """Retrieve a session by hashed key.

        Args:
            hashed_key: The store key, as returned by ``hash_identifier``.

        Returns:
            The Session if found and not expired, None otherwise. The result
            carries no identifier.

        Raises:
            StorageUnavailableError: If the backend cannot be reached.
        """
        try:
            record = await self._read(hashed_key)
        except MalformedRecordError as e:
            logger.warning(
                "Ignoring malformed session %s: %s", short_key(hashed_key), e.reason
            )
            return None

        if record is None:
            return None

        if record.is_expired(self.clock.now()):
            logger.debug("Session expired: %s", short_key(hashed_key))
            await self.destroy(hashed_key)
            return None

        return Session.from_record(
            hashed_key,
            record,
            clock=self.clock,
            identifier_bytes=self.identifier_bytes,
        )

    async def load_identifier(self, identifier: str) -> Optional[Session]:
        """Retrieve a session by the identifier a client presented.

        Malformed identifiers are never looked up and yield None.
        """
        if not validate_identifier(identifier, self.identifier_bytes):
            logger.debug("Rejected malformed session identifier")
            return None

        session = await self.load(hash_identifier(identifier))
        if session is not None:
            session.attach_identifier(identifier)
        return session

    async def exists(self, hashed_key: str) -> bool:
        """Check if a valid session is stored under ``hashed_key``."""
        return await self.load(hashed_key) is not None

    async def save(self, session: Session) -> Optional[str]:
        """Persist a session and report the identifier its client must hold.

        See ``persist`` for what gets written.

        Args:
            session: The Session to persist.

        Returns:
            The identifier the client must present from now on, or None if
            the session was deleted.

        Raises:
            UnknownIdentifierError: If a live session loaded by hashed key
                alone would keep an identifier nobody here knows. Use
                ``persist`` for such sessions.
            StorageUnavailableError: If the backend cannot be reached.
            IdentifierCollisionError: If no free identifier could be found.
            SessionConflictError: If the stored session was rotated away or
                deleted meanwhile.
        """
        now = self.clock.now()
        if (
            session.identifier is None
            and not (session.is_destroyed or session.is_expired(now))
            and not self.renewal.is_due(session, now)
        ):
            raise UnknownIdentifierError(session.hashed_key)

        if not await self.persist(session):
            return None
        return session.identifier

    async def persist(self, session: Session) -> bool:
        """Write a session back to the store if needed.

        - Destroyed or expired sessions are deleted.
        - New sessions are always written.
        - Sessions due for renewal get a new identifier and expiry, and
          their record moves atomically to the new key.
        - Dirty sessions are rewritten under their current key, which must
          still exist.
        - Unchanged sessions are not written at all.

        Unlike ``save`` this accepts sessions loaded by hashed key alone.

        Returns:
            False if the session was deleted, True otherwise.

        Raises:
            StorageUnavailableError: If the backend cannot be reached.
            IdentifierCollisionError: If no free identifier could be found.
            SessionConflictError: If the stored session was rotated away or
                deleted meanwhile.
        """
        now = self.clock.now()

        if session.is_destroyed or session.is_expired(now):
            if session.persisted_key is not None:
                await self.destroy(session.persisted_key)
                logger.debug(
                    "Removed %s session: %s",
                    "destroyed" if session.is_destroyed else "expired",
                    short_key(session.persisted_key),
                )
            return False

        if session.is_new:
            await self._create(session)
        elif self.renewal.is_due(session, now):
            session.set_expiry(self.renewal.renewed_expiry(session, now))
            session.regenerate()
            await self._move(session)
        elif session.persisted_key != session.hashed_key:
            await self._move(session)
        elif session.dirty:
            await self._update(session.hashed_key, session.to_record())
            logger.debug("Updated session: %s", short_key(session.hashed_key))
        else:
            return True

        session.mark_persisted()
        return True

    async def _create(self, session: Session) -> None:
        for _ in range(self.max_id_retries):
            if await self._insert(session.hashed_key, session.to_record()):
                logger.debug("Created session: %s", short_key(session.hashed_key))
                return
            logger.warning(
                "Session key collision on %s, regenerating",
                short_key(session.hashed_key),
            )
            session.regenerate()
        raise IdentifierCollisionError(self.max_id_retries)

    async def _move(self, session: Session) -> None:
        old_key = session.persisted_key
        for _ in range(self.max_id_retries):
            if await self._rotate(old_key, session.hashed_key, session.to_record()):
                logger.debug(
                    "Rotated session %s -> %s",
                    short_key(old_key),
                    short_key(session.hashed_key),
                )
                return
            session.regenerate()
        raise IdentifierCollisionError(self.max_id_retries)

    async def close(self) -> None:
        """Close the storage connection.

        Override this method to clean up resources like database
        connections or connection pools.
        """
        pass

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
