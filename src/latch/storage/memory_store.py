"""In-memory session storage implementation.

This is the default storage backend, suitable for single-process deployments
or development/testing scenarios.
"""

import asyncio
import logging
from typing import Dict, Optional

from latch.core.exceptions import MalformedRecordError, SessionConflictError
from latch.core.serialization import SessionRecord, decode_record, encode_record
from latch.session.identifier import short_key
from latch.storage.base import SessionStore

logger = logging.getLogger(__name__)


class MemorySessionStore(SessionStore):
    """In-memory session storage.

    Records are kept as encoded JSON text, so a session read back from this
    store went through the same serialization as with any other backend.
    A single asyncio lock makes every primitive, including key rotation,
    atomic for other coroutines.

    Note: Sessions are lost when the process terminates.

    Example:
        store = MemorySessionStore()
        async with store:
            identifier = await store.save(session)
            session = await store.load_identifier(identifier)
    """

    backend_name = "memory"

    def __init__(self, **kwargs) -> None:
        """Initialize the in-memory store.

        Args:
            **kwargs: Common store settings, see SessionStore.
        """
        super().__init__(**kwargs)
        self._records: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def _read(self, hashed_key: str) -> Optional[SessionRecord]:
        async with self._lock:
            raw = self._records.get(hashed_key)
        if raw is None:
            return None
        return decode_record(raw)

    async def _insert(self, hashed_key: str, record: SessionRecord) -> bool:
        encoded = encode_record(record)
        async with self._lock:
            if hashed_key in self._records:
                return False
            self._records[hashed_key] = encoded
            return True

    async def _update(self, hashed_key: str, record: SessionRecord) -> None:
        encoded = encode_record(record)
        async with self._lock:
            if hashed_key not in self._records:
                raise SessionConflictError(hashed_key)
            self._records[hashed_key] = encoded

    async def _rotate(
        self,
        old_key: str,
        new_key: str,
        record: SessionRecord,
    ) -> bool:
        encoded = encode_record(record)
        async with self._lock:
            if new_key in self._records:
                return False
            if old_key not in self._records:
                raise SessionConflictError(old_key)
            del self._records[old_key]
            self._records[new_key] = encoded
            return True

    async def destroy(self, hashed_key: str) -> None:
        """Delete a session from memory.

        Args:
            hashed_key: The hashed key to delete.
        """
        async with self._lock:
            if self._records.pop(hashed_key, None) is not None:
                logger.debug("Deleted session: %s", short_key(hashed_key))

    async def cleanup_expired(self) -> int:
        """Remove expired and undecodable sessions.

        Returns:
            Number of sessions removed.
        """
        now = self.clock.now()
        count = 0
        async with self._lock:
            for key, raw in list(self._records.items()):
                try:
                    expired = decode_record(raw).is_expired(now)
                except MalformedRecordError:
                    expired = True
                if expired:
                    del self._records[key]
                    count += 1

        if count > 0:
            logger.debug("Cleaned up %d expired sessions", count)
        return count

    async def count(self) -> int:
        """Get the number of stored sessions, expired ones included.

        Returns:
            Number of sessions.
        """
        async with self._lock:
            return len(self._records)

    async def clear(self) -> None:
        """Remove all sessions."""
        async with self._lock:
            self._records.clear()
            logger.debug("Cleared all sessions")

    async def list_hashed_keys(self) -> list[str]:
        """List the hashed keys of all stored sessions.

        Returns:
            List of hashed keys, taken as one consistent snapshot.
        """
        async with self._lock:
            return list(self._records.keys())
