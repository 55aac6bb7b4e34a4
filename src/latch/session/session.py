"""Session entity.

This module defines the Session class: an identifier bound to a mutable
payload with an optional expiry, plus the change tracking stores rely on to
persist only what changed.

Change tracking is conservative. Every call to ``set``, ``remove`` or an
expiry mutator marks the session dirty, even if the value did not change.

Example:
    session = Session({"role": "guest"})
    assert session.is_new and not session.dirty

    session.set("role", "admin")
    assert session.dirty
"""

import copy
from datetime import datetime, timedelta
from typing import Any, Dict, Iterator, Optional, Union

from latch.core.clock import Clock, default_clock, ensure_utc
from latch.core.exceptions import SessionDataError
from latch.core.serialization import SessionRecord, check_serializable
from latch.session.identifier import (
    IDENTIFIER_BYTES,
    generate_identifier,
    hash_identifier,
    short_key,
    verify_identifier,
)

Duration = Union[timedelta, int, float]


def _as_timedelta(duration: Duration) -> timedelta:
    if isinstance(duration, timedelta):
        return duration
    return timedelta(seconds=duration)


class Session:
    """A server-side session.

    Attributes:
        identifier: Client-visible identifier. ``None`` when the session was
            loaded by hashed key alone.
        hashed_key: Store lookup key derived from the identifier.
        expiry: Optional expiry timestamp; ``None`` means no expiry.
        ttl: Lifetime last set through ``expire_in``.
        dirty: True if payload or expiry changed since the last save.
        is_new: True if the session has never been persisted.
        is_destroyed: True once ``destroy`` was called.
    """

    def __init__(
        self,
        data: Optional[Dict[str, Any]] = None,
        *,
        clock: Optional[Clock] = None,
        identifier_bytes: int = IDENTIFIER_BYTES,
    ) -> None:
        """Create a fresh session with a newly generated identifier.

        Args:
            data: Initial payload. Values must be JSON-compatible.
            clock: Time source for expiry math. Defaults to the system clock.
            identifier_bytes: Entropy of generated identifiers.
        """
        self._clock = clock or default_clock()
        self._identifier_bytes = identifier_bytes
        self._identifier: Optional[str] = generate_identifier(identifier_bytes)
        self._hashed_key = hash_identifier(self._identifier)
        self._persisted_key: Optional[str] = None

        self._data: Dict[str, Any] = {}
        for key, value in (data or {}).items():
            self._data[key] = self._checked(key, value)

        self._expiry: Optional[datetime] = None
        self._ttl: Optional[timedelta] = None
        self._dirty = False
        self._expiry_changed = False
        self._destroyed = False

    @classmethod
    def from_record(
        cls,
        hashed_key: str,
        record: SessionRecord,
        *,
        clock: Optional[Clock] = None,
        identifier_bytes: int = IDENTIFIER_BYTES,
    ) -> "Session":
        """Rebuild a persisted session. Used by session stores.

        The result is neither new nor dirty, and has no identifier until
        ``attach_identifier`` is called.
        """
        session = cls.__new__(cls)
        session._clock = clock or default_clock()
        session._identifier_bytes = identifier_bytes
        session._identifier = None
        session._hashed_key = hashed_key
        session._persisted_key = hashed_key
        session._data = record.data
        session._expiry = record.expiry
        session._ttl = record.ttl
        session._dirty = False
        session._expiry_changed = False
        session._destroyed = False
        return session

    def to_record(self) -> SessionRecord:
        """Snapshot the persistable state of this session."""
        return SessionRecord(
            data=copy.deepcopy(self._data),
            expiry=self._expiry,
            ttl=self._ttl,
        )

    def __repr__(self) -> str:
        return (
            f"Session(key={short_key(self._hashed_key)}, new={self.is_new}, "
            f"dirty={self._dirty}, expiry={self._expiry})"
        )

    # =========================================================================
    # Identity
    # =========================================================================

    @property
    def identifier(self) -> Optional[str]:
        return self._identifier

    @property
    def hashed_key(self) -> str:
        return self._hashed_key

    @property
    def persisted_key(self) -> Optional[str]:
        """Hashed key the stored record currently lives under, if any."""
        return self._persisted_key

    @property
    def is_new(self) -> bool:
        return self._persisted_key is None

    @property
    def identifier_bytes(self) -> int:
        return self._identifier_bytes

    @property
    def clock(self) -> Clock:
        return self._clock

    def attach_identifier(self, identifier: str) -> None:
        """Bind the client identifier a loaded session was looked up with.

        Raises:
            ValueError: If ``identifier`` does not hash to this session's key.
        """
        if not verify_identifier(identifier, self._hashed_key):
            raise ValueError("identifier does not match session key")
        self._identifier = identifier

    def regenerate(self) -> None:
        """Issue a new identifier for this session.

        The stored record is moved to the new key on the next save, and the
        old identifier stops resolving.
        """
        self._identifier = generate_identifier(self._identifier_bytes)
        self._hashed_key = hash_identifier(self._identifier)
        self._dirty = True

    # =========================================================================
    # Payload
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """Get a payload value.

        Containers are returned as copies; write changes back with ``set``.
        """
        if key not in self._data:
            return default
        value = self._data[key]
        if isinstance(value, (dict, list)):
            return copy.deepcopy(value)
        return value

    def set(self, key: str, value: Any) -> None:
        """Set a payload value and mark the session dirty.

        Raises:
            SessionDataError: If the key is not a string or the value does
                not survive serialization unchanged.
        """
        self._data[key] = self._checked(key, value)
        self._dirty = True

    def remove(self, key: str) -> Any:
        """Remove a payload value and mark the session dirty.

        Returns:
            The removed value, or None if the key was absent.
        """
        self._dirty = True
        return self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data.keys())

    @property
    def data(self) -> Dict[str, Any]:
        """A copy of the whole payload."""
        return copy.deepcopy(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))

    @staticmethod
    def _checked(key: Any, value: Any) -> Any:
        if not isinstance(key, str):
            raise SessionDataError(str(key), "keys must be strings")
        reason = check_serializable(value)
        if reason is not None:
            raise SessionDataError(key, reason)
        return copy.deepcopy(value)

    # =========================================================================
    # Expiry
    # =========================================================================

    @property
    def expiry(self) -> Optional[datetime]:
        return self._expiry

    @property
    def ttl(self) -> Optional[timedelta]:
        return self._ttl

    def expire_in(self, duration: Duration) -> None:
        """Expire the session ``duration`` from now.

        Args:
            duration: A timedelta or a number of seconds. Zero expires the
                session at once; negative durations are rejected.
        """
        ttl = _as_timedelta(duration)
        if ttl < timedelta(0):
            raise ValueError("session lifetime must not be negative")
        self._ttl = ttl
        self._set_expiry(self._clock.now() + ttl)

    def set_expiry(self, when: datetime) -> None:
        """Expire the session at an absolute time."""
        self._set_expiry(ensure_utc(when))

    def clear_expiry(self) -> None:
        """Let the session live until explicitly destroyed."""
        self._ttl = None
        self._set_expiry(None)

    def _set_expiry(self, when: Optional[datetime]) -> None:
        self._expiry = when
        self._dirty = True
        self._expiry_changed = True

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the session has expired.

        Returns:
            True if an expiry is set and it is at or before ``now``.
        """
        if self._expiry is None:
            return False
        return self._expiry <= (now or self._clock.now())

    def expires_in(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        """Remaining lifetime, or None if the session never expires."""
        if self._expiry is None:
            return None
        return max(self._expiry - (now or self._clock.now()), timedelta(0))

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def expiry_changed(self) -> bool:
        """True if the expiry changed since the last save."""
        return self._expiry_changed

    def destroy(self) -> None:
        """Mark the session for deletion.

        The stored record is removed when the session is next saved.
        """
        self._destroyed = True

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    def mark_persisted(self) -> None:
        """Reset change tracking after a successful save. Used by stores."""
        self._persisted_key = self._hashed_key
        self._dirty = False
        self._expiry_changed = False
