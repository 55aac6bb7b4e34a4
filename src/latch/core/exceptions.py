"""Latch exceptions.

This module defines all custom exceptions used throughout Latch.

Not-found and expired sessions are never exceptions: stores return None
for them.
"""


class LatchError(Exception):
    """Base exception for all Latch errors."""

    pass


class IdentifierError(LatchError):
    """Base exception for identifier-related errors."""

    pass


class IdentifierGenerationError(IdentifierError):
    """Raised when the system random source cannot produce an identifier.

    This is fatal for the current request. There is no fallback to a
    weaker random source.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Failed to generate session identifier: {reason}")


class HashingError(IdentifierError):
    """Raised when an identifier cannot be hashed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Failed to hash session identifier: {reason}")


class InvalidIdentifierError(IdentifierError):
    """Raised when a client-supplied identifier has the wrong shape."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Session identifier has length {actual}, expected {expected} "
            f"base64url characters"
        )


class IdentifierCollisionError(IdentifierError):
    """Raised when every generated identifier was already taken."""

    def __init__(self, maximum: int) -> None:
        self.maximum = maximum
        super().__init__(
            f"No free session identifier found after {maximum} attempts"
        )


class SessionError(LatchError):
    """Base exception for session-related errors."""

    pass


class SessionDataError(SessionError):
    """Raised when a payload value cannot be stored in a session."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Cannot store session value '{key}': {reason}")


class SessionConflictError(SessionError):
    """Raised when a stored session vanished under a pending write.

    This happens when another request destroyed the session, or moved it
    to a new identifier, after this one loaded it.
    """

    def __init__(self, hashed_key: str) -> None:
        self.hashed_key = hashed_key
        super().__init__(
            f"Session {hashed_key[:12]} was removed or rotated concurrently"
        )


class UnknownIdentifierError(SessionError):
    """Raised when saving a session whose client identifier is unknown.

    Sessions loaded by hashed key alone carry no identifier, so ``save``
    has nothing to report back. ``SessionStore.persist`` writes them.
    """

    def __init__(self, hashed_key: str) -> None:
        self.hashed_key = hashed_key
        super().__init__(
            f"Session {hashed_key[:12]} has no known identifier to return"
        )


class StorageError(LatchError):
    """Base exception for storage-related errors."""

    retryable: bool = False


class StorageUnavailableError(StorageError):
    """Raised when the storage backend cannot be reached.

    The error is transient. Latch never retries internally; callers decide
    their own retry policy.
    """

    retryable = True

    def __init__(self, backend: str, reason: str) -> None:
        self.backend = backend
        self.reason = reason
        super().__init__(f"{backend} storage unavailable: {reason}")


class MalformedRecordError(StorageError):
    """Raised when a stored session record cannot be decoded."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Malformed session record: {reason}")


class ConfigError(LatchError):
    """Raised when configuration is invalid."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Invalid configuration: {message}")
