"""Latch core module.

This module provides the pieces shared by sessions and stores:
- Custom exceptions
- Clocks for expiry math
- Session record serialization
"""

from latch.core.clock import Clock, ManualClock, SystemClock
from latch.core.exceptions import (
    ConfigError,
    HashingError,
    IdentifierCollisionError,
    IdentifierError,
    IdentifierGenerationError,
    InvalidIdentifierError,
    LatchError,
    MalformedRecordError,
    SessionConflictError,
    SessionDataError,
    SessionError,
    StorageError,
    StorageUnavailableError,
    UnknownIdentifierError,
)
from latch.core.serialization import SessionRecord, decode_record, encode_record

__all__ = [
    # Exceptions
    "LatchError",
    "IdentifierError",
    "IdentifierGenerationError",
    "HashingError",
    "InvalidIdentifierError",
    "IdentifierCollisionError",
    "SessionError",
    "SessionDataError",
    "SessionConflictError",
    "UnknownIdentifierError",
    "StorageError",
    "StorageUnavailableError",
    "MalformedRecordError",
    "ConfigError",
    # Clocks
    "Clock",
    "SystemClock",
    "ManualClock",
    # Serialization
    "SessionRecord",
    "encode_record",
    "decode_record",
]
