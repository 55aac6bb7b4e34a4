"""Session record serialization.

Stores persist a SessionRecord as JSON text. Payload values are restricted
to what JSON carries without loss, so whatever a store writes decodes back
to an equal payload with the same value types.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from latch.core.clock import ensure_utc
from latch.core.exceptions import MalformedRecordError

RECORD_VERSION = 1


@dataclass
class SessionRecord:
    """The persisted form of a session.

    Attributes:
        data: Application payload.
        expiry: Optional expiry timestamp (aware UTC).
        ttl: Lifetime last requested for the session, used for renewal.
    """

    data: Dict[str, Any] = field(default_factory=dict)
    expiry: Optional[datetime] = None
    ttl: Optional[timedelta] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expiry is not None and self.expiry <= now

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to a JSON-compatible dictionary."""
        return {
            "v": RECORD_VERSION,
            "data": self.data,
            "expiry": self.expiry.isoformat() if self.expiry else None,
            "ttl": self.ttl.total_seconds() if self.ttl is not None else None,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SessionRecord":
        """Create a SessionRecord from its dictionary form.

        Raises:
            MalformedRecordError: If required fields are missing or invalid.
        """
        if not isinstance(raw, dict):
            raise MalformedRecordError(f"expected object, got {type(raw).__name__}")
        if raw.get("v") != RECORD_VERSION:
            raise MalformedRecordError(f"unsupported record version {raw.get('v')!r}")

        data = raw.get("data")
        if not isinstance(data, dict):
            raise MalformedRecordError("payload is not an object")

        try:
            expiry = (
                ensure_utc(datetime.fromisoformat(raw["expiry"]))
                if raw.get("expiry")
                else None
            )
            ttl = (
                timedelta(seconds=float(raw["ttl"]))
                if raw.get("ttl") is not None
                else None
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedRecordError(str(e)) from e

        return cls(data=data, expiry=expiry, ttl=ttl)


def encode_record(record: SessionRecord) -> str:
    """Serialize a record to JSON text."""
    return json.dumps(record.to_dict(), separators=(",", ":"), allow_nan=False)


def decode_record(raw: Any) -> SessionRecord:
    """Parse JSON text (or bytes) produced by ``encode_record``.

    Raises:
        MalformedRecordError: If the text is not a valid record.
    """
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedRecordError(str(e)) from e
    return SessionRecord.from_dict(parsed)


def check_serializable(value: Any) -> Optional[str]:
    """Return why ``value`` cannot round-trip through JSON, or None if it can."""
    try:
        text = json.dumps(value, allow_nan=False)
    except (TypeError, ValueError) as e:
        return str(e)
    if not _same_shape(value, json.loads(text)):
        return "value does not survive JSON round trip unchanged"
    return None


def _same_shape(original: Any, restored: Any) -> bool:
    # bool is an int subclass; compare exact types so True never becomes 1
    if type(original) is not type(restored):
        return False
    if isinstance(original, dict):
        return original.keys() == restored.keys() and all(
            _same_shape(original[k], restored[k]) for k in original
        )
    if isinstance(original, list):
        return len(original) == len(restored) and all(
            _same_shape(a, b) for a, b in zip(original, restored)
        )
    return original == restored
