"""Session identifier generation, hashing and validation.

Identifiers are the values clients hold (typically in a cookie). Stores
never see them: every lookup goes through ``hash_identifier``, so a leaked
store does not yield identifiers an attacker could present.

Example:
    identifier = generate_identifier()
    key = hash_identifier(identifier)
    assert verify_identifier(identifier, key)
"""

import hashlib
import hmac
import re
import secrets

from latch.core.exceptions import (
    HashingError,
    IdentifierGenerationError,
    InvalidIdentifierError,
)

# Default entropy per identifier, in bytes
IDENTIFIER_BYTES = 32

# Never accept less than 128 bits
MIN_IDENTIFIER_BYTES = 16

HASHED_KEY_LENGTH = 64

_HASH_PERSON = b"latch-session"
_IDENTIFIER_ALPHABET = re.compile(r"[A-Za-z0-9_-]+")


def identifier_length(nbytes: int = IDENTIFIER_BYTES) -> int:
    """Length of the unpadded base64url encoding of ``nbytes`` bytes."""
    return (4 * nbytes + 2) // 3


def generate_identifier(nbytes: int = IDENTIFIER_BYTES) -> str:
    """Generate a new random session identifier.

    Args:
        nbytes: Number of random bytes. Must be at least 16.

    Returns:
        An unpadded base64url string of ``identifier_length(nbytes)`` chars.

    Raises:
        ValueError: If ``nbytes`` is below the minimum.
        IdentifierGenerationError: If the system random source fails.
    """
    if nbytes < MIN_IDENTIFIER_BYTES:
        raise ValueError(
            f"Session identifiers need at least {MIN_IDENTIFIER_BYTES} bytes, "
            f"got {nbytes}"
        )
    try:
        return secrets.token_urlsafe(nbytes)
    except (NotImplementedError, OSError) as e:
        raise IdentifierGenerationError(str(e)) from e


def hash_identifier(identifier: str) -> str:
    """Derive the store lookup key for an identifier.

    Args:
        identifier: A client-visible session identifier.

    Returns:
        64 lowercase hex characters (BLAKE2b, 256-bit digest).

    Raises:
        HashingError: If ``identifier`` is not a string.
    """
    if not isinstance(identifier, str):
        raise HashingError(f"expected str, got {type(identifier).__name__}")
    digest = hashlib.blake2b(
        identifier.encode("utf-8"),
        digest_size=32,
        person=_HASH_PERSON,
    )
    return digest.hexdigest()


def validate_identifier(value: object, nbytes: int = IDENTIFIER_BYTES) -> bool:
    """Check that ``value`` looks like an identifier we could have issued."""
    return (
        isinstance(value, str)
        and len(value) == identifier_length(nbytes)
        and _IDENTIFIER_ALPHABET.fullmatch(value) is not None
    )


def parse_identifier(value: str, nbytes: int = IDENTIFIER_BYTES) -> str:
    """Return ``value`` unchanged if it is a well-formed identifier.

    Raises:
        InvalidIdentifierError: If the length or alphabet is wrong.
    """
    expected = identifier_length(nbytes)
    if not validate_identifier(value, nbytes):
        actual = len(value) if isinstance(value, str) else 0
        raise InvalidIdentifierError(expected, actual)
    return value


def verify_identifier(identifier: str, hashed_key: str) -> bool:
    """Constant-time check that ``identifier`` hashes to ``hashed_key``."""
    return hmac.compare_digest(hash_identifier(identifier), hashed_key)


def short_key(hashed_key: str) -> str:
    """Shortened hashed key for log lines."""
    return hashed_key[:12]
