"""Latch session model.

This module provides the session entity, identifier handling and the
renewal policy.
"""

from latch.session.identifier import (
    IDENTIFIER_BYTES,
    generate_identifier,
    hash_identifier,
    parse_identifier,
    validate_identifier,
    verify_identifier,
)
from latch.session.renewal import RenewalPolicy, SessionState, classify
from latch.session.session import Session

__all__ = [
    "Session",
    "RenewalPolicy",
    "SessionState",
    "classify",
    "IDENTIFIER_BYTES",
    "generate_identifier",
    "hash_identifier",
    "parse_identifier",
    "validate_identifier",
    "verify_identifier",
]
