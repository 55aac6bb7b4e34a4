"""Session renewal policy.

Renewal extends a session's lifetime and, at the same time, rotates its
identifier so that a previously leaked identifier stops working.

A policy decides two things for a valid session being saved:
1. Whether renewal is due (remaining lifetime inside the renewal window)
2. The new expiry if it is

Example:
    # 10 minute sessions, renewed during their last 2 minutes
    policy = RenewalPolicy(window=timedelta(minutes=2))
    session.expire_in(timedelta(minutes=10))
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from latch.session.session import Session


class SessionState(str, Enum):
    """Where a session stands at the start of a request."""

    FRESH = "fresh"
    VALID = "valid"
    EXPIRED = "expired"
    DESTROYED = "destroyed"


@dataclass(frozen=True)
class RenewalPolicy:
    """When and how far to extend a session's lifetime.

    Attributes:
        window: Renew once the remaining lifetime is at most this long.
        fraction: Renew once the remaining lifetime is at most this share of
            the renewal lifetime. Must be in (0, 1].
        lifetime: Lifetime granted on renewal. Defaults to the session's own
            ttl, as set by ``Session.expire_in``.

    With neither ``window`` nor ``fraction`` set, renewal is disabled.
    """

    window: Optional[timedelta] = None
    fraction: Optional[float] = None
    lifetime: Optional[timedelta] = None

    def __post_init__(self) -> None:
        if self.window is not None and self.window < timedelta(0):
            raise ValueError("renewal window must not be negative")
        if self.fraction is not None and not 0 < self.fraction <= 1:
            raise ValueError("renewal fraction must be in (0, 1]")
        if self.lifetime is not None and self.lifetime <= timedelta(0):
            raise ValueError("renewal lifetime must be positive")

    @classmethod
    def disabled(cls) -> "RenewalPolicy":
        """A policy that never renews."""
        return cls()

    @property
    def enabled(self) -> bool:
        return self.window is not None or self.fraction is not None

    def lifetime_for(self, session: "Session") -> Optional[timedelta]:
        """Lifetime granted to ``session`` on renewal, if known."""
        return self.lifetime if self.lifetime is not None else session.ttl

    def is_due(self, session: "Session", now: datetime) -> bool:
        """Check whether ``session`` should be renewed at ``now``.

        Sessions without expiry, without a known lifetime, or already
        expired are never due.
        """
        if not self.enabled or session.expiry is None:
            return False
        lifetime = self.lifetime_for(session)
        if lifetime is None:
            return False

        remaining = session.expiry - now
        if remaining <= timedelta(0):
            return False

        if self.window is not None and remaining <= self.window:
            return True
        if self.fraction is not None:
            return remaining <= lifetime * self.fraction
        return False

    def renewed_expiry(self, session: "Session", now: datetime) -> datetime:
        """Expiry to assign to ``session`` when renewing it at ``now``."""
        lifetime = self.lifetime_for(session)
        if lifetime is None:
            raise ValueError("session has no lifetime to renew")
        return now + lifetime


def classify(session: Optional["Session"], now: datetime) -> SessionState:
    """Classify a session looked up for an incoming request.

    ``None`` (nothing found) and brand-new sessions are FRESH.
    """
    if session is None or session.is_new:
        return SessionState.FRESH
    if session.is_destroyed:
        return SessionState.DESTROYED
    if session.is_expired(now):
        return SessionState.EXPIRED
    return SessionState.VALID
