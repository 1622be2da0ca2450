"""
Redirect-or-deny policy for a single link.

evaluate() is pure: it looks at a LinkRecord snapshot and the current time
and says what should happen. Persisting the outcome is the caller's job.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .models import LinkRecord


class DenialReason(str, Enum):
    ALREADY_INACTIVE = "already_inactive"
    TIME_EXPIRED = "time_expired"
    CLICK_LIMIT_REACHED = "click_limit_reached"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenialReason] = None
    # Deny: latch the link off. Allow: latch it off together with this click.
    deactivate: bool = False
    new_click_count: Optional[int] = None

    @classmethod
    def deny(cls, reason: DenialReason, deactivate: bool = False) -> "Decision":
        return cls(allowed=False, reason=reason, deactivate=deactivate)

    @classmethod
    def allow(cls, new_click_count: int, deactivate: bool) -> "Decision":
        return cls(allowed=True, deactivate=deactivate, new_click_count=new_click_count)


def is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    # strict: a request at the exact expiry instant is still served
    return expires_at is not None and now > expires_at


def max_clicks_exceeded(max_clicks: Optional[int], click_count: int) -> bool:
    # max_clicks None means unlimited
    if max_clicks is None:
        return False
    return click_count >= max_clicks


def evaluate(record: LinkRecord, now: datetime) -> Decision:
    """Decide whether ``record`` may be redirected through at ``now``.

    Checks run in a fixed order: the active latch, then time expiry, then the
    click limit. The first one that trips determines the reported reason.
    """
    if not record.active:
        return Decision.deny(DenialReason.ALREADY_INACTIVE)

    if is_expired(record.expires_at, now):
        return Decision.deny(DenialReason.TIME_EXPIRED, deactivate=True)

    if max_clicks_exceeded(record.max_clicks, record.click_count):
        return Decision.deny(DenialReason.CLICK_LIMIT_REACHED, deactivate=True)

    new_count = record.click_count + 1
    return Decision.allow(new_count, deactivate=max_clicks_exceeded(record.max_clicks, new_count))
