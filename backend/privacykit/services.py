"""
The link service: creating expiring links and resolving them.

Creation validates input, picks a code and inserts the row. Resolution asks
the store to run the lifecycle decision and its side effects as one unit and
translates the outcome into a redirect target or a denial.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Union

from .errors import DuplicateCodeError, NotFoundError, ValidationError
from .lifecycle import DenialReason, evaluate
from .models import LinkRecord
from .security import validate_url_security
from .shortcode import ShortCodeGenerator
from .store import LinkStore
from .utils import utc_now, truncate_to_millis
from .logging_config import get_logger

logger = get_logger(__name__)

# A store-level duplicate is retried once with a fresh code, then surfaces.
CREATE_ATTEMPTS = 2


@dataclass(frozen=True)
class CreatedLink:
    short_code: str
    expires_at: Optional[datetime]
    max_clicks: Optional[int]
    created_at: datetime


@dataclass(frozen=True)
class RedirectTarget:
    original_url: str
    click_count: int


@dataclass(frozen=True)
class DenialInfo:
    short_code: str
    reason: DenialReason
    expires_at: Optional[datetime] = None
    max_clicks: Optional[int] = None

    @classmethod
    def for_record(cls, reason: DenialReason, record: LinkRecord) -> "DenialInfo":
        return cls(
            short_code=record.short_code,
            reason=reason,
            expires_at=record.expires_at if reason is DenialReason.TIME_EXPIRED else None,
            max_clicks=record.max_clicks if reason is DenialReason.CLICK_LIMIT_REACHED else None,
        )


ResolveResult = Union[RedirectTarget, DenialInfo]


def _validate_max_clicks(max_clicks) -> Optional[int]:
    if max_clicks is None:
        return None
    if isinstance(max_clicks, bool) or not isinstance(max_clicks, int):
        raise ValidationError("max_clicks must be a whole number")
    if max_clicks < 1:
        raise ValidationError("max_clicks must be at least 1")
    return max_clicks


def _compute_expiry(created_at: datetime, expiry_hours) -> Optional[datetime]:
    """created_at + expiry_hours, or None when no positive expiry was asked for."""
    if expiry_hours is None:
        return None
    if isinstance(expiry_hours, bool) or not isinstance(expiry_hours, (int, float)):
        raise ValidationError("expiry_hours must be a number")
    if not math.isfinite(expiry_hours):
        raise ValidationError("expiry_hours must be a finite number")
    if expiry_hours <= 0:
        return None
    try:
        return created_at + timedelta(milliseconds=math.floor(expiry_hours * 60 * 60 * 1000))
    except OverflowError as exc:
        raise ValidationError("expiry_hours is too large") from exc


class LinkService:
    """Create and resolve expiring links."""

    def __init__(
        self,
        store: LinkStore,
        generator: Optional[ShortCodeGenerator] = None,
        clock: Callable[[], datetime] = utc_now,
        blocked_domains: Iterable[str] = (),
    ):
        self.store = store
        self.generator = generator or ShortCodeGenerator(store)
        self.clock = clock
        self.blocked_domains = tuple(blocked_domains)

    def create_link(
        self,
        original_url: Optional[str],
        expiry_hours: Optional[float] = None,
        max_clicks: Optional[int] = None,
    ) -> CreatedLink:
        """
        Create a new shortened link.

        Non-positive expiry_hours means the link never expires by time.

        Raises:
            ValidationError: missing or unsafe URL, bad expiry or click limit
            CodeGenerationError: no free short code could be found
            DuplicateCodeError: the store rejected two codes in a row
            StorageError: the insert could not be persisted
        """
        if not isinstance(original_url, str) or not original_url.strip():
            raise ValidationError("original_url is required")

        is_safe, error = validate_url_security(original_url, self.blocked_domains)
        if not is_safe:
            raise ValidationError(error or "URL failed security validation")

        max_clicks = _validate_max_clicks(max_clicks)
        created_at = truncate_to_millis(self.clock())
        expires_at = _compute_expiry(created_at, expiry_hours)

        for attempt in range(CREATE_ATTEMPTS):
            short_code = self.generator.generate_unique_code()
            try:
                self.store.create(
                    original_url=original_url,
                    short_code=short_code,
                    max_clicks=max_clicks,
                    expires_at=expires_at,
                    created_at=created_at,
                )
            except DuplicateCodeError:
                if attempt == CREATE_ATTEMPTS - 1:
                    logger.error(f"Short code collision persisted after {CREATE_ATTEMPTS} attempts")
                    raise
                logger.info(f"Race condition: code {short_code} taken before insert, regenerating")
                continue

            logger.info(f"Created link: {short_code} -> {original_url[:50]}...")
            return CreatedLink(
                short_code=short_code,
                expires_at=expires_at,
                max_clicks=max_clicks,
                created_at=created_at,
            )

        raise DuplicateCodeError(short_code)

    def resolve_link(self, short_code: str) -> ResolveResult:
        """
        Decide whether a short code redirects, applying the click or
        deactivation that goes with the decision.

        Returns RedirectTarget on success or DenialInfo when the link may no
        longer be used. Raises NotFoundError for unknown codes.
        """
        outcome = self.store.resolve(short_code, lambda record: evaluate(record, self.clock()))
        if outcome is None:
            logger.warning(f"Short code not found: {short_code}")
            raise NotFoundError(short_code)

        record, decision = outcome
        if not decision.allowed:
            logger.info(f"Denied {short_code}: {decision.reason.value}")
            return DenialInfo.for_record(decision.reason, record)

        return RedirectTarget(
            original_url=record.original_url,
            click_count=decision.new_click_count,
        )

    def get_link(self, short_code: str) -> LinkRecord:
        """Read a link's current state without counting a click."""
        record = self.store.get_by_code(short_code)
        if record is None:
            raise NotFoundError(short_code)
        return record
