import secrets
import string
from typing import Optional
from datetime import datetime, timezone

BASE62_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
BASE36_ALPHABET = string.digits + string.ascii_lowercase


def generate_short_code(length: int = 6) -> str:
    """Generate a random short code from upper/lower letters and digits."""
    return ''.join(secrets.choice(BASE62_ALPHABET) for _ in range(length))


def to_base36(value: int) -> str:
    """Encode a non-negative integer in lowercase base 36."""
    if value < 0:
        raise ValueError("base36 encoding needs a non-negative integer")
    if value == 0:
        return "0"

    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return ''.join(reversed(digits))


def format_short_url(code: str, base_url: str) -> str:
    """Format a short code into a full URL."""
    return f"{base_url.rstrip('/')}/{code}"


def utc_now() -> datetime:
    """Return timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def truncate_to_millis(dt: datetime) -> datetime:
    """Drop sub-millisecond precision."""
    return dt.replace(microsecond=(dt.microsecond // 1000) * 1000)


def normalize_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to timezone-aware UTC (assume naive is UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_millis(dt: Optional[datetime]) -> Optional[str]:
    """Render a timestamp as ISO-8601 UTC with milliseconds, e.g. 2026-01-01T00:00:00.000Z."""
    dt = normalize_utc(dt)
    if dt is None:
        return None
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
