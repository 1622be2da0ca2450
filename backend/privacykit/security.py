"""
Security checks for link targets.
Refuses non-web schemes, credential-bearing URLs and blocked domains.
"""

import re
from typing import Iterable, Optional, Tuple
from urllib.parse import urlparse

from .logging_config import get_logger

logger = get_logger(__name__)

MAX_URL_LENGTH = 2048

ALLOWED_SCHEMES = {"http", "https"}

# URL with credentials, or null byte injection
BYPASS_PATTERNS = [
    re.compile(r"^https?://[^/?#]*@"),
    re.compile(r"^https?://.*\x00"),
]


def is_domain_blocked(domain: str, blocked: Iterable[str] = ()) -> bool:
    """Check if a domain, or a parent domain of it, is in the blocklist."""
    domain_lower = domain.lower()
    for blocked_domain in blocked:
        blocked_domain = blocked_domain.lower()
        if domain_lower == blocked_domain or domain_lower.endswith("." + blocked_domain):
            return True
    return False


def extract_host_from_url(url: str) -> Optional[str]:
    """Extract the host from a URL."""
    try:
        return urlparse(url).hostname
    except ValueError:
        return None


def validate_url_security(url: str, blocked_domains: Iterable[str] = ()) -> Tuple[bool, Optional[str]]:
    """
    Validate a link target.

    Returns:
        Tuple of (is_safe, error_message)
        If is_safe is True, error_message is None
    """
    if not url:
        return False, "URL is required"

    if len(url) > MAX_URL_LENGTH:
        return False, f"URL too long (max {MAX_URL_LENGTH} characters)"

    try:
        scheme = urlparse(url).scheme.lower()
    except ValueError:
        return False, "Invalid URL format"

    if scheme not in ALLOWED_SCHEMES:
        return False, "URL must use http or https"

    host = extract_host_from_url(url)
    if not host:
        return False, "Could not extract host from URL"

    url_lower = url.lower().strip()
    for pattern in BYPASS_PATTERNS:
        if pattern.match(url_lower):
            return False, "Invalid URL format"

    if is_domain_blocked(host, blocked_domains):
        logger.warning(f"Blocked domain attempted: {host}")
        return False, "This domain is not allowed"

    return True, None
