"""Short code allocation."""

import time
from typing import Callable, Optional, Protocol

from .errors import CodeGenerationError
from .utils import generate_short_code, to_base36
from .logging_config import get_logger

logger = get_logger(__name__)


class CodeLookup(Protocol):
    def code_exists(self, short_code: str) -> bool:
        ...


def _current_millis() -> int:
    return int(time.time() * 1000)


class ShortCodeGenerator:
    """Generate short codes that are not yet taken in the store.

    The existence check is advisory only; the store's unique constraint is
    what actually prevents two links from sharing a code.
    """

    FALLBACK_PREFIX_LENGTH = 2
    FALLBACK_SUFFIX_LENGTH = 4

    def __init__(
        self,
        store: CodeLookup,
        length: int = 6,
        max_attempts: int = 10,
        millis: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            store: Anything with ``code_exists(code) -> bool``
            length: Length of random codes
            max_attempts: Random codes to try before the timestamp fallback
            millis: Source of the current Unix time in milliseconds
        """
        self.store = store
        self.length = length
        self.max_attempts = max_attempts
        self.millis = millis or _current_millis

    def generate_unique_code(self) -> str:
        """Return a code that was free at the time of the check.

        Raises:
            CodeGenerationError: if both the random attempts and the
                timestamp-based fallback collide.
        """
        for _ in range(self.max_attempts):
            candidate = generate_short_code(self.length)
            if not self.store.code_exists(candidate):
                return candidate

        logger.warning(f"No free random code after {self.max_attempts} attempts, using timestamp fallback")
        candidate = self.fallback_code()
        if self.store.code_exists(candidate):
            logger.error("Failed to generate unique code after max attempts")
            raise CodeGenerationError("Failed to generate unique short code")
        return candidate

    def fallback_code(self) -> str:
        """Random prefix followed by the low-order base-36 digits of the current time."""
        prefix = generate_short_code(self.FALLBACK_PREFIX_LENGTH)
        stamp = to_base36(self.millis())[-self.FALLBACK_SUFFIX_LENGTH:]
        return prefix + stamp
