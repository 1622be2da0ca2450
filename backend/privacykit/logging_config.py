"""
Logging setup for the PrivacyKit link service.

Every record carries the id of the HTTP request that produced it ("-" outside
a request), so the create/resolve/deactivate lines of one request can be
grepped together.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(request_id)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers held at WARNING unless something goes wrong
NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request id to the current context, generating a short one if missing."""
    rid = request_id or uuid.uuid4().hex[:8]
    request_id_var.set(rid)
    return rid


class RequestIdFilter(logging.Filter):
    """Stamp the current request id onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


def setup_logging(debug: bool = False) -> None:
    """Route all logging to stdout; DEBUG level when ``debug`` is set."""
    level = logging.DEBUG if debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    handler.addFilter(RequestIdFilter())

    root = logging.getLogger()
    root.setLevel(level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
