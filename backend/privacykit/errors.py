"""
Error taxonomy for the link service.

Denials (inactive, expired, click limit) are not errors; they are returned
as data by LinkService.resolve_link. Everything here propagates to the HTTP
boundary, which maps it to a status code.
"""


class LinkServiceError(Exception):
    """Base class for all link service failures."""


class ValidationError(LinkServiceError):
    """Bad input from the caller."""


class NotFoundError(LinkServiceError):
    """No link exists for the requested short code."""

    def __init__(self, short_code: str):
        super().__init__(f"Short code not found: {short_code}")
        self.short_code = short_code


class DuplicateCodeError(LinkServiceError):
    """The store rejected an insert because the short code already exists."""

    def __init__(self, short_code: str):
        super().__init__(f"Short code already exists: {short_code}")
        self.short_code = short_code


class CodeGenerationError(LinkServiceError):
    """No free short code could be produced."""


class StorageError(LinkServiceError):
    """The backing database failed to read or persist a change."""
