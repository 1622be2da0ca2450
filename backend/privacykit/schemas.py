from pydantic import BaseModel, Field, field_validator
from typing import Optional


class CreateLinkRequest(BaseModel):
    """Request schema for creating a short link."""

    # Optional here so a missing URL is reported by the service as a 400
    original_url: Optional[str] = Field(None, description="The URL to shorten")
    expiry_hours: Optional[float] = Field(
        None,
        description="Hours until the link expires; zero or negative means no time limit"
    )
    max_clicks: Optional[int] = Field(
        None,
        description="Number of redirects allowed before the link is deactivated"
    )

    @field_validator('expiry_hours', 'max_clicks', mode='before')
    @classmethod
    def blank_as_missing(cls, v):
        # HTML forms send "" for untouched inputs
        if isinstance(v, str) and not v.strip():
            return None
        return v


class CreateLinkResponse(BaseModel):
    """Response schema for a created short link."""

    short_code: str
    short_url: str
    expires_at: Optional[str] = Field(None, description="ISO-8601 UTC timestamp with milliseconds")
    max_clicks: Optional[int] = None


class DenialResponse(BaseModel):
    """Body of a 410 answer for a link that can no longer be used."""

    error: str
    message: str
    reason: str
    detail: str
    expired_at: Optional[str] = None
    max_clicks: Optional[int] = None
    home_url: str


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: bool
    version: str
