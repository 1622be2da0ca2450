from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, Index, UniqueConstraint
from .database import Base
from .utils import normalize_utc


class Link(Base):
    """Model for storing shortened links."""

    __tablename__ = "links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    original_url = Column(Text, nullable=False)
    short_code = Column(String(20), nullable=False)
    max_clicks = Column(Integer, nullable=True)
    click_count = Column(Integer, default=0, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint('short_code', name='uq_links_short_code'),
        Index('idx_short_code', 'short_code'),
    )

    def __repr__(self):
        return f"<Link(code={self.short_code}, url={self.original_url[:50]}...)>"


@dataclass(frozen=True)
class LinkRecord:
    """Detached snapshot of a Link row, safe to hand to the lifecycle evaluator."""

    id: int
    original_url: str
    short_code: str
    max_clicks: Optional[int]
    click_count: int
    expires_at: Optional[datetime]
    active: bool
    created_at: datetime

    @classmethod
    def from_row(cls, row: Link) -> "LinkRecord":
        return cls(
            id=row.id,
            original_url=row.original_url,
            short_code=row.short_code,
            max_clicks=row.max_clicks,
            click_count=row.click_count or 0,
            expires_at=normalize_utc(row.expires_at),
            active=bool(row.active),
            created_at=normalize_utc(row.created_at),
        )
