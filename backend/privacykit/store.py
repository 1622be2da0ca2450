"""
Durable short code -> link mapping.

All writes go through one process-wide lock (SQLite has no row-level
locking) and commit before returning. A resolve reads, decides and writes
inside that lock, so racing resolves cannot lose or double-count a click.
"""

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, Optional, Tuple

from sqlalchemy import select, update, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .database import Base, build_engine
from .errors import DuplicateCodeError, StorageError
from .lifecycle import Decision
from .models import Link, LinkRecord
from .logging_config import get_logger

logger = get_logger(__name__)


class LinkStore:
    """Link persistence on top of a SQLAlchemy engine."""

    def __init__(self, database_url: str, synchronous: str = "FULL", echo: bool = False):
        self.database_url = database_url
        self.engine = build_engine(database_url, synchronous=synchronous, echo=echo)
        self._sessions = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
        self._write_lock = threading.Lock()

    def init_schema(self) -> None:
        """Create the links table and its indexes if missing."""
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to create schema: {exc}") from exc

    @contextmanager
    def _read(self) -> Iterator[Session]:
        try:
            with self._sessions() as session:
                yield session
        except SQLAlchemyError as exc:
            raise StorageError(f"Database read failed: {exc}") from exc

    @contextmanager
    def _write(self) -> Iterator[Session]:
        """Serialized unit of work; commits on exit, rolls back on error."""
        with self._write_lock:
            with self._sessions.begin() as session:
                yield session

    def create(
        self,
        original_url: str,
        short_code: str,
        max_clicks: Optional[int],
        expires_at: Optional[datetime],
        created_at: datetime,
    ) -> int:
        """Insert a new active link with zero clicks and return its id."""
        link = Link(
            original_url=original_url,
            short_code=short_code,
            max_clicks=max_clicks,
            click_count=0,
            expires_at=expires_at,
            active=True,
            created_at=created_at,
        )
        try:
            with self._write() as session:
                session.add(link)
                session.flush()
                link_id = link.id
        except IntegrityError as exc:
            raise DuplicateCodeError(short_code) from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to insert link {short_code}: {exc}") from exc
        return link_id

    def get_by_code(self, short_code: str) -> Optional[LinkRecord]:
        """Point lookup; None when no link has this code."""
        with self._read() as session:
            row = session.execute(
                select(Link).where(Link.short_code == short_code)
            ).scalar_one_or_none()
            return LinkRecord.from_row(row) if row is not None else None

    def code_exists(self, short_code: str) -> bool:
        with self._read() as session:
            found = session.execute(
                select(Link.id).where(Link.short_code == short_code)
            ).first()
            return found is not None

    @staticmethod
    def _deactivate_stmt(link_id: int):
        return (
            update(Link)
            .where(Link.id == link_id, Link.active.is_(True))
            .values(active=False)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def _click_stmt(link_id: int, new_count: int, deactivate: bool):
        values = {"click_count": new_count}
        if deactivate:
            values["active"] = False
        return (
            update(Link)
            .where(
                Link.id == link_id,
                Link.active.is_(True),
                Link.click_count == new_count - 1,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    def deactivate(self, link_id: int) -> None:
        """Flip the active latch off. Deactivating an inactive link is a no-op."""
        try:
            with self._write() as session:
                changed = session.execute(self._deactivate_stmt(link_id)).rowcount
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to deactivate link {link_id}: {exc}") from exc
        if changed:
            logger.info(f"Deactivated link id={link_id}")

    def increment_and_maybe_deactivate(self, link_id: int, new_count: int, deactivate: bool) -> bool:
        """Record one click, moving click_count from new_count - 1 to new_count.

        Applied only while the link is still active and nobody else has
        counted a click since it was read. Returns False when that condition
        fails.
        """
        try:
            with self._write() as session:
                applied = session.execute(
                    self._click_stmt(link_id, new_count, deactivate)
                ).rowcount == 1
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to record click for link {link_id}: {exc}") from exc

        if applied and deactivate:
            logger.info(f"Link id={link_id} reached its click limit at {new_count} clicks")
        return applied

    def resolve(
        self,
        short_code: str,
        decide: Callable[[LinkRecord], Decision],
    ) -> Optional[Tuple[LinkRecord, Decision]]:
        """Read a link, decide on it and persist the outcome as one unit of work.

        ``decide`` is called with the row as it stands under the write lock,
        so every concurrent resolve sees the clicks counted before it.
        Returns the record that was decided on and the decision, or None when
        no link has this code.
        """
        try:
            with self._write() as session:
                while True:
                    row = session.execute(
                        select(Link)
                        .where(Link.short_code == short_code)
                        .execution_options(populate_existing=True)
                    ).scalar_one_or_none()
                    if row is None:
                        return None

                    record = LinkRecord.from_row(row)
                    decision = decide(record)

                    if not decision.allowed:
                        if decision.deactivate:
                            session.execute(self._deactivate_stmt(record.id))
                        break

                    stmt = self._click_stmt(record.id, decision.new_click_count, decision.deactivate)
                    if session.execute(stmt).rowcount == 1:
                        break
                    # Changed by another process between the read and the
                    # update. The failed UPDATE holds SQLite's write lock, so
                    # the next read is current.
                    logger.debug(f"Link {short_code} changed underneath a resolve, re-reading")
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to resolve link {short_code}: {exc}") from exc

        if decision.deactivate:
            logger.info(f"Deactivated link id={record.id}")
        return record, decision

    def health_check(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            logger.error(f"Database health check failed: {exc}")
            return False

    def close(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()
