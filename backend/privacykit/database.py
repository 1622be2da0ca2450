from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

Base = declarative_base()

SQLITE_SYNCHRONOUS_LEVELS = ("OFF", "NORMAL", "FULL", "EXTRA")


def _is_memory_sqlite(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:")


def build_engine(database_url: str, synchronous: str = "FULL", echo: bool = False) -> Engine:
    """Create the engine behind a LinkStore.

    SQLite files get WAL journaling and the requested ``synchronous`` level on
    every connection, so each commit is flushed to disk page by page before
    the call returns. Any other URL (e.g. ``mysql+pymysql://``) is passed
    through with pre-ping enabled.
    """
    synchronous = synchronous.upper()
    if synchronous not in SQLITE_SYNCHRONOUS_LEVELS:
        raise ValueError(f"Invalid SQLite synchronous level: {synchronous}")

    if not database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,
            pool_recycle=3600,
        )

    if _is_memory_sqlite(database_url):
        # in-memory SQLite is per-connection; share one across threads
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )
    else:
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=echo,
        )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute(f"PRAGMA synchronous={synchronous}")
        finally:
            cursor.close()

    return engine
