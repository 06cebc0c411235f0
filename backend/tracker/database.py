"""Database engine and sessions.

The sync engine, the Celery worker and the HTTP endpoints all use a sync Session.
"""

from __future__ import annotations

from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from .config import settings


def _is_sqlite(url: URL) -> bool:
    return url.drivername.startswith("sqlite")


raw_url: URL = make_url(settings.database_url)

if _is_sqlite(raw_url):
    # NullPool so each thread gets its own connection; timeout is in seconds at the driver level.
    timeout_s = max(0.0, float(settings.sqlite_busy_timeout_ms) / 1000.0)
    engine = create_engine(
        raw_url,
        connect_args={"check_same_thread": False, "timeout": timeout_s},
        poolclass=NullPool,
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        """
        WAL lets readers proceed while the sync writer holds a transaction;
        busy_timeout waits for locks instead of failing immediately.
        """
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute(f"PRAGMA busy_timeout={int(settings.sqlite_busy_timeout_ms)};")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()
else:
    # Plain postgresql:// URLs use psycopg 3.
    url = raw_url
    if url.drivername == "postgresql":
        url = url.set(drivername="postgresql+psycopg")
    engine = create_engine(
        url,
        pool_pre_ping=True,
        pool_size=max(1, settings.db_pool_size),
        max_overflow=max(0, settings.db_max_overflow),
        pool_timeout=max(1, settings.db_pool_timeout_s),
        pool_recycle=max(0, settings.db_pool_recycle_s),
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """
    Create tables on SQLite for local dev.

    Postgres schema is managed via Alembic.
    """
    if not _is_sqlite(raw_url):
        return
    from .models import Base
    Base.metadata.create_all(bind=engine)


def get_sync_db() -> Generator:
    """Dependency that yields a DB session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
