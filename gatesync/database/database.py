"""Database engine, sessions and schema management."""

import logging
from pathlib import Path
from typing import Optional
from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from gatesync.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def make_engine(database_url: str) -> Engine:
    """Create an engine for ``database_url``.

    SQLite files get their parent directory created and a busy timeout so
    the sync jobs and the API can write concurrently. In-memory SQLite
    shares one connection so every session sees the same tables.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(database_url)

    options = {"connect_args": {"check_same_thread": False}}
    if url.database in (None, "", ":memory:"):
        options["poolclass"] = StaticPool
    else:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(database_url, **options)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA busy_timeout = 5000")
        cursor.close()

    return engine


def make_session_factory(bind: Engine) -> sessionmaker:
    """Session factory whose records stay readable after their session closes."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


engine = make_engine(settings.database_url)
SessionLocal = make_session_factory(engine)


def get_db():
    """Get database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Optional[Engine] = None):
    """Create any missing tables. Safe to call on every startup."""
    import gatesync.models  # noqa: F401  registers tables

    bind = bind or engine
    existing = set(inspect(bind).get_table_names())
    Base.metadata.create_all(bind=bind)
    created = set(inspect(bind).get_table_names()) - existing
    if created:
        logger.info(f"Created tables: {sorted(created)}")
    else:
        logger.info("Database schema up to date")


def drop_all_tables(bind: Optional[Engine] = None):
    """Drop every table. Deletes all local records."""
    logger.warning("Dropping all tables from database...")
    Base.metadata.drop_all(bind=bind or engine)


def reset_db(bind: Optional[Engine] = None):
    """Drop and recreate every table."""
    drop_all_tables(bind)
    init_db(bind)
    logger.info("Database reset complete")
