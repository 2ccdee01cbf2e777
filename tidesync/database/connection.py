"""
Database connection management for tidesync.

Provides SQLAlchemy engine and session factories. The scheduling engine
never holds a session open between commands: every store call opens a
session, commits and closes it, so reads always observe the latest
committed write.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional, Tuple

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session

from tidesync.config import get_config, TidesyncConfig
from tidesync.exceptions import PersistenceFailure

logger = logging.getLogger(__name__)


def get_db_path(config: Optional[TidesyncConfig] = None) -> Path:
    """
    Get the database file path.

    Args:
        config: tidesync configuration (uses global if not provided)

    Returns:
        Path to the SQLite database file
    """
    if config is None:
        config = get_config()

    # Extract path from database_url (sqlite:///path)
    db_url = config.database_url
    if db_url.startswith("sqlite:///"):
        return Path(db_url[10:])

    # Default fallback
    return config.data_dir / "tidesync.db"


def create_db_engine(database_url: str) -> Engine:
    """
    Create a SQLAlchemy engine for a database URL.

    SQLite URLs get cross-thread access and a busy timeout, since the
    CLI may write overrides while the daemon holds the same file open.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        Configured SQLAlchemy engine
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={
                "check_same_thread": False,  # Allow cross-thread access
                "timeout": 30,  # Busy timeout in seconds
            },
            echo=False,
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            """Enable SQLite foreign key support."""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(database_url, pool_pre_ping=True, echo=False)


def create_session_factory(engine: Engine) -> sessionmaker:
    """
    Create a session factory bound to an engine.

    Args:
        engine: SQLAlchemy engine

    Returns:
        Session factory
    """
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Open a session from ``factory``, commit on success, roll back on error.

    Usage:
        with session_scope(factory) as session:
            session.add(row)

    Args:
        factory: Session factory

    Yields:
        SQLAlchemy Session
    """
    session = factory()

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """
    Create all database tables.

    Args:
        engine: Engine to create tables on
    """
    from tidesync.database.models import Base

    Base.metadata.create_all(bind=engine)
    logger.debug("Database tables created")


def open_database(config: Optional[TidesyncConfig] = None) -> Tuple[Engine, sessionmaker]:
    """
    Open the database named by a configuration, creating tables as needed.

    The caller owns the returned engine and should dispose it when done.

    Args:
        config: tidesync configuration (uses global if not provided)

    Returns:
        The engine and a session factory bound to it
    """
    if config is None:
        config = get_config()

    # Ensure database directory exists
    if config.database_url.startswith("sqlite:///"):
        get_db_path(config).parent.mkdir(parents=True, exist_ok=True)

    engine = create_db_engine(config.database_url)
    try:
        create_tables(engine)
    except SQLAlchemyError as e:
        engine.dispose()
        raise PersistenceFailure(f"Cannot open database {config.database_url}: {e}") from e
    logger.debug(f"Database opened: {config.database_url}")
    return engine, create_session_factory(engine)
