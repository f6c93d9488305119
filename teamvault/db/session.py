"""
TeamVault Database Session Management.

Provides the single entry point for metadata DB initialisation plus the
transactional context manager every service operation runs inside.
Uses the global EngineRegistry for named engines.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from teamvault.db.base import Base, engine_registry

DEFAULT_ENGINE_NAME = "teamvault"


def init_db(
    db_url: str,
    name: str = DEFAULT_ENGINE_NAME,
    create_tables: bool = False,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    pool_pre_ping: bool = True,
    echo: bool = False,
) -> sessionmaker:
    """
    Initialise the metadata database.

    1. Registers a named engine in EngineRegistry.
    2. For SQLite, registers a ``connect`` listener turning on foreign keys
       for every new connection.
    3. Optionally runs ``Base.metadata.create_all()``.

    Returns:
        The ``sessionmaker`` bound to the engine (``expire_on_commit=False``).
    """
    url = make_url(db_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine_registry.register(
        name, db_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=pool_pre_ping,
        echo=echo,
    )
    engine = engine_registry.get(name)

    if url.get_backend_name() == "sqlite":
        @event.listens_for(engine, "connect")
        def enable_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    if create_tables:
        Base.metadata.create_all(engine)

    return engine_registry.get_session_factory(name)


def get_session(name: str = DEFAULT_ENGINE_NAME) -> Session:
    """Get a new session for a registered engine."""
    return engine_registry.get_session(name)


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Context manager for DB sessions with auto-commit/rollback.

    Usage:
        with session_scope(factory) as session:
            user = session.query(User).filter_by(username='alice').first()
    """
    session = factory() if factory is not None else get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def close_all_sessions(name: Optional[str] = None) -> None:
    """Dispose one or all engines. Used during shutdown."""
    engine_registry.dispose(name)
