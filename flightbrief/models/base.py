"""
SQLAlchemy base configuration and session management.

Uses SQLAlchemy 2.0 style with type hints and declarative base.
Designed to be portable between SQLite (dev) and PostgreSQL (prod).
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from flightbrief.config import config


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def _set_sqlite_pragma(dbapi_connection, connection_record):
    """
    Configure SQLite for concurrent summary writers.

    WAL mode allows reads from the API while workers are upserting.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute('PRAGMA journal_mode=WAL')
    cursor.execute('PRAGMA synchronous=NORMAL')
    # Wait on a locked database instead of failing straight away
    cursor.execute('PRAGMA busy_timeout=5000')
    cursor.close()


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine with the settings appropriate for its backend."""
    engine_kwargs = {'echo': echo}
    is_sqlite = url.startswith('sqlite')
    if is_sqlite:
        # Worker threads share the pool
        engine_kwargs['connect_args'] = {'check_same_thread': False}

    new_engine = create_engine(url, **engine_kwargs)
    if is_sqlite:
        event.listen(new_engine, 'connect', _set_sqlite_pragma)
    return new_engine


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(
        bind=bind,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,  # Rows are handed back to callers after commit
    )


engine = build_engine(config.database.url, echo=config.debug)

# Session factory
SessionLocal = build_session_factory(engine)


def init_db(bind: Engine = None) -> None:
    """
    Initialize database schema.

    Creates all tables if they don't exist. For production,
    use Alembic migrations instead.
    """
    Base.metadata.create_all(bind=bind or engine)
