"""
Database connection and session management for recipe costing.

This module provides:
- Engine creation for SQLite files and in-memory databases
- Session factory and transactional session scope
- Table creation and reset
- Foreign key enforcement on every connection
"""

import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, close_all_sessions, sessionmaker
from sqlalchemy.pool import StaticPool

from ..models.base import Base
from ..utils.config import get_config

logger = logging.getLogger(__name__)

# Process-wide engine and session factory, created lazily
_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """
    Enable SQLite foreign keys on each new connection.

    Recipe lines reference ingredients and recipes; without the pragma
    SQLite silently ignores those constraints.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _is_memory_url(database_url: str) -> bool:
    return ":memory:" in database_url or "mode=memory" in database_url


def create_database_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create and configure the database engine.

    Args:
        database_url: Optional database URL. If None, uses config default.
        echo: If True, log all SQL statements

    Returns:
        Configured SQLAlchemy Engine
    """
    if database_url is None:
        config = get_config()
        config.ensure_directories()
        database_url = config.database_url

    logger.info(f"Creating database engine: {database_url}")

    if _is_memory_url(database_url):
        # One shared connection, or each checkout would see an empty database
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(
        database_url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": 30},
    )


def _import_models() -> None:
    # Registers every table on Base.metadata
    from ..models import (  # noqa: F401
        exchange_rate,
        ingredient,
        prep_sheet,
        recipe,
        recipe_version,
    )


def init_database(engine: Optional[Engine] = None) -> None:
    """
    Create all tables that don't exist yet. Safe to call repeatedly.

    Args:
        engine: Optional engine to use. If None, uses global engine.
    """
    if engine is None:
        engine = get_engine()

    logger.info("Initializing database tables")
    _import_models()
    Base.metadata.create_all(engine)
    logger.info("Database tables initialized successfully")


def get_engine(force_recreate: bool = False) -> Engine:
    """
    Get the global database engine, creating it on first use.

    Args:
        force_recreate: If True, recreate the engine even if one exists
    """
    global _engine

    if _engine is None or force_recreate:
        _engine = create_database_engine()

    return _engine


def get_session_factory() -> sessionmaker:
    """
    Get the global session factory.

    Returns:
        Session factory (sessionmaker)
    """
    global _SessionFactory

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=get_engine(), expire_on_commit=False)

    return _SessionFactory


def get_session() -> Session:
    """
    Create a new database session.

    The caller owns the session and must commit/rollback and close it.
    Prefer session_scope() unless the session must outlive one block.
    """
    session_factory = get_session_factory()
    return session_factory()


@contextmanager
def session_scope():
    """
    Provide a transactional scope for database operations.

    Commits on success, rolls back on any exception, always closes.

    Yields:
        Database session

    Example:
        with session_scope() as session:
            session.add(Ingredient(name="Flour", unit="kg", price_per_unit=Decimal("1.20")))
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def database_exists() -> bool:
    return get_config().database_exists()


def verify_database() -> bool:
    """
    Check that the database is reachable and holds the core tables.

    Returns:
        True if the recipes and ingredients tables exist
    """
    try:
        tables = inspect(get_engine()).get_table_names()
    except SQLAlchemyError as e:
        logger.error(f"Database verification failed: {e}")
        return False
    return "recipes" in tables and "ingredients" in tables


def reset_database(confirm: bool = False) -> None:
    """
    Drop all tables and recreate them.

    WARNING: This will delete all data!

    Args:
        confirm: Must be True to actually reset

    Raises:
        ValueError: If confirm is not True
    """
    if not confirm:
        raise ValueError("Must pass confirm=True to reset database. This will delete all data!")

    logger.warning("RESETTING DATABASE - ALL DATA WILL BE LOST")

    engine = get_engine()
    _import_models()
    Base.metadata.drop_all(engine)
    logger.info("All tables dropped")
    Base.metadata.create_all(engine)
    logger.info("Tables recreated")


def close_connections() -> None:
    """Close all sessions and dispose of the global engine."""
    global _engine, _SessionFactory

    if _SessionFactory is not None:
        close_all_sessions()
        _SessionFactory = None

    if _engine is not None:
        _engine.dispose()
        _engine = None

    logger.info("Database connections closed")


def initialize_app_database() -> None:
    """
    Create the database file and tables if they don't exist.

    Main entry point used by the CLI before any command touches the store.
    """
    config = get_config()

    if not config.database_exists():
        logger.info(f"Creating new database at: {config.database_path}")
    else:
        logger.info(f"Using existing database at: {config.database_path}")

    init_database(get_engine())

    if verify_database():
        logger.info("Database initialized and verified successfully")
    else:
        logger.warning("Database verification failed - tables may not exist")
