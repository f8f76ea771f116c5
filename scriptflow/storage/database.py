"""Database connection and session management."""

import os
from typing import Optional
from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

DEFAULT_DATABASE_URL = "sqlite:///./scriptflow.db"

# Global engine instance, built on first use
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None

# Base class for all database models
Base = declarative_base()


def get_database_engine(database_url: Optional[str] = None,
                        echo: bool = False,
                        connect_args: Optional[dict] = None) -> Engine:
    """Get or create database engine with configuration."""
    global _engine, _session_factory

    if _engine is None:
        # Use provided URL or fall back to environment variable
        if database_url is None:
            database_url = os.getenv("SCRIPTFLOW_DATABASE_URL", DEFAULT_DATABASE_URL)

        # Default connect args for SQLite
        if connect_args is None:
            if database_url.startswith("sqlite"):
                connect_args = {"check_same_thread": False}
            else:
                connect_args = {}

        # Create engine with appropriate settings
        if database_url.startswith("sqlite"):
            _engine = create_engine(
                database_url,
                connect_args=connect_args,
                poolclass=StaticPool,
                echo=echo
            )
        else:
            _engine = create_engine(
                database_url,
                echo=echo,
                connect_args=connect_args
            )

        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=_engine)

    return _engine


def init_database(database_url: str, echo: bool = False) -> Engine:
    """Replace the global engine with one bound to ``database_url`` and create tables."""
    reset_database_engine()
    engine = get_database_engine(database_url, echo=echo)
    create_tables()
    return engine


def reset_database_engine():
    """Reset the global database engine (mainly for testing)."""
    global _engine, _session_factory
    if _engine:
        _engine.dispose()
    _engine = None
    _session_factory = None


def get_session_factory() -> sessionmaker:
    get_database_engine()
    return _session_factory


def get_db():
    """Dependency to get database session."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def create_tables():
    """Create all database tables."""
    # Import models so they register on Base.metadata
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=get_database_engine())


def drop_tables():
    """Drop all database tables."""
    Base.metadata.drop_all(bind=get_database_engine())
