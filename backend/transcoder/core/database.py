"""Database setup for the job status store."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker


class Base(DeclarativeBase):
    """Declarative base for all models."""
    pass


def create_db_engine(url: str) -> Engine:
    """Create an engine; SQLite connections may be shared across threads."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


def create_session_factory(url: str, create_tables: bool = True) -> sessionmaker:
    """Create a session factory bound to a new engine.

    Args:
        url: SQLAlchemy database URL
        create_tables: Create missing tables on the engine

    Returns:
        Configured sessionmaker
    """
    # Import models so they register on Base.metadata
    from transcoder.modules.jobs import models  # noqa: F401

    engine = create_db_engine(url)
    if create_tables:
        Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
