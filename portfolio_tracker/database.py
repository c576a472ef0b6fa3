"""Database configuration and session management."""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from portfolio_tracker.config import settings


# Base class for ORM models
class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


def create_db_engine(database_url: str | None = None) -> Engine:
    """Create an engine for the key-value store and make sure its tables exist.

    In-memory SQLite shares a single connection so every session sees the
    same database.
    """
    url = database_url or settings.database_url
    if url.startswith("sqlite") and ":memory:" in url:
        engine = create_engine(
            url, connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
    else:
        engine = create_engine(url, pool_pre_ping=True)

    # Import models so they register on Base.metadata
    from portfolio_tracker import models  # noqa: F401

    Base.metadata.create_all(engine)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to ``engine``."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False,
    )
