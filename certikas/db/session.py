"""Database session management."""

from functools import lru_cache
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from certikas.settings import get_settings


def build_engine(database_url: str) -> Engine:
    """Create an engine; SQLite connections may be shared across worker threads."""
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


@lru_cache()
def get_engine() -> Engine:
    """Engine for the configured database."""
    return build_engine(get_settings().database_url_computed)


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    """Session factory bound to ``engine`` (default: configured engine)."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine or get_engine())


def init_db(engine: Optional[Engine] = None) -> None:
    """Create tables for all models."""
    from certikas.db.base import Base
    from certikas import models  # noqa: F401

    Base.metadata.create_all(engine or get_engine())
