"""
Async database engine and session management.

Purpose:
- Create SQLAlchemy async engines (aiosqlite by default)
- Provide async session factories for the storage service
- Provide Base declarative class for ORM models

Engines are built by the container at startup (and by tests against a
temporary database file) instead of at import time, so nothing here holds a
connection until someone asks for one.
"""
import logging
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for `url`; file-backed SQLite gets its directory created."""
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database and parsed.database != ":memory:":
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    engine = create_async_engine(url, echo=echo, future=True)
    logger.info("Async DB engine created: %s", parsed.render_as_string(hide_password=True))
    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
