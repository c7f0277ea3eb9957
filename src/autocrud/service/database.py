"""
Database utilities for autocrud services.

Provides:
- AsyncSession configuration driven by CrudSettings
- Base model class
- Session dependency for FastAPI
"""

from __future__ import annotations

from typing import Any, AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from ..config import CrudSettings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# Engine and session factory (initialized lazily)
_settings: Optional[CrudSettings] = None
_engine = None
_async_session_maker = None


def configure(settings: CrudSettings) -> None:
    """Set the settings used to create the engine. Resets an existing engine."""
    global _settings, _engine, _async_session_maker
    _settings = settings
    _engine = None
    _async_session_maker = None


def get_settings() -> CrudSettings:
    """Get configured settings, falling back to defaults plus environment."""
    global _settings
    if _settings is None:
        _settings = CrudSettings.from_env()
    return _settings


def get_engine():
    """Get or create async engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(settings.database_url, echo=settings.sql_echo)
    return _engine


def get_session_maker():
    """Get or create session maker."""
    global _async_session_maker
    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session_maker


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields database session."""
    session_maker = get_session_maker()
    async with session_maker() as session:
        yield session


async def init_db(base: Any = Base):
    """Initialize database (create tables of `base`)."""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(base.metadata.create_all)


async def close_db():
    """Close database connections."""
    global _engine, _async_session_maker
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_maker = None
