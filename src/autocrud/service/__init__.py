"""
Service module - utilities for building autocrud services.

Provides:
- create_service_app: Factory for creating FastAPI service apps
- StorageBackend / SQLAlchemyBackend: storage primitives
- Database utilities (Base, get_session, init_db)
"""

from __future__ import annotations

from .app import build_context, create_service_app
from .backend import SQLAlchemyBackend, StorageBackend
from .database import Base, close_db, configure, get_engine, get_session, get_session_maker, init_db

__all__ = [
    # App factory
    "create_service_app",
    "build_context",
    # Backends
    "StorageBackend",
    "SQLAlchemyBackend",
    # Database
    "Base",
    "configure",
    "get_session",
    "get_session_maker",
    "init_db",
    "close_db",
    "get_engine",
]
