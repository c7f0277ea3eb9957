"""
API module - FastAPI endpoints.
"""

from __future__ import annotations

from .router import create_crud_router, get_principal, mount_crud_routes

__all__ = [
    "create_crud_router",
    "mount_crud_routes",
    "get_principal",
]
