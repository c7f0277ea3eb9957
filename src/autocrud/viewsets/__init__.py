"""
Per-entity options, hooks and operation overrides.
"""

from __future__ import annotations

from .base import CrudOptions, CrudOverrides, UpsertRule

__all__ = [
    "CrudOptions",
    "CrudOverrides",
    "UpsertRule",
]
