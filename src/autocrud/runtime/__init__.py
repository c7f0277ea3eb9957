"""
Runtime module - query and mutation builders.
"""

from __future__ import annotations

from .context import CrudContext, Principal
from .mutation_builder import MutationBuilder, diff_relation_ids
from .query_builder import QueryBuilder

__all__ = [
    "Principal",
    "CrudContext",
    "QueryBuilder",
    "MutationBuilder",
    "diff_relation_ids",
]
