"""
Pydantic models for queries and results.

QuerySpec is what the builders hand to a storage backend. The predicate tree
in `where` is a plain nested dict:

    {"OR": [{"name": {"contains": "ann", "mode": "insensitive"}}, {"id": 4}]}
    {"role": {"in": ["admin", "owner"]}}
    {"team": {"name": {"contains": "core"}}}
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


SortDirection = Literal["asc", "desc"]


class QuerySpec(BaseModel):
    """
    Normalized query for a single entity.

    Built fresh per request and never persisted.
    """
    where: Dict[str, Any] = Field(default_factory=dict)
    order_by: Optional[Dict[str, SortDirection]] = None
    skip: Optional[int] = None
    take: Optional[int] = None
    include: Optional[Dict[str, Any]] = None
    select: Optional[Dict[str, bool]] = None


class ListResult(BaseModel):
    """
    Result of a list call.

    `count` is the number of rows matching the filter before pagination.
    """
    data: List[Any] = Field(default_factory=list)
    count: int = 0


class CrudResponse(BaseModel):
    """Uniform envelope returned by every facade operation."""
    data: Any = None
    count: Optional[int] = None
