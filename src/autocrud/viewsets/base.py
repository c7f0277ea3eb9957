"""
Per-entity configuration for the generic CRUD layer.

Everything an entity can customize lives in two dataclasses:

- CrudOptions: search/filter defaults plus hook slots called by the builders
- CrudOverrides: replacement implementations for whole operations

Usage:
    async def only_active(params, query, options):
        query.where = {**query.where, "deletedAt": None}
        return query

    user_options = CrudOptions(
        queryable_fields=["name", "email", "team.name"],
        upsert_rules={"slug": UpsertRule(slugify="name")},
        filter_all_query=only_active,
    )

    async def list_users(params, options):
        ...

    user_overrides = CrudOverrides(all=list_users)  # other operations stay generic
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from ..core.query_types import ListResult, QuerySpec

if TYPE_CHECKING:
    from ..runtime.context import Principal


MaybeAwaitable = Union[Any, Awaitable[Any]]


# =============================================================================
# Options
# =============================================================================


@dataclass
class UpsertRule:
    """Derive a field's value from another field before writing."""
    slugify: Optional[str] = None  # Source field to slugify


@dataclass
class CrudOptions:
    """
    Per-entity options and hook slots.

    Hook signatures (plain functions or coroutine functions):
        filter_create_data(data, entity, options) -> data
        filter_update_data(data, entity, options) -> data
        filter_all_query(params, query: QuerySpec, options) -> QuerySpec | None
        filter_result_data(rows, params) -> rows
        filter_get_item(record, params) -> record
        resolve_where(id, entity) -> where dict

    An empty slot means default behaviour.
    """
    queryable_fields: list[str] = field(default_factory=list)
    where: dict[str, Any] = field(default_factory=dict)  # Base filter for list, overridable
    include: Optional[dict[str, Any]] = None
    search_field: list[str] = field(default_factory=list)  # Textual identifier fields
    upsert_rules: dict[str, UpsertRule] = field(default_factory=dict)

    filter_create_data: Optional[Callable[[dict, str, "CrudOptions"], MaybeAwaitable]] = None
    filter_update_data: Optional[Callable[[dict, str, "CrudOptions"], MaybeAwaitable]] = None
    filter_all_query: Optional[Callable[[dict, QuerySpec, "CrudOptions"], MaybeAwaitable]] = None
    filter_result_data: Optional[Callable[[list, dict], MaybeAwaitable]] = None
    filter_get_item: Optional[Callable[[Any, dict], MaybeAwaitable]] = None
    resolve_where: Optional[Callable[[Any, str], dict[str, Any]]] = None

    # Set per request by the facade
    principal: Optional[Principal] = None


# =============================================================================
# Overrides
# =============================================================================


@dataclass
class CrudOverrides:
    """
    Replacement implementations for facade operations.

    Slot signatures:
        create(data, options) -> record
        get(id, params, options) -> record | None
        update(id, data, params, options) -> record
        delete(id, options) -> record
        all(params, options) -> ListResult
        update_metas(id, metas, options) -> record

    A populated slot always wins; empty slots fall back to the generic
    implementation, per operation.
    """
    create: Optional[Callable[..., MaybeAwaitable]] = None
    get: Optional[Callable[..., MaybeAwaitable]] = None
    update: Optional[Callable[..., MaybeAwaitable]] = None
    delete: Optional[Callable[..., MaybeAwaitable]] = None
    all: Optional[Callable[..., Union[ListResult, Awaitable[ListResult]]]] = None
    update_metas: Optional[Callable[..., MaybeAwaitable]] = None

    @classmethod
    def from_object(cls, obj: Any) -> "CrudOverrides":
        """
        Collect overrides from an object exposing operation methods.

        Only callable attributes named after an operation are taken.
        """
        slots = {}
        for slot in fields(cls):
            candidate = getattr(obj, slot.name, None)
            if callable(candidate):
                slots[slot.name] = candidate
        return cls(**slots)

    def slot(self, name: str) -> Optional[Callable[..., MaybeAwaitable]]:
        return getattr(self, name, None)
