"""
Query builder - turns request parameters into storage queries.

Handles pagination, free-text search, direct field filters, sorting,
projection and eager loading for any entity described by the metadata store.

Usage:
    builder = QueryBuilder(context)

    result = await builder.list("user", {"page": "2", "limit": "10", "q": "ann"})
    user = await builder.get_one("42", "user", {"include": "team"})
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..core.errors import MetadataError, ValidationError, storage_errors
from ..core.metadata import EntityDescriptor
from ..core.query_types import ListResult, QuerySpec
from ..core.request_parser import ListParams, ParamValue, fetch_targets, parse_filter_value, split_csv
from ..core.utils import call_hook, coerce_scalar, is_integer_type, parse_int
from ..viewsets.base import CrudOptions
from .context import CrudContext


logger = logging.getLogger(__name__)


class QueryBuilder:
    """
    Builds QuerySpec objects and runs them against the storage backend.

    Stateless apart from the shared context; one instance can serve every
    request and entity.
    """

    def __init__(self, context: CrudContext):
        self.context = context

    @property
    def settings(self):
        return self.context.settings

    def _descriptor(self, entity: str) -> EntityDescriptor:
        if not entity:
            raise ValidationError("Entity is required")
        return self.context.store.entity(entity)

    # =========================================================================
    # List
    # =========================================================================

    async def build_list_query(
        self,
        entity: str,
        params: Optional[Mapping[str, ParamValue]] = None,
        options: Optional[CrudOptions] = None,
    ) -> tuple[QuerySpec, bool]:
        """
        Build the list query for `entity`.

        Returns (query, count_only).
        """
        descriptor = self._descriptor(entity)
        params = params or {}
        options = options or CrudOptions()

        parsed = ListParams.from_params(
            params,
            default_page=self.settings.default_page,
            default_limit=self.settings.default_limit,
            max_limit=self.settings.max_limit,
            default_by=self.settings.default_order_by,
            default_order=self.settings.default_order,
        )

        where = dict(options.where or {})
        where.update(self._field_filters(descriptor, parsed.filters))

        search = self._search_clauses(descriptor, parsed.q, options.queryable_fields)
        if search is not None:
            # An empty OR matches nothing
            if "OR" in where:
                where = {"AND": [where, {"OR": search}]}
            else:
                where["OR"] = search

        select = self._select(descriptor, parsed.select)
        include = self._include(descriptor, options.include, parsed.include + parsed.fetch)
        if select and include:
            select.update({name: True for name in include})

        query = QuerySpec(
            where=where,
            order_by=self._order_by(descriptor, parsed.by, parsed.order),
            skip=parsed.skip,
            take=parsed.limit,
            select=select,
            include=include,
        )

        if options.filter_all_query:
            replaced = await call_hook(options.filter_all_query, params, query, options)
            if replaced is not None:
                query = replaced

        logger.debug(f"List query for {descriptor.name}: {query.model_dump()}")
        return query, parsed.count_only

    async def list(
        self,
        entity: str,
        params: Optional[Mapping[str, ParamValue]] = None,
        options: Optional[CrudOptions] = None,
    ) -> ListResult:
        """Run the list query. `count` is the total before pagination."""
        options = options or CrudOptions()
        params = params or {}
        query, count_only = await self.build_list_query(entity, params, options)
        descriptor = self._descriptor(entity)

        with storage_errors(descriptor.model_name):
            count = await self.context.backend.count(descriptor.name, query.where)
            if count_only:
                return ListResult(data=[], count=count)
            rows = await self.context.backend.find_many(descriptor.name, query)

        if options.filter_result_data:
            rows = await call_hook(options.filter_result_data, rows, params)

        return ListResult(data=rows, count=count)

    def _field_filters(self, descriptor: EntityDescriptor, filters: Mapping[str, ParamValue]) -> dict[str, Any]:
        where = {}

        for name, raw in filters.items():
            if not descriptor.has_field(name):
                continue
            field_type = self._filter_type(descriptor, name)
            op, operand = parse_filter_value(raw)

            try:
                if op == "equals":
                    where[name] = coerce_scalar(operand, field_type)
                else:
                    where[name] = {op: [coerce_scalar(v, field_type) for v in operand]}
            except ValueError as e:
                raise ValidationError(f"Invalid value for '{name}': {e}")

        return where

    def _filter_type(self, descriptor: EntityDescriptor, name: str) -> Optional[str]:
        """Declared type of a field; relation fields use the target's key type."""
        field_type = descriptor.field_type(name)
        store = self.context.store
        if field_type and store.has_entity(field_type):
            return store.fields(field_type).get(self.settings.primary_key)
        return field_type

    def _search_clauses(
        self,
        descriptor: EntityDescriptor,
        q: Optional[str],
        queryable_fields: list[str],
    ) -> Optional[list[dict[str, Any]]]:
        """OR clauses for `q`, or None when no search applies."""
        if not q or not queryable_fields:
            return None

        contains = {"contains": q, "mode": "insensitive"}
        clauses = []

        for name in queryable_fields:
            if "." in name:
                relation, nested = name.split(".", 1)
                if not descriptor.has_field(relation):
                    logger.warning(f"Queryable field '{name}' is not a relation of {descriptor.model_name}; skipped")
                    continue
                clauses.append({relation: {nested: dict(contains)}})
            elif descriptor.has_field(name):
                clauses.append({name: dict(contains)})
            else:
                logger.warning(f"Queryable field '{name}' is not declared on {descriptor.model_name}; skipped")

        key = self.settings.primary_key
        number = parse_int(q)
        if number is not None and descriptor.has_field(key):
            clauses.append({key: number})

        return clauses

    def _order_by(self, descriptor: EntityDescriptor, by: Optional[str], order: str) -> Optional[dict[str, str]]:
        default = self.settings.default_order_by
        if by and not descriptor.has_field(by):
            logger.warning(f"Cannot sort {descriptor.model_name} by unknown field '{by}'")
            by = default
        if not by or not descriptor.has_field(by):
            return None
        return {by: order}

    # =========================================================================
    # Projection / eager loading
    # =========================================================================

    def _select(self, descriptor: EntityDescriptor, names: list[str]) -> Optional[dict[str, bool]]:
        select = {}
        for name in names:
            if descriptor.has_field(name):
                select[name] = True
            else:
                logger.warning(f"Dropping unknown select field '{name}' of {descriptor.model_name}")
        return select or None

    def _include(
        self,
        descriptor: EntityDescriptor,
        base: Optional[dict[str, Any]],
        names: list[str],
    ) -> Optional[dict[str, Any]]:
        include = dict(base or {})
        for name in names:
            if descriptor.has_field(name):
                include[name] = True
            else:
                logger.warning(f"Dropping unknown include '{name}' of {descriptor.model_name}")
        return include or None

    # =========================================================================
    # Single record
    # =========================================================================

    async def resolve_identifier(
        self,
        id: Any,
        entity: str,
        options: Optional[CrudOptions] = None,
    ) -> dict[str, Any]:
        """
        Turn a request identifier into a where clause.

        Order:
        1. options.resolve_where(id, entity)
        2. options.search_field: OR across those fields
        3. integer id -> primary key
        4. uid field, when declared
        """
        if id is None or (isinstance(id, str) and not id.strip()):
            raise ValidationError("Id is required")

        descriptor = self._descriptor(entity)
        options = options or CrudOptions()

        if options.resolve_where:
            return await call_hook(options.resolve_where, id, descriptor.name)

        number = parse_int(id)

        if options.search_field:
            clauses = []
            for name in options.search_field:
                field_type = descriptor.field_type(name)
                if field_type is None:
                    logger.warning(f"Search field '{name}' is not declared on {descriptor.model_name}")
                elif is_integer_type(field_type):
                    if number is not None:
                        clauses.append({name: number})
                else:
                    clauses.append({name: str(id)})
            if clauses:
                return {"OR": clauses}

        key = self.settings.primary_key
        if number is not None and is_integer_type(descriptor.field_type(key)):
            return {key: number}

        uid = self.settings.uid_field
        if descriptor.has_field(uid):
            return {uid: str(id)}

        raise MetadataError(f"{descriptor.model_name} has no '{uid}' field to resolve '{id}'")

    async def build_get_query(
        self,
        id: Any,
        entity: str,
        params: Optional[Mapping[str, ParamValue]] = None,
        options: Optional[CrudOptions] = None,
    ) -> QuerySpec:
        descriptor = self._descriptor(entity)
        params = params or {}
        options = options or CrudOptions()

        where = await self.resolve_identifier(id, entity, options)
        select = self._select(descriptor, split_csv(params.get("select")))
        include = self._include(
            descriptor,
            options.include,
            split_csv(params.get("include")) + fetch_targets(params),
        )
        if select and include:
            select.update({name: True for name in include})

        return QuerySpec(where=where, select=select, include=include)

    async def get_one(
        self,
        id: Any,
        entity: str,
        params: Optional[Mapping[str, ParamValue]] = None,
        options: Optional[CrudOptions] = None,
    ) -> Optional[dict[str, Any]]:
        """Fetch one record by identifier. Returns None when nothing matches."""
        options = options or CrudOptions()
        params = params or {}
        query = await self.build_get_query(id, entity, params, options)
        descriptor = self._descriptor(entity)

        with storage_errors(descriptor.model_name):
            record = await self.context.backend.find_first(descriptor.name, query)

        if record is not None and options.filter_get_item:
            record = await call_hook(options.filter_get_item, record, params)

        return record
