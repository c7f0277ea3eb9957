"""
Generic CRUD facade - one object per entity exposing the six operations.

Each operation uses the entity's override when one is registered and the
generic builders otherwise.

Usage:
    users = CrudFacade("user", context, options=user_options)

    response = await users.all({"q": "ann"})
    response.data, response.count

    response = await users.create({"name": "Ann", "idTeam": 5}, principal=principal)
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Mapping, Optional

from .core.errors import NotFoundError
from .core.query_types import CrudResponse, ListResult
from .core.request_parser import ParamValue
from .core.utils import call_hook
from .runtime.context import CrudContext, Principal
from .runtime.mutation_builder import MutationBuilder
from .runtime.query_builder import QueryBuilder
from .viewsets.base import CrudOptions, CrudOverrides


logger = logging.getLogger(__name__)


class CrudFacade:
    """CRUD operations for one entity."""

    def __init__(
        self,
        entity: str,
        context: CrudContext,
        options: Optional[CrudOptions] = None,
        overrides: Optional[CrudOverrides] = None,
    ):
        descriptor = context.store.entity(entity)
        self.entity = descriptor.name
        self.model_name = descriptor.model_name
        self.context = context
        self.options = options or CrudOptions()
        self.overrides = overrides or CrudOverrides()
        self.queries = QueryBuilder(context)
        self.mutations = MutationBuilder(context, self.queries)

    def _options(self, principal: Optional[Principal]) -> CrudOptions:
        return replace(self.options, principal=principal)

    def _override(self, operation: str):
        slot = self.overrides.slot(operation)
        if slot is None:
            logger.debug(f"{self.model_name} has no '{operation}' override, using generic implementation")
        return slot

    def _body(self, data: Any) -> Any:
        """Remove the primary key from a request body."""
        if not isinstance(data, Mapping):
            return data
        key = self.context.settings.primary_key
        return {name: value for name, value in data.items() if name != key}

    async def create(self, data: Mapping[str, Any], principal: Optional[Principal] = None) -> CrudResponse:
        options = self._options(principal)
        body = self._body(data)

        override = self._override("create")
        if override is not None:
            record = await call_hook(override, body, options)
        else:
            record = await self.mutations.create(body, self.entity, options)

        return CrudResponse(data=record)

    async def get(
        self,
        id: Any,
        params: Optional[Mapping[str, ParamValue]] = None,
        principal: Optional[Principal] = None,
    ) -> CrudResponse:
        options = self._options(principal)
        params = params or {}

        override = self._override("get")
        if override is not None:
            record = await call_hook(override, id, params, options)
        else:
            record = await self.queries.get_one(id, self.entity, params, options)

        if record is None:
            raise NotFoundError(f"{self.model_name} not found")
        return CrudResponse(data=record)

    async def update(
        self,
        id: Any,
        data: Mapping[str, Any],
        params: Optional[Mapping[str, ParamValue]] = None,
        principal: Optional[Principal] = None,
    ) -> CrudResponse:
        options = self._options(principal)
        body = self._body(data)

        override = self._override("update")
        if override is not None:
            record = await call_hook(override, id, body, params or {}, options)
        else:
            record = await self.mutations.update(id, body, self.entity, options)

        return CrudResponse(data=record)

    async def delete(self, id: Any, principal: Optional[Principal] = None) -> CrudResponse:
        options = self._options(principal)

        override = self._override("delete")
        if override is not None:
            record = await call_hook(override, id, options)
        else:
            record = await self.mutations.delete(id, self.entity, options)

        return CrudResponse(data=record)

    async def all(
        self,
        params: Optional[Mapping[str, ParamValue]] = None,
        principal: Optional[Principal] = None,
    ) -> CrudResponse:
        options = self._options(principal)
        params = params or {}

        override = self._override("all")
        if override is not None:
            result = await call_hook(override, params, options)
            if not isinstance(result, ListResult):
                result = ListResult.model_validate(result)
        else:
            result = await self.queries.list(self.entity, params, options)

        return CrudResponse(data=result.data, count=result.count)

    async def update_metas(
        self,
        id: Any,
        metas: Mapping[str, Any],
        principal: Optional[Principal] = None,
    ) -> CrudResponse:
        options = self._options(principal)

        override = self._override("update_metas")
        if override is not None:
            record = await call_hook(override, id, metas, options)
        else:
            record = await self.mutations.update_metas(id, metas, self.entity, options)

        return CrudResponse(data=record)
