"""
Mutation builder - turns raw payloads into storage writes.

Steps for create/update:
1. Pre-transform hook (filter_create_data / filter_update_data)
2. Relation resolution: owning id fields and plural list fields become
   connect/disconnect directives
3. Sanitization: undeclared fields are dropped
4. Upsert rules (derived fields such as slugs)
5. One backend call

Example (User has idTeam, Team has users):
    {"name": "Ann", "idTeam": "5"}
    -> {"name": "Ann", "team": {"connect": {"id": 5}}}

Example update (Post.tags currently [1, 2, 3]):
    {"tags": [2, 3, 4]}
    -> {"tags": {"connect": [{"id": 4}], "disconnect": [{"id": 1}]}}
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..core.errors import MetadataError, NotFoundError, ValidationError, storage_errors
from ..core.metadata import EntityDescriptor, ManyToManyRelation, OneToManyRelation
from ..core.query_types import QuerySpec
from ..core.utils import call_hook, is_integer_type, parse_int, slugify
from ..viewsets.base import CrudOptions, UpsertRule
from .context import CrudContext
from .query_builder import QueryBuilder


logger = logging.getLogger(__name__)


def diff_relation_ids(current: list[Any], desired: list[Any]) -> tuple[list[Any], list[Any]]:
    """
    Compute (connect, disconnect) turning `current` into `desired`.

    Order follows the input lists; duplicates collapse.

    Example:
        diff_relation_ids([1, 2, 3], [2, 3, 4]) -> ([4], [1])
    """
    current = list(dict.fromkeys(current))
    desired = list(dict.fromkeys(desired))
    current_set = set(current)
    desired_set = set(desired)
    connect = [i for i in desired if i not in current_set]
    disconnect = [i for i in current if i not in desired_set]
    return connect, disconnect


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class MutationBuilder:
    """Builds and runs create/update/delete/update_metas for any entity."""

    def __init__(self, context: CrudContext, query_builder: Optional[QueryBuilder] = None):
        self.context = context
        self.queries = query_builder or QueryBuilder(context)

    @property
    def settings(self):
        return self.context.settings

    def _descriptor(self, entity: str) -> EntityDescriptor:
        if not entity:
            raise ValidationError("Entity is required")
        return self.context.store.entity(entity)

    # =========================================================================
    # Payload preparation
    # =========================================================================

    def _coerce_id(self, value: Any, target: str) -> Any:
        """Coerce a related id to the target's key type."""
        key = self.settings.primary_key
        if isinstance(value, Mapping):
            if key not in value:
                raise ValidationError(f"Related {target} reference is missing '{key}'")
            value = value[key]

        if is_integer_type(self.context.store.fields(target).get(key)):
            number = parse_int(value)
            if number is None:
                raise ValidationError(f"Invalid {target} id: {value!r}")
            return number
        return value

    def _resolve_one_to_many(self, payload: dict[str, Any], descriptor: EntityDescriptor) -> dict[str, Any]:
        key = self.settings.primary_key
        for target, relation in descriptor.relations.items():
            if not isinstance(relation, OneToManyRelation) or relation.field not in payload:
                continue
            value = payload[relation.field]
            if _is_empty(value):
                continue
            del payload[relation.field]
            payload[target] = {"connect": {key: self._coerce_id(value, target)}}
        return payload

    def _many_to_many(self, descriptor: EntityDescriptor, payload: Mapping[str, Any]):
        """Yield (target, relation) for many-to-many fields given as lists."""
        for target, relation in descriptor.relations.items():
            if isinstance(relation, ManyToManyRelation) and isinstance(payload.get(relation.plural), list):
                yield target, relation

    def resolve_relations(self, data: Mapping[str, Any], entity: str) -> dict[str, Any]:
        """
        Rewrite relation fields into connect directives (create form).

        Returns a new dict; `data` is left untouched.
        """
        descriptor = self._descriptor(entity)
        key = self.settings.primary_key
        payload = self._resolve_one_to_many(dict(data), descriptor)

        for target, relation in self._many_to_many(descriptor, payload):
            ids = [self._coerce_id(item, target) for item in payload[relation.plural]]
            payload[relation.plural] = {"connect": [{key: i} for i in ids]}

        return payload

    def sanitize(self, data: Mapping[str, Any], entity: str) -> dict[str, Any]:
        """
        Drop fields the entity does not declare.

        One-to-many directive keys (the target entity key) are kept. Pure and
        idempotent: returns a new dict and never adds fields.
        """
        descriptor = self._descriptor(entity)
        allowed = set(descriptor.fields)
        allowed.update(
            target for target, relation in descriptor.relations.items()
            if isinstance(relation, OneToManyRelation)
        )

        clean = {}
        for name, value in data.items():
            if name in allowed:
                clean[name] = value
            else:
                logger.warning(f"The field '{name}' is not in the model '{descriptor.model_name}'; dropped")
        return clean

    def apply_upsert_rules(
        self,
        data: Mapping[str, Any],
        entity: str,
        rules: Optional[Mapping[str, UpsertRule]],
    ) -> dict[str, Any]:
        """Fill derived fields (e.g. slug from name). Returns a new dict."""
        descriptor = self._descriptor(entity)
        result = dict(data)

        for name, rule in (rules or {}).items():
            if not descriptor.has_field(name):
                logger.warning(f"Upsert rule target '{name}' is not declared on {descriptor.model_name}; skipped")
                continue
            if rule.slugify and not _is_empty(result.get(rule.slugify)):
                result[name] = slugify(result[rule.slugify])

        return result

    async def _current_related_ids(
        self,
        descriptor: EntityDescriptor,
        where: dict[str, Any],
        plurals: list[str],
    ) -> dict[str, list[Any]]:
        key = self.settings.primary_key
        query = QuerySpec(where=where, select={plural: True for plural in plurals})

        with storage_errors(descriptor.model_name):
            record = await self.context.backend.find_first(descriptor.name, query)
        if record is None:
            raise NotFoundError(f"{descriptor.model_name} not found")

        current = {}
        for plural in plurals:
            items = record.get(plural) or []
            current[plural] = [item[key] if isinstance(item, Mapping) else item for item in items]
        return current

    # =========================================================================
    # Operations
    # =========================================================================

    async def create(
        self,
        data: Mapping[str, Any],
        entity: str,
        options: Optional[CrudOptions] = None,
    ) -> dict[str, Any]:
        descriptor = self._descriptor(entity)
        if not isinstance(data, Mapping):
            raise ValidationError("Data must be an object")
        options = options or CrudOptions()

        data = dict(data)
        if options.filter_create_data:
            data = await call_hook(options.filter_create_data, data, descriptor.name, options)

        payload = self.resolve_relations(data, descriptor.name)
        payload = self.sanitize(payload, descriptor.name)
        payload = self.apply_upsert_rules(payload, descriptor.name, options.upsert_rules)

        logger.debug(f"Create {descriptor.name}: {payload}")
        with storage_errors(descriptor.model_name):
            return await self.context.backend.create(descriptor.name, payload)

    async def update(
        self,
        id: Any,
        data: Mapping[str, Any],
        entity: str,
        options: Optional[CrudOptions] = None,
    ) -> dict[str, Any]:
        descriptor = self._descriptor(entity)
        if not isinstance(data, Mapping):
            raise ValidationError("Data must be an object")
        options = options or CrudOptions()

        data = dict(data)
        if options.filter_update_data:
            data = await call_hook(options.filter_update_data, data, descriptor.name, options)

        where = await self.queries.resolve_identifier(id, descriptor.name, options)
        key = self.settings.primary_key

        payload = self._resolve_one_to_many(dict(data), descriptor)

        lists = list(self._many_to_many(descriptor, payload))
        if lists:
            # Read-then-write; concurrent updates of the same record may interleave
            current = await self._current_related_ids(
                descriptor, where, [relation.plural for _, relation in lists],
            )
            for target, relation in lists:
                desired = [self._coerce_id(item, target) for item in payload[relation.plural]]
                connect, disconnect = diff_relation_ids(current[relation.plural], desired)

                directive = {}
                if connect:
                    directive["connect"] = [{key: i} for i in connect]
                if disconnect:
                    directive["disconnect"] = [{key: i} for i in disconnect]

                if directive:
                    payload[relation.plural] = directive
                else:
                    del payload[relation.plural]

        payload = self.sanitize(payload, descriptor.name)
        payload = self.apply_upsert_rules(payload, descriptor.name, options.upsert_rules)

        logger.debug(f"Update {descriptor.name} {where}: {payload}")
        with storage_errors(descriptor.model_name):
            return await self.context.backend.update(descriptor.name, where, payload)

    async def delete(
        self,
        id: Any,
        entity: str,
        options: Optional[CrudOptions] = None,
    ) -> dict[str, Any]:
        descriptor = self._descriptor(entity)
        where = await self.queries.resolve_identifier(id, descriptor.name, options)

        with storage_errors(descriptor.model_name):
            return await self.context.backend.delete(descriptor.name, where)

    async def update_metas(
        self,
        id: Any,
        metas: Mapping[str, Any],
        entity: str,
        options: Optional[CrudOptions] = None,
    ) -> dict[str, Any]:
        """Shallow-merge `metas` into the record's metadata field."""
        descriptor = self._descriptor(entity)
        field_name = self.settings.metas_field

        if not descriptor.has_field(field_name):
            raise MetadataError(f"{descriptor.model_name} has no '{field_name}' field")
        if not isinstance(metas, Mapping):
            raise ValidationError("Metas must be an object")

        where = await self.queries.resolve_identifier(id, descriptor.name, options)
        query = QuerySpec(where=where, select={field_name: True})

        with storage_errors(descriptor.model_name):
            record = await self.context.backend.find_first(descriptor.name, query)
        if record is None:
            raise NotFoundError(f"{descriptor.model_name} not found")

        current = record.get(field_name)
        merged = {**(current if isinstance(current, Mapping) else {}), **metas}

        with storage_errors(descriptor.model_name):
            return await self.context.backend.update(descriptor.name, where, {field_name: merged})
