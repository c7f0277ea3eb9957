"""
Relation inference - discovers relations from field naming conventions.

No relation is declared anywhere. For every ordered pair (A, B) of distinct
entities:

1. Many-to-many: A has a field named like B pluralized (camelCase) and B has
   a field named like A pluralized. Recorded on A under B's key, keeping the
   plural field name. The reverse pair records B -> A.

2. One-to-many: A has a field literally named id<B> (e.g. idUser) and B has a
   field named like A pluralized. Recorded on A under B's key, keeping the
   id<B> field name.

Both passes run per owning entity, many-to-many first, so a one-to-many match
replaces a many-to-many record for the same target.

This is a heuristic: a scalar field that happens to be spelled like a
pluralized entity name is indistinguishable from a real relation.
"""

from __future__ import annotations

import logging
from typing import Callable

from .metadata import EntityDescriptor, ManyToManyRelation, OneToManyRelation, RelationDescriptor
from .utils import lower_first, pluralize as default_pluralize, upper_first


logger = logging.getLogger(__name__)


def plural_field_name(entity: str, pluralize: Callable[[str], str] = default_pluralize) -> str:
    """Name of the list field that holds records of `entity` (e.g. blogPost -> blogPosts)."""
    return lower_first(pluralize(entity))


def id_field_name(entity: str) -> str:
    """Name of the field that holds the id of one `entity` record (e.g. team -> idTeam)."""
    return f"id{upper_first(entity)}"


def infer_relations(
    entities: dict[str, EntityDescriptor],
    pluralize: Callable[[str], str] = default_pluralize,
) -> dict[str, EntityDescriptor]:
    """
    Populate `relations` of every descriptor in place.

    Never raises; entities that do not follow the conventions simply end up
    with fewer relations. Returns the same map for chaining.
    """
    names = list(entities)

    for name in names:
        _add_many_to_many(entities, names, name, pluralize)
        _add_one_to_many(entities, names, name, pluralize)

    return entities


def _record(entity: EntityDescriptor, target: str, relation: RelationDescriptor) -> None:
    existing = entity.relations.get(target)
    if existing is not None and existing != relation:
        logger.warning(
            f"Relation '{entity.name}.{target}' inferred as {existing.kind} "
            f"is replaced by {relation.kind}"
        )
    entity.relations[target] = relation
    logger.debug(f"Inferred {relation.kind} relation {entity.name} -> {target}")


def _add_many_to_many(
    entities: dict[str, EntityDescriptor],
    names: list[str],
    name: str,
    pluralize: Callable[[str], str],
) -> None:
    entity = entities[name]
    own_plural = plural_field_name(name, pluralize)

    for other in names:
        if other == name:
            continue
        other_plural = plural_field_name(other, pluralize)
        if other_plural in entity.fields and own_plural in entities[other].fields:
            _record(entity, other, ManyToManyRelation(target=other, plural=other_plural))


def _add_one_to_many(
    entities: dict[str, EntityDescriptor],
    names: list[str],
    name: str,
    pluralize: Callable[[str], str],
) -> None:
    entity = entities[name]
    own_plural = pluralize(name)

    for other in names:
        if other == name:
            continue
        id_field = id_field_name(other)
        if id_field in entity.fields and own_plural in entities[other].fields:
            _record(entity, other, OneToManyRelation(target=other, field=id_field))
