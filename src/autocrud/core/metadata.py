"""
Model metadata store - collects entity descriptors from model definitions.

Definitions come either from hand-written ModelDefinition objects or from a
SQLAlchemy declarative base. The store is built once, relations are inferred
once, and the result is shared read-only by every builder.

Usage:
    from autocrud.core.metadata import MetadataStore
    from myapp.models import Base

    store = MetadataStore.from_declarative(Base)
    store.fields("user")      # {"id": "int", "name": "string", "idTeam": "int", ...}
    store.relations("user")   # {"team": OneToManyRelation(target="team", field="idTeam")}
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Iterable, Literal, Optional, Union

from sqlalchemy import inspect
from sqlalchemy.orm import ColumnProperty, RelationshipProperty

from .errors import MetadataError
from .utils import lower_first, pluralize as default_pluralize


logger = logging.getLogger(__name__)


# =============================================================================
# Descriptors
# =============================================================================


@dataclass
class FieldDefinition:
    """A declared field of a model: name plus scalar type (or target model name)."""
    name: str
    type: str
    is_list: bool = False


@dataclass
class ModelDefinition:
    """A model as exposed by the schema system."""
    name: str
    fields: list[FieldDefinition] = field(default_factory=list)


@dataclass(frozen=True)
class OneToManyRelation:
    """Owning entity holds `field` (id<Target>) pointing at one target record."""
    target: str
    field: str
    kind: Literal["one-to-many"] = "one-to-many"


@dataclass(frozen=True)
class ManyToManyRelation:
    """Owning entity holds the list field `plural` of target records."""
    target: str
    plural: str
    kind: Literal["many-to-many"] = "many-to-many"


RelationDescriptor = Union[OneToManyRelation, ManyToManyRelation]


@dataclass
class EntityDescriptor:
    """Fields and inferred relations of one entity."""
    name: str
    model_name: str
    fields: dict[str, str] = field(default_factory=dict)
    relations: dict[str, RelationDescriptor] = field(default_factory=dict)

    def has_field(self, name: str) -> bool:
        return name in self.fields

    def field_type(self, name: str) -> Optional[str]:
        return self.fields.get(name)


# =============================================================================
# Building
# =============================================================================


def build_metadata(models: Optional[Iterable[ModelDefinition]]) -> dict[str, EntityDescriptor]:
    """
    Build entity descriptors from model definitions.

    The entity key is the model name with its first character lower-cased.
    Field names and types are recorded verbatim. Missing input gives an
    empty map.
    """
    entities: dict[str, EntityDescriptor] = {}
    if not models:
        return entities

    for model in models:
        if not model.name:
            continue
        key = lower_first(model.name)
        entities[key] = EntityDescriptor(
            name=key,
            model_name=model.name,
            fields={f.name: f.type for f in model.fields},
        )

    return entities


def get_column_type(column) -> str:
    """Map a SQLAlchemy column type to a simple type tag."""
    type_name = column.type.__class__.__name__.lower()

    if type_name in ("integer", "biginteger", "smallinteger"):
        return "int"
    elif type_name in ("string", "text", "varchar", "unicode", "unicodetext", "uuid"):
        return "string"
    elif type_name in ("boolean",):
        return "bool"
    elif type_name in ("float", "numeric", "decimal", "double"):
        return "float"
    elif type_name in ("datetime", "timestamp"):
        return "datetime"
    elif type_name in ("date",):
        return "date"
    elif type_name in ("json", "jsonb"):
        return "json"
    elif type_name == "enum":
        return "enum"
    elif type_name == "array":
        return "array"
    else:
        return "string"


def models_from_declarative(base: Any) -> list[ModelDefinition]:
    """
    Auto-discover model definitions from a SQLAlchemy declarative base.

    Column attributes get a type tag from get_column_type(); relationship
    attributes get the target class name as their type. Models and their
    attributes are listed in declaration order.
    """
    registry = getattr(base, "registry", None)
    if registry is None:
        return []

    models = []
    for mapper in _declared_mappers(base, registry):
        fields = []
        for prop in mapper.attrs:
            if isinstance(prop, ColumnProperty):
                fields.append(FieldDefinition(name=prop.key, type=get_column_type(prop.columns[0])))
            elif isinstance(prop, RelationshipProperty):
                fields.append(FieldDefinition(
                    name=prop.key,
                    type=prop.mapper.class_.__name__,
                    is_list=bool(prop.uselist),
                ))
        models.append(ModelDefinition(name=mapper.class_.__name__, fields=fields))

    return models


def _declared_mappers(base: Any, registry: Any) -> list:
    # registry.mappers is unordered; tables are registered on the metadata as
    # classes are declared. Mappers sharing a table fall back to class name.
    tables = {table: position for position, table in enumerate(base.metadata.tables.values())}
    return sorted(
        registry.mappers,
        key=lambda m: (tables.get(m.local_table, len(tables)), m.class_.__name__),
    )


def entity_model_map(base: Any) -> dict[str, type]:
    """Map entity keys to mapped classes of a declarative base."""
    registry = getattr(base, "registry", None)
    if registry is None:
        return {}
    return {lower_first(mapper.class_.__name__): mapper.class_ for mapper in registry.mappers}


def get_model_keys(model: type) -> list[str]:
    """Get primary key attribute names of a mapped class."""
    mapper = inspect(model)
    return [mapper.get_property_by_column(pk).key for pk in mapper.primary_key]


# =============================================================================
# Store
# =============================================================================


class MetadataStore:
    """
    Read-only map of entity descriptors with inferred relations.

    Build it once during initialization and pass it to builders and facades:

        store = MetadataStore.build([
            ModelDefinition("User", [FieldDefinition("id", "Int"), FieldDefinition("idTeam", "Int")]),
            ModelDefinition("Team", [FieldDefinition("id", "Int"), FieldDefinition("users", "User", True)]),
        ])
    """

    def __init__(self, entities: dict[str, EntityDescriptor]):
        self._entities = entities

    @classmethod
    def build(
        cls,
        models: Optional[Iterable[ModelDefinition]],
        pluralize: Callable[[str], str] = default_pluralize,
    ) -> "MetadataStore":
        """Build descriptors and run relation inference over them."""
        from .inference import infer_relations

        entities = build_metadata(models)
        if not entities:
            logger.warning("No models found in schema; metadata store is empty")
        infer_relations(entities, pluralize=pluralize)
        return cls(entities)

    @classmethod
    def from_declarative(
        cls,
        base: Any,
        pluralize: Callable[[str], str] = default_pluralize,
    ) -> "MetadataStore":
        """Build the store from a SQLAlchemy declarative base."""
        return cls.build(models_from_declarative(base), pluralize=pluralize)

    @property
    def entity_names(self) -> list[str]:
        return list(self._entities)

    def has_entity(self, name: str) -> bool:
        return bool(name) and lower_first(name) in self._entities

    def entity(self, name: str) -> EntityDescriptor:
        """Get an entity descriptor by model name or entity key."""
        descriptor = self._entities.get(lower_first(name)) if name else None
        if descriptor is None:
            raise MetadataError(f"Unknown entity: {name}")
        return descriptor

    def fields(self, name: str) -> dict[str, str]:
        return self.entity(name).fields

    def relations(self, name: str) -> dict[str, RelationDescriptor]:
        return self.entity(name).relations

    def as_dict(self) -> dict[str, Any]:
        """Serializable view of the store, e.g. for a schema endpoint."""
        return {
            key: {
                "model": entity.model_name,
                "fields": dict(entity.fields),
                "relations": {
                    name: asdict(rel)
                    for name, rel in entity.relations.items()
                },
            }
            for key, entity in self._entities.items()
        }
