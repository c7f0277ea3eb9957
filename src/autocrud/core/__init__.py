"""
Core module - metadata, relation inference, request parsing and errors.
"""

from __future__ import annotations

from .errors import (
    AutoCrudError,
    BackendError,
    ConflictError,
    MetadataError,
    NotFoundError,
    StorageError,
    ValidationError,
    classify_storage_error,
    storage_errors,
)
from .inference import infer_relations
from .metadata import (
    EntityDescriptor,
    FieldDefinition,
    ManyToManyRelation,
    MetadataStore,
    ModelDefinition,
    OneToManyRelation,
    build_metadata,
    models_from_declarative,
)
from .query_types import CrudResponse, ListResult, QuerySpec
from .request_parser import ListParams, normalize_query_params
from .utils import pluralize, slugify

__all__ = [
    # Errors
    "AutoCrudError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "BackendError",
    "MetadataError",
    "StorageError",
    "classify_storage_error",
    "storage_errors",
    # Metadata
    "FieldDefinition",
    "ModelDefinition",
    "EntityDescriptor",
    "OneToManyRelation",
    "ManyToManyRelation",
    "MetadataStore",
    "build_metadata",
    "models_from_declarative",
    "infer_relations",
    # Query types
    "QuerySpec",
    "ListResult",
    "CrudResponse",
    # Request parsing
    "ListParams",
    "normalize_query_params",
    # Naming
    "pluralize",
    "slugify",
]
