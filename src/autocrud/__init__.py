"""
autocrud - generic CRUD layer over relational models.

Relations are inferred from field naming conventions; request parameters
become storage queries; payloads become writes with automatic relation
connect/disconnect.

Usage:
    from autocrud import create_service_app, CrudOptions
    from myapp.models import Base

    app = create_service_app("blog", Base, options={"post": CrudOptions(queryable_fields=["title"])})
"""

from __future__ import annotations

from .api import create_crud_router, mount_crud_routes
from .config import CrudSettings, load_settings
from .core import (
    AutoCrudError,
    BackendError,
    ConflictError,
    CrudResponse,
    EntityDescriptor,
    FieldDefinition,
    ListResult,
    ManyToManyRelation,
    MetadataError,
    MetadataStore,
    ModelDefinition,
    NotFoundError,
    OneToManyRelation,
    QuerySpec,
    StorageError,
    ValidationError,
    infer_relations,
)
from .facade import CrudFacade
from .runtime import CrudContext, MutationBuilder, Principal, QueryBuilder
from .service import (
    Base,
    SQLAlchemyBackend,
    StorageBackend,
    create_service_app,
    get_session,
    init_db,
    close_db,
)
from .viewsets import CrudOptions, CrudOverrides, UpsertRule

__version__ = "0.1.0"

__all__ = [
    # API
    "create_crud_router",
    "mount_crud_routes",
    # Config
    "CrudSettings",
    "load_settings",
    "CrudOptions",
    "CrudOverrides",
    "UpsertRule",
    # Errors
    "AutoCrudError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "BackendError",
    "MetadataError",
    "StorageError",
    # Metadata
    "FieldDefinition",
    "ModelDefinition",
    "EntityDescriptor",
    "OneToManyRelation",
    "ManyToManyRelation",
    "MetadataStore",
    "infer_relations",
    # Query types
    "QuerySpec",
    "ListResult",
    "CrudResponse",
    # Runtime
    "Principal",
    "CrudContext",
    "QueryBuilder",
    "MutationBuilder",
    "CrudFacade",
    # Service utilities
    "create_service_app",
    "StorageBackend",
    "SQLAlchemyBackend",
    "Base",
    "get_session",
    "init_db",
    "close_db",
]
