"""
Service app factory for autocrud services.

Creates a pre-configured FastAPI application with:
- One CRUD router per entity of a declarative base
- CORS middleware
- Health check endpoint
- Lifecycle hooks for database
- Logging filter to suppress noisy healthcheck logs

Usage:
    from autocrud import CrudOptions, create_service_app
    from myapp.models import Base

    app = create_service_app(
        "blog",
        Base,
        options={"post": CrudOptions(queryable_fields=["title"])},
    )
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Iterable, Mapping, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..api.router import mount_crud_routes
from ..config import CrudSettings, load_settings
from ..core.metadata import MetadataStore
from ..facade import CrudFacade
from ..runtime.context import CrudContext
from ..viewsets.base import CrudOptions, CrudOverrides
from .backend import SQLAlchemyBackend
from .database import close_db, configure, get_session_maker, init_db


logger = logging.getLogger(__name__)


class HealthcheckLogFilter(logging.Filter):
    """Filter out noisy healthcheck and liveness logs."""

    FILTERED_PATHS = ("/health", "/crudag")

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        for path in self.FILTERED_PATHS:
            if f'{path} ' in message or f'{path}"' in message:
                return False
        return True


def _setup_logging_filter():
    """Add filter to uvicorn access logger to suppress healthcheck logs."""
    uvicorn_access = logging.getLogger("uvicorn.access")
    if not any(isinstance(f, HealthcheckLogFilter) for f in uvicorn_access.filters):
        uvicorn_access.addFilter(HealthcheckLogFilter())


def build_context(
    base: Any,
    settings: CrudSettings,
    session_factory: Optional[Callable[[], Any]] = None,
) -> CrudContext:
    """Build metadata, backend and context for a declarative base."""
    store = MetadataStore.from_declarative(base)
    backend = SQLAlchemyBackend.from_declarative(base, session_factory or get_session_maker())
    return CrudContext(store=store, backend=backend, settings=settings)


def create_service_app(
    service_name: str,
    base: Any,
    *,
    entities: Optional[Iterable[str]] = None,
    options: Optional[Mapping[str, CrudOptions]] = None,
    overrides: Optional[Mapping[str, CrudOverrides]] = None,
    settings: Optional[CrudSettings] = None,
    auth: Optional[Callable[..., Any]] = None,
    session_factory: Optional[Callable[[], Any]] = None,
    init_database: bool = True,
) -> FastAPI:
    """
    Create a FastAPI app serving CRUD routes for a declarative base.

    Args:
        service_name: Name of the service (used in title and logging)
        base: SQLAlchemy declarative base holding the models
        entities: Entity keys to expose (default: every mapped model)
        options: Per-entity CrudOptions keyed by entity key
        overrides: Per-entity CrudOverrides keyed by entity key
        settings: Settings (default: autocrud.yaml plus environment)
        auth: FastAPI dependency returning the request Principal
        session_factory: Session factory (default: engine from settings)
        init_database: Whether to create tables on startup and dispose the
            settings engine on shutdown (ignored with a custom session_factory)

    Returns:
        Configured FastAPI application
    """
    settings = settings or load_settings()
    if session_factory is None:
        configure(settings)

    context = build_context(base, settings, session_factory)
    options = options or {}
    overrides = overrides or {}

    names = list(entities) if entities is not None else context.store.entity_names
    facades = [
        CrudFacade(name, context, options=options.get(name), overrides=overrides.get(name))
        for name in names
    ]

    manage_database = init_database and session_factory is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        _setup_logging_filter()
        if manage_database:
            await init_db(base)
        logger.info(f"{service_name} serving {len(facades)} entities")

        yield

        # Shutdown
        if manage_database:
            await close_db()

    app = FastAPI(
        title=f"{service_name.replace('_', ' ').title()} Service",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.crud_context = context

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": service_name}

    mount_crud_routes(app, facades, auth=auth)

    return app
