"""
FastAPI router for autocrud entities.

Endpoints (mounted under the entity's kebab-cased plural, e.g. /blog-posts):
- GET    /crudag       - Liveness probe, returns "OK"
- POST   /             - Create record
- PUT    /{id}         - Update record
- DELETE /{id}         - Delete record
- GET    /             - List records (page, limit, by, order, q, count, select, include, fetch-*, field filters)
- GET    /{id}         - Get one record
- PUT    /{id}/metas   - Merge into the record's metadata field

Successful responses use the envelope:
    {"result": "success", "status": 200, "data": ..., "message": "...", "count": ...}

Errors are raised as HTTPException with detail={"error": message}.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, Union

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse

from ..core.errors import (
    AutoCrudError,
    BackendError,
    ConflictError,
    MetadataError,
    NotFoundError,
    ValidationError,
)
from ..core.request_parser import normalize_query_params
from ..core.utils import pluralize, to_kebab_case
from ..facade import CrudFacade
from ..runtime.context import Principal


logger = logging.getLogger(__name__)


# Order matters: first match wins
ERROR_STATUS = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (MetadataError, 400),
    (BackendError, 500),
)


async def get_principal() -> Optional[Principal]:
    """
    Default principal dependency: anonymous.

    Pass `auth=` to create_crud_router to extract a Principal from a JWT
    token or session instead.
    """
    return None


def error_status(error: AutoCrudError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


@contextmanager
def http_errors(action: str, model_name: str) -> Iterator[None]:
    """Translate autocrud errors into HTTPException."""
    try:
        yield
    except AutoCrudError as e:
        status = error_status(e)
        if status >= 500:
            logger.error(f"Error {action} {model_name}: {e}")
        raise HTTPException(status_code=status, detail={"error": str(e)}) from e


def respond(data: Any = None, message: str = "", status: int = 200, **props: Any) -> dict[str, Any]:
    """Build the response envelope."""
    envelope = {
        "result": "success" if 200 <= status <= 299 else "error",
        "status": status,
        "data": data,
        "message": message,
    }
    envelope.update(props)
    return envelope


def create_crud_router(
    facade: CrudFacade,
    auth: Optional[Callable[..., Any]] = None,
) -> APIRouter:
    """
    Create a router exposing the facade's operations.

    Args:
        facade: Facade of the entity to expose
        auth: FastAPI dependency returning a Principal (or None)
    """
    router = APIRouter()
    principal_dependency = auth or get_principal
    model_name = facade.model_name

    @router.get("/crudag", response_class=PlainTextResponse)
    async def liveness() -> str:
        return "OK"

    @router.post("/")
    async def create_record(
        payload: dict[str, Any] = Body(...),
        principal: Optional[Principal] = Depends(principal_dependency),
    ) -> dict[str, Any]:
        with http_errors("creating", model_name):
            response = await facade.create(payload, principal=principal)
        return respond(response.data, f"{model_name} created successfully")

    @router.put("/{id}")
    async def update_record(
        id: str,
        request: Request,
        payload: dict[str, Any] = Body(...),
        principal: Optional[Principal] = Depends(principal_dependency),
    ) -> dict[str, Any]:
        params = normalize_query_params(request.query_params.multi_items())
        with http_errors("updating", model_name):
            response = await facade.update(id, payload, params, principal=principal)
        return respond(response.data, f"{model_name} updated successfully")

    @router.delete("/{id}")
    async def delete_record(
        id: str,
        principal: Optional[Principal] = Depends(principal_dependency),
    ) -> dict[str, Any]:
        with http_errors("deleting", model_name):
            response = await facade.delete(id, principal=principal)
        return respond(response.data, f"{model_name} deleted successfully")

    @router.get("/")
    async def list_records(
        request: Request,
        principal: Optional[Principal] = Depends(principal_dependency),
    ) -> dict[str, Any]:
        params = normalize_query_params(request.query_params.multi_items())
        with http_errors("listing", model_name):
            response = await facade.all(params, principal=principal)
        return respond(response.data, f"{model_name} retrieved successfully", count=response.count)

    @router.get("/{id}")
    async def get_record(
        id: str,
        request: Request,
        principal: Optional[Principal] = Depends(principal_dependency),
    ) -> dict[str, Any]:
        params = normalize_query_params(request.query_params.multi_items())
        with http_errors("retrieving", model_name):
            response = await facade.get(id, params, principal=principal)
        return respond(response.data, f"{model_name} retrieved successfully")

    @router.put("/{id}/metas")
    async def update_record_metas(
        id: str,
        metas: dict[str, Any] = Body(...),
        principal: Optional[Principal] = Depends(principal_dependency),
    ) -> dict[str, Any]:
        with http_errors("updating metas for", model_name):
            response = await facade.update_metas(id, metas, principal=principal)
        return respond(response.data, f"{model_name} updated successfully")

    return router


def entity_prefix(entity: str) -> str:
    """URL prefix of an entity (e.g. blogPost -> /blog-posts)."""
    return "/" + to_kebab_case(pluralize(entity))


def mount_crud_routes(
    app: FastAPI,
    facades: Union[Mapping[str, CrudFacade], Iterable[CrudFacade]],
    auth: Optional[Callable[..., Any]] = None,
) -> None:
    """Mount one router per facade under its entity prefix."""
    items = facades.values() if isinstance(facades, Mapping) else facades
    for facade in items:
        prefix = entity_prefix(facade.entity)
        app.include_router(create_crud_router(facade, auth), prefix=prefix, tags=[facade.model_name])
        logger.debug(f"Mounted {facade.model_name} routes at {prefix}")
