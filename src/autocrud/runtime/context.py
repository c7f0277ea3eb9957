"""
Execution context shared by the builders and the facade.

Contains all dependencies needed while handling a request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Union

from ..config import CrudSettings

if TYPE_CHECKING:
    from ..core.metadata import MetadataStore
    from ..service.backend import StorageBackend


@dataclass
class Principal:
    """
    Represents the authenticated user/service making the request.

    Handed to hooks through CrudOptions.principal.
    """
    id: Optional[Union[int, str]] = None
    roles: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class CrudContext:
    """
    Process-wide dependencies, built once at startup.

    Contains:
    - store: metadata with inferred relations (read-only)
    - backend: storage backend issuing the actual calls
    - settings: defaults for pagination, identifiers and the metas field
    """
    store: "MetadataStore"
    backend: "StorageBackend"
    settings: CrudSettings = field(default_factory=CrudSettings)
