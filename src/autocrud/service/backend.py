"""
Storage backends for autocrud.

A backend exposes six primitives keyed by entity name:
- count(entity, where)
- find_many(entity, spec)
- find_first(entity, spec)
- create(entity, data)
- update(entity, where, data)
- delete(entity, where)

Failures surface as StorageError with one of the codes in core.errors.

Usage:
    from autocrud.service import SQLAlchemyBackend, get_session_maker

    backend = SQLAlchemyBackend.from_declarative(Base, get_session_maker())
    rows = await backend.find_many("user", QuerySpec(where={"name": "Ann"}, take=10))
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, AsyncIterator, Callable, Optional

from sqlalchemy import and_, false, func, inspect, not_, or_, select, true
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.errors import (
    BACKEND_ERROR,
    CONSTRAINT_VIOLATION,
    RECORD_NOT_FOUND,
    UNIQUE_VIOLATION,
    MetadataError,
    StorageError,
    ValidationError,
)
from ..core.metadata import entity_model_map, get_model_keys
from ..core.query_types import QuerySpec


logger = logging.getLogger(__name__)


# Operators that match a relation by the related records' primary key
RELATION_ID_OPERATORS = {"equals", "in", "notIn", "hasEvery", "hasSome"}


class StorageBackend(ABC):
    """Storage primitives consumed by the query and mutation builders."""

    @abstractmethod
    async def count(self, entity: str, where: dict[str, Any]) -> int:
        """Count records matching `where`."""

    @abstractmethod
    async def find_many(self, entity: str, spec: QuerySpec) -> list[dict[str, Any]]:
        """Fetch records matching the spec."""

    @abstractmethod
    async def find_first(self, entity: str, spec: QuerySpec) -> Optional[dict[str, Any]]:
        """Fetch the first record matching the spec, or None."""

    @abstractmethod
    async def create(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        """Create a record. Relation fields carry connect directives."""

    @abstractmethod
    async def update(self, entity: str, where: dict[str, Any], data: dict[str, Any]) -> dict[str, Any]:
        """Update the first record matching `where`."""

    @abstractmethod
    async def delete(self, entity: str, where: dict[str, Any]) -> dict[str, Any]:
        """Delete the first record matching `where` and return it."""


class SQLAlchemyBackend(StorageBackend):
    """
    Storage backend over SQLAlchemy async sessions.

    Every call runs in its own session and commits on success.
    """

    def __init__(
        self,
        models: dict[str, type],
        session_factory: Callable[[], AsyncSession],
    ):
        self.models = models
        self.session_factory = session_factory

    @classmethod
    def from_declarative(
        cls,
        base: Any,
        session_factory: Callable[[], AsyncSession],
    ) -> "SQLAlchemyBackend":
        """Create a backend serving every model mapped on `base`."""
        return cls(entity_model_map(base), session_factory)

    def _get_model(self, entity: str) -> type:
        """Get model by entity name."""
        model = self.models.get(entity)
        if model is None:
            raise MetadataError(f"Unknown entity: {entity}. Available: {list(self.models)}")
        return model

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """Open a session and translate driver errors into StorageError."""
        async with self.session_factory() as session:
            try:
                yield session
            except IntegrityError as e:
                await session.rollback()
                raise _integrity_error(e) from e
            except SQLAlchemyError as e:
                await session.rollback()
                raise StorageError(BACKEND_ERROR, str(getattr(e, "orig", None) or e)) from e

    # -------------------------------------------------------------------------
    # Primitives
    # -------------------------------------------------------------------------

    async def count(self, entity: str, where: dict[str, Any]) -> int:
        model = self._get_model(entity)
        stmt = select(model).where(*self._compile_where(model, where or {}))

        async with self._session() as session:
            count_stmt = select(func.count()).select_from(stmt.subquery())
            result = await session.execute(count_stmt)
            return result.scalar() or 0

    async def find_many(self, entity: str, spec: QuerySpec) -> list[dict[str, Any]]:
        model = self._get_model(entity)
        stmt = self._build_select(model, spec)

        if spec.skip:
            stmt = stmt.offset(spec.skip)
        if spec.take is not None:
            stmt = stmt.limit(spec.take)

        async with self._session() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()
            return [self._model_to_dict(row, spec.select, spec.include) for row in rows]

    async def find_first(self, entity: str, spec: QuerySpec) -> Optional[dict[str, Any]]:
        model = self._get_model(entity)
        stmt = self._build_select(model, spec).limit(1)

        async with self._session() as session:
            result = await session.execute(stmt)
            row = result.scalars().first()
            if row is None:
                return None
            return self._model_to_dict(row, spec.select, spec.include)

    async def create(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        model = self._get_model(entity)

        async with self._session() as session:
            instance = model()
            session.add(instance)
            with session.no_autoflush:
                await self._apply_data(session, instance, data)
            await session.commit()
            await session.refresh(instance)
            return self._model_to_dict(instance)

    async def update(self, entity: str, where: dict[str, Any], data: dict[str, Any]) -> dict[str, Any]:
        model = self._get_model(entity)
        if not where:
            raise ValidationError("Filters required for update")

        mapper = inspect(model)
        touched = [key for key in data if key in mapper.relationships]

        async with self._session() as session:
            instance = await self._find_instance(session, model, where, touched)
            with session.no_autoflush:
                await self._apply_data(session, instance, data)
            await session.commit()
            await session.refresh(instance)
            return self._model_to_dict(instance)

    async def delete(self, entity: str, where: dict[str, Any]) -> dict[str, Any]:
        model = self._get_model(entity)
        if not where:
            raise ValidationError("Filters required for delete")

        # Relationships are loaded so association rows and child keys are handled
        relations = [rel.key for rel in inspect(model).relationships]

        async with self._session() as session:
            instance = await self._find_instance(session, model, where, relations)
            snapshot = self._model_to_dict(instance)
            await session.delete(instance)
            await session.commit()
            return snapshot

    # -------------------------------------------------------------------------
    # Query building
    # -------------------------------------------------------------------------

    def _build_select(self, model: type, spec: QuerySpec):
        """Build a select statement with filters, order and relation loaders."""
        stmt = select(model).where(*self._compile_where(model, spec.where or {}))

        for field_name, direction in (spec.order_by or {}).items():
            column = self._get_column(model, field_name)
            if column is None:
                logger.debug(f"Skipping unknown order field {model.__name__}.{field_name}")
                continue
            stmt = stmt.order_by(column.desc() if direction == "desc" else column.asc())

        loaders = {}
        loaders.update({name: True for name, on in (spec.select or {}).items() if on})
        loaders.update(spec.include or {})
        options = self._load_options(model, loaders)
        if options:
            stmt = stmt.options(*options)

        return stmt

    async def _find_instance(self, session: AsyncSession, model: type, where: dict, relations: list[str]):
        stmt = select(model).where(*self._compile_where(model, where)).limit(1)
        options = self._load_options(model, {name: True for name in relations})
        if options:
            stmt = stmt.options(*options)

        result = await session.execute(stmt)
        instance = result.scalars().first()
        if instance is None:
            raise StorageError(RECORD_NOT_FOUND, f"No '{model.__name__}' record found for {where}")
        return instance

    def _load_options(self, model: type, include: dict[str, Any], parent=None) -> list:
        """Build selectinload options. Nested {"include": {...}} dicts chain loaders."""
        mapper = inspect(model)
        options = []

        for name, value in include.items():
            if not value or name not in mapper.relationships:
                continue
            attr = getattr(model, name)
            loader = parent.selectinload(attr) if parent is not None else selectinload(attr)
            options.append(loader)

            if isinstance(value, dict) and isinstance(value.get("include"), dict):
                target = mapper.relationships[name].mapper.class_
                options.extend(self._load_options(target, value["include"], loader))

        return options

    @staticmethod
    def _get_column(model: type, name: str):
        mapper = inspect(model)
        if name not in mapper.column_attrs:
            return None
        return getattr(model, name)

    def _compile_where(self, model: type, where: dict[str, Any]) -> list:
        """Compile a predicate tree into a list of SQLAlchemy conditions (AND-ed)."""
        conditions = []

        for key, value in where.items():
            if key == "AND":
                items = value if isinstance(value, list) else [value]
                conditions.append(and_(true(), *[self._compile_node(model, w) for w in items]))
            elif key == "OR":
                items = value if isinstance(value, list) else [value]
                conditions.append(or_(false(), *[self._compile_node(model, w) for w in items]))
            elif key == "NOT":
                items = value if isinstance(value, list) else [value]
                conditions.append(not_(and_(true(), *[self._compile_node(model, w) for w in items])))
            else:
                condition = self._compile_field(model, key, value)
                if condition is not None:
                    conditions.append(condition)

        return conditions

    def _compile_node(self, model: type, where: dict[str, Any]):
        return and_(true(), *self._compile_where(model, where))

    def _compile_field(self, model: type, name: str, value: Any):
        mapper = inspect(model)

        if name in mapper.relationships:
            return self._compile_relation(model, mapper.relationships[name], value)

        column = self._get_column(model, name)
        if column is None:
            logger.debug(f"Skipping unknown filter field {model.__name__}.{name}")
            return None

        if isinstance(value, dict):
            return self._compile_operators(column, value)
        if value is None:
            return column.is_(None)
        return column == value

    def _compile_operators(self, column, ops: dict[str, Any]):
        insensitive = ops.get("mode") == "insensitive"
        conditions = []

        for op, operand in ops.items():
            if op == "mode":
                continue
            if op == "equals":
                conditions.append(column.is_(None) if operand is None else column == operand)
            elif op == "not":
                if isinstance(operand, dict):
                    conditions.append(not_(self._compile_operators(column, operand)))
                else:
                    conditions.append(column.is_not(None) if operand is None else column != operand)
            elif op == "in":
                conditions.append(column.in_(list(operand)))
            elif op == "notIn":
                conditions.append(column.not_in(list(operand)))
            elif op == "contains":
                if insensitive:
                    conditions.append(column.icontains(operand, autoescape=True))
                else:
                    conditions.append(column.contains(operand, autoescape=True))
            elif op == "startsWith":
                if insensitive:
                    conditions.append(column.istartswith(operand, autoescape=True))
                else:
                    conditions.append(column.startswith(operand, autoescape=True))
            elif op == "endsWith":
                if insensitive:
                    conditions.append(column.iendswith(operand, autoescape=True))
                else:
                    conditions.append(column.endswith(operand, autoescape=True))
            elif op == "gt":
                conditions.append(column > operand)
            elif op == "gte":
                conditions.append(column >= operand)
            elif op == "lt":
                conditions.append(column < operand)
            elif op == "lte":
                conditions.append(column <= operand)
            elif op == "hasEvery":
                conditions.append(self._contains_all(column, list(operand)))
            elif op == "hasSome":
                conditions.append(self._contains_any(column, list(operand)))
            else:
                raise StorageError(BACKEND_ERROR, f"Unsupported filter operator '{op}'")

        return and_(true(), *conditions)

    @staticmethod
    def _is_array(column) -> bool:
        return column.type.__class__.__name__.lower() == "array"

    def _contains_all(self, column, values: list):
        if self._is_array(column):
            return column.contains(values)
        return and_(true(), *[column.contains(str(v), autoescape=True) for v in values])

    def _contains_any(self, column, values: list):
        if self._is_array(column):
            return column.overlap(values)
        return or_(false(), *[column.contains(str(v), autoescape=True) for v in values])

    def _compile_relation(self, model: type, relationship, value: Any):
        """
        Compile a filter on a relationship.

        {"tags": {"in": [1, 2]}}          any related id in [1, 2]
        {"tags": {"hasEvery": [1, 2]}}    related to both 1 and 2
        {"team": {"name": "core"}}        related record matches the nested filter
        {"tags": {"some"|"every"|"none": {...}}}
        """
        target = relationship.mapper.class_
        attr = getattr(model, relationship.key)
        match = attr.any if relationship.uselist else attr.has
        pk = getattr(target, get_model_keys(target)[0])

        if value is None:
            return ~match() if relationship.uselist else attr.is_(None)

        if not isinstance(value, dict):
            return match(pk == value)

        if set(value) <= RELATION_ID_OPERATORS:
            conditions = []
            for op, operand in value.items():
                if op == "equals":
                    conditions.append(match(pk == operand))
                elif op in ("in", "hasSome"):
                    conditions.append(match(pk.in_(list(operand))))
                elif op == "notIn":
                    conditions.append(~match(pk.in_(list(operand))))
                elif op == "hasEvery":
                    conditions.append(and_(true(), *[match(pk == v) for v in operand]))
            return and_(true(), *conditions)

        if set(value) <= {"some", "every", "none"}:
            conditions = []
            for op, nested in value.items():
                condition = self._compile_node(target, nested or {})
                if op == "some":
                    conditions.append(match(condition))
                elif op == "none":
                    conditions.append(~match(condition))
                else:
                    conditions.append(~match(not_(condition)))
            return and_(true(), *conditions)

        return match(self._compile_node(target, value))

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def _apply_data(self, session: AsyncSession, instance: Any, data: dict[str, Any]) -> None:
        mapper = inspect(type(instance))

        for key, value in data.items():
            if key in mapper.relationships:
                await self._apply_relation(session, instance, mapper.relationships[key], value)
            elif key in mapper.column_attrs:
                column = mapper.column_attrs[key].columns[0]
                setattr(instance, key, self._coerce_value(column, key, value))
            else:
                raise StorageError(
                    BACKEND_ERROR,
                    f"Unknown argument '{key}' for {type(instance).__name__}",
                )

    async def _apply_relation(self, session: AsyncSession, instance: Any, relationship, value: Any) -> None:
        """Apply connect/disconnect directives to a relationship attribute."""
        target = relationship.mapper.class_
        key = relationship.key

        if value is None and not relationship.uselist:
            setattr(instance, key, None)
            return
        if not isinstance(value, dict):
            raise StorageError(
                BACKEND_ERROR,
                f"Relation '{key}' expects connect/disconnect directives",
            )

        connect = value.get("connect")
        disconnect = value.get("disconnect")

        if relationship.uselist:
            collection = getattr(instance, key)
            for ref in _as_list(disconnect):
                related = await self._load_related(session, target, ref, required=False)
                if related is not None and related in collection:
                    collection.remove(related)
            for ref in _as_list(connect):
                related = await self._load_related(session, target, ref, required=True)
                if related not in collection:
                    collection.append(related)
        else:
            if disconnect:
                setattr(instance, key, None)
            if connect:
                setattr(instance, key, await self._load_related(session, target, connect, required=True))

    async def _load_related(self, session: AsyncSession, target: type, ref: Any, required: bool):
        """Load a record to connect. `ref` is {"id": ...} or any unique-field dict."""
        keys = get_model_keys(target)
        if not isinstance(ref, dict):
            ref = {keys[0]: ref}

        if set(ref) == {keys[0]}:
            column = inspect(target).column_attrs[keys[0]].columns[0]
            related = await session.get(target, self._coerce_value(column, keys[0], ref[keys[0]]))
        else:
            result = await session.execute(select(target).filter_by(**ref).limit(1))
            related = result.scalars().first()

        if related is None and required:
            raise StorageError(
                RECORD_NOT_FOUND,
                f"No '{target.__name__}' record found to connect with {ref}",
            )
        return related

    def _coerce_value(self, column, key: str, value: Any) -> Any:
        """
        Coerce a payload value to match the column type.

        Handles:
        - int -> str for String columns
        - str -> date for Date columns (YYYY-MM-DD format)
        - str -> datetime for DateTime columns (ISO 8601)
        - str -> int for Integer columns
        """
        if value is None:
            return value

        col_type = column.type.__class__.__name__.lower()

        if col_type in ("string", "text", "varchar"):
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return str(value)

        elif col_type == "date":
            if isinstance(value, str):
                try:
                    return datetime.strptime(value[:10], "%Y-%m-%d").date()
                except ValueError:
                    raise ValidationError(f"Invalid date for '{key}': {value}")
            if isinstance(value, datetime):
                return value.date()

        elif col_type in ("datetime", "timestamp"):
            if isinstance(value, str):
                try:
                    return datetime.fromisoformat(value.replace("Z", "+00:00"))
                except ValueError:
                    raise ValidationError(f"Invalid datetime for '{key}': {value}")
            if isinstance(value, date) and not isinstance(value, datetime):
                return datetime(value.year, value.month, value.day)

        elif col_type in ("integer", "biginteger", "smallinteger"):
            if isinstance(value, str) and value.strip().lstrip("-").isdigit():
                return int(value)

        return value

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def _model_to_dict(
        self,
        instance: Any,
        select_fields: Optional[dict[str, bool]] = None,
        include: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Convert a model instance to a dict of scalars plus included relations."""
        mapper = inspect(type(instance))
        include = include or {}

        if select_fields:
            names = [name for name, on in select_fields.items() if on]
        else:
            names = [prop.key for prop in mapper.column_attrs]
            names += [name for name, on in include.items() if on and name in mapper.relationships]

        result = {}
        for name in names:
            if name in mapper.relationships:
                nested = include.get(name)
                nested_include = nested.get("include") if isinstance(nested, dict) else None
                result[name] = self._related_to_dict(getattr(instance, name), nested_include)
            elif name in mapper.column_attrs:
                result[name] = getattr(instance, name)

        return result

    def _related_to_dict(self, value: Any, include: Optional[dict[str, Any]]) -> Any:
        if value is None:
            return None
        if isinstance(value, (list, set, tuple)):
            return [self._model_to_dict(item, include=include) for item in value]
        return self._model_to_dict(value, include=include)


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _integrity_error(error: IntegrityError) -> StorageError:
    """Classify an IntegrityError by driver code or message."""
    orig = error.orig
    message = str(orig) if orig is not None else str(error)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)

    if code == "23505" or "unique" in message.lower() or "duplicate" in message.lower():
        return StorageError(UNIQUE_VIOLATION, message)
    return StorageError(CONSTRAINT_VIOLATION, message)
