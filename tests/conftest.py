"""Test configuration and fixtures for autocrud."""

from typing import Any, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from autocrud.config import CrudSettings
from autocrud.core.metadata import FieldDefinition, MetadataStore, ModelDefinition
from autocrud.core.query_types import QuerySpec
from autocrud.runtime.context import CrudContext
from autocrud.service.backend import SQLAlchemyBackend, StorageBackend

from tests.models import Base, Post, Tag, Team, User


class RecordingBackend(StorageBackend):
    """Backend double that records every call and returns canned results."""

    def __init__(self, rows=None, first=None, total: Optional[int] = None, error: Optional[Exception] = None):
        self.calls = []
        self.rows = rows or []
        self.first = first
        self.total = total
        self.error = error

    def _record(self, *call):
        self.calls.append(call)
        if self.error is not None:
            raise self.error

    def calls_named(self, name: str) -> list:
        return [call for call in self.calls if call[0] == name]

    async def count(self, entity: str, where: dict[str, Any]) -> int:
        self._record("count", entity, where)
        return self.total if self.total is not None else len(self.rows)

    async def find_many(self, entity: str, spec: QuerySpec) -> list[dict[str, Any]]:
        self._record("find_many", entity, spec)
        return list(self.rows)

    async def find_first(self, entity: str, spec: QuerySpec) -> Optional[dict[str, Any]]:
        self._record("find_first", entity, spec)
        return self.first

    async def create(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        self._record("create", entity, data)
        return {"id": 1, **data}

    async def update(self, entity: str, where: dict[str, Any], data: dict[str, Any]) -> dict[str, Any]:
        self._record("update", entity, where, data)
        return {**where, **data}

    async def delete(self, entity: str, where: dict[str, Any]) -> dict[str, Any]:
        self._record("delete", entity, where)
        return dict(where)


def definition_store() -> MetadataStore:
    """Store built from hand-written model definitions."""
    return MetadataStore.build([
        ModelDefinition("User", [
            FieldDefinition("id", "Int"),
            FieldDefinition("uid", "String"),
            FieldDefinition("name", "String"),
            FieldDefinition("active", "Boolean"),
            FieldDefinition("idTeam", "Int"),
            FieldDefinition("metas", "Json"),
        ]),
        ModelDefinition("Team", [
            FieldDefinition("id", "Int"),
            FieldDefinition("name", "String"),
            FieldDefinition("users", "User", is_list=True),
        ]),
        ModelDefinition("Post", [
            FieldDefinition("id", "Int"),
            FieldDefinition("title", "String"),
            FieldDefinition("slug", "String"),
            FieldDefinition("tags", "Tag", is_list=True),
        ]),
        ModelDefinition("Tag", [
            FieldDefinition("id", "Int"),
            FieldDefinition("name", "String"),
            FieldDefinition("posts", "Post", is_list=True),
        ]),
    ])


@pytest.fixture
def recording_backend():
    return RecordingBackend()


@pytest.fixture
def fake_context(recording_backend):
    """Context over hand-written definitions and a recording backend."""
    return CrudContext(store=definition_store(), backend=recording_backend, settings=CrudSettings())


@pytest.fixture(scope="function")
async def engine():
    """In-memory SQLite engine per test function."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def seeded(session_factory):
    """
    Seed data:
        teams: Core(1), Web(2)
        users: Ann(1, Core), Bob(2, Core), Cid(3, Web, inactive)
        tags:  python(1), sql(2), web(3), async(4)
        posts: Hello World(1) -> [1, 2, 3], Async SQL(2) -> [2, 4]
    """
    async with session_factory() as session:
        core = Team(id=1, name="Core")
        web = Team(id=2, name="Web")
        users = [
            User(id=1, uid="ann", name="Ann", email="ann@example.com", team=core, metas={"theme": "dark"}),
            User(id=2, uid="bob", name="Bob", email="bob@example.com", team=core),
            User(id=3, uid="cid", name="Cid", email="cid@example.com", team=web, active=False),
        ]
        tags = [Tag(id=i, name=name) for i, name in enumerate(["python", "sql", "web", "async"], start=1)]
        posts = [
            Post(id=1, title="Hello World", slug="hello-world", tags=tags[:3]),
            Post(id=2, title="Async SQL", slug="async-sql", tags=[tags[1], tags[3]]),
        ]
        session.add_all([core, web, *users, *tags, *posts])
        await session.commit()


@pytest.fixture
def backend(session_factory):
    return SQLAlchemyBackend.from_declarative(Base, session_factory)


@pytest.fixture
def context(backend, seeded):
    """Context over the test models, backed by seeded SQLite."""
    return CrudContext(store=MetadataStore.from_declarative(Base), backend=backend, settings=CrudSettings())
