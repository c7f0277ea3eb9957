import logging

import pytest

from autocrud.core.errors import (
    BACKEND_ERROR,
    BackendError,
    ConflictError,
    MetadataError,
    NotFoundError,
    RECORD_NOT_FOUND,
    StorageError,
    UNIQUE_VIOLATION,
    ValidationError,
)
from autocrud.runtime.mutation_builder import MutationBuilder, diff_relation_ids
from autocrud.viewsets.base import CrudOptions, UpsertRule


@pytest.fixture
def builder(fake_context):
    return MutationBuilder(fake_context)


def test_diff_relation_ids():
    assert diff_relation_ids([1, 2, 3], [2, 3, 4]) == ([4], [1])
    assert diff_relation_ids([1, 2], [2, 1]) == ([], [])
    assert diff_relation_ids([], [3, 3, 5]) == ([3, 5], [])


def test_resolve_one_to_many(builder):
    data = {"name": "Ann", "idTeam": "5"}

    assert builder.resolve_relations(data, "user") == {"name": "Ann", "team": {"connect": {"id": 5}}}
    assert data == {"name": "Ann", "idTeam": "5"}


def test_empty_owning_field_is_kept(builder):
    assert builder.resolve_relations({"idTeam": None}, "user") == {"idTeam": None}


def test_resolve_many_to_many(builder):
    payload = builder.resolve_relations({"title": "Hello", "tags": [1, "2", {"id": 3}]}, "post")

    assert payload["tags"] == {"connect": [{"id": 1}, {"id": 2}, {"id": 3}]}


def test_resolve_rejects_bad_related_ids(builder):
    with pytest.raises(ValidationError):
        builder.resolve_relations({"tags": ["python"]}, "post")
    with pytest.raises(ValidationError):
        builder.resolve_relations({"tags": [{"name": "python"}]}, "post")


def test_sanitize_is_pure_and_idempotent(builder, caplog):
    data = {"name": "Ann", "password": "secret", "team": {"connect": {"id": 1}}}

    with caplog.at_level(logging.WARNING):
        clean = builder.sanitize(data, "user")

    assert clean == {"name": "Ann", "team": {"connect": {"id": 1}}}
    assert builder.sanitize(clean, "user") == clean
    assert "password" in data
    assert "password" in caplog.text


def test_upsert_rules(builder, caplog):
    rules = {"slug": UpsertRule(slugify="title"), "permalink": UpsertRule(slugify="title")}

    with caplog.at_level(logging.WARNING):
        result = builder.apply_upsert_rules({"title": "Hello World"}, "post", rules)

    assert result == {"title": "Hello World", "slug": "hello-world"}
    assert "permalink" in caplog.text
    assert builder.apply_upsert_rules({"body": "x"}, "post", rules) == {"body": "x"}


async def test_create_user_connects_team(builder, recording_backend):
    await builder.create({"name": "Ann", "idTeam": 5}, "user")

    assert recording_backend.calls == [("create", "user", {"name": "Ann", "team": {"connect": {"id": 5}}})]


async def test_create_post_connects_tags(builder, recording_backend):
    options = CrudOptions(upsert_rules={"slug": UpsertRule(slugify="title")})

    await builder.create({"title": "Hello World", "tags": [1, 2, 3], "views": 10}, "post", options)

    _, entity, payload = recording_backend.calls[0]
    assert entity == "post"
    assert payload == {
        "title": "Hello World",
        "slug": "hello-world",
        "tags": {"connect": [{"id": 1}, {"id": 2}, {"id": 3}]},
    }


async def test_create_runs_pre_transform_hook(builder, recording_backend):
    async def stamp(data, entity, options):
        return {**data, "active": options.principal is None}

    await builder.create({"name": "Ann"}, "user", CrudOptions(filter_create_data=stamp))

    assert recording_backend.calls[0][2] == {"name": "Ann", "active": True}


async def test_create_validates_arguments(builder, recording_backend):
    with pytest.raises(ValidationError):
        await builder.create(["name"], "user")
    with pytest.raises(ValidationError):
        await builder.create({"name": "Ann"}, "")
    assert recording_backend.calls == []


async def test_create_maps_storage_errors(builder, recording_backend):
    recording_backend.error = StorageError(UNIQUE_VIOLATION, "UNIQUE constraint failed: users.email")
    with pytest.raises(ConflictError, match="^User already exists$"):
        await builder.create({"name": "Ann"}, "user")

    recording_backend.error = StorageError(BACKEND_ERROR, "connection\nlost")
    with pytest.raises(BackendError, match="^connection lost$"):
        await builder.create({"name": "Ann"}, "user")


async def test_update_diffs_many_to_many(builder, recording_backend):
    recording_backend.first = {"tags": [{"id": 1}, {"id": 2}, {"id": 3}]}

    await builder.update("1", {"title": "Edited", "tags": [2, 3, 4]}, "post")

    read, write = recording_backend.calls
    assert read[0] == "find_first"
    assert read[2].where == {"id": 1}
    assert read[2].select == {"tags": True}
    assert write == (
        "update",
        "post",
        {"id": 1},
        {"title": "Edited", "tags": {"connect": [{"id": 4}], "disconnect": [{"id": 1}]}},
    )


async def test_update_without_relation_change_drops_key(builder, recording_backend):
    recording_backend.first = {"tags": [{"id": 1}, {"id": 2}]}

    await builder.update("1", {"tags": [2, 1]}, "post")

    assert recording_backend.calls[-1] == ("update", "post", {"id": 1}, {})


async def test_update_missing_record(builder, recording_backend):
    with pytest.raises(NotFoundError):
        await builder.update("9", {"tags": [1]}, "post")


async def test_update_connects_team_by_uid(builder, recording_backend):
    await builder.update("ann", {"idTeam": "2", "password": "x"}, "user")

    assert recording_backend.calls == [("update", "user", {"uid": "ann"}, {"team": {"connect": {"id": 2}}})]


async def test_update_runs_pre_transform_hook(builder, recording_backend):
    options = CrudOptions(filter_update_data=lambda data, entity, options: {**data, "name": data["name"].strip()})

    await builder.update(1, {"name": " Ann "}, "user", options)

    assert recording_backend.calls[-1][3] == {"name": "Ann"}


async def test_update_maps_not_found(builder, recording_backend):
    recording_backend.error = StorageError(RECORD_NOT_FOUND, "No 'User' record found")

    with pytest.raises(NotFoundError):
        await builder.update(1, {"name": "Ann"}, "user")


async def test_delete(builder, recording_backend):
    assert await builder.delete("3", "user") == {"id": 3}
    assert recording_backend.calls == [("delete", "user", {"id": 3})]


async def test_update_metas_merges(builder, recording_backend):
    recording_backend.first = {"metas": {"theme": "dark", "lang": "es"}}

    await builder.update_metas("1", {"lang": "en", "beta": True}, "user")

    read, write = recording_backend.calls
    assert read[2].select == {"metas": True}
    assert write == ("update", "user", {"id": 1}, {"metas": {"theme": "dark", "lang": "en", "beta": True}})


async def test_update_metas_errors(builder, recording_backend):
    with pytest.raises(MetadataError):
        await builder.update_metas("1", {"a": 1}, "post")
    with pytest.raises(ValidationError):
        await builder.update_metas("1", ["a"], "user")
    with pytest.raises(NotFoundError):
        await builder.update_metas("1", {"a": 1}, "user")
