import logging

from autocrud.core.inference import infer_relations
from autocrud.core.metadata import EntityDescriptor, ManyToManyRelation, OneToManyRelation


def entities(**field_map):
    return {
        name: EntityDescriptor(name=name, model_name=name[:1].upper() + name[1:], fields={f: "String" for f in fields})
        for name, fields in field_map.items()
    }


def test_mutual_plural_fields_give_many_to_many_on_both_sides():
    result = infer_relations(entities(post=["id", "tags"], tag=["id", "posts"]))

    assert result["post"].relations == {"tag": ManyToManyRelation(target="tag", plural="tags")}
    assert result["tag"].relations == {"post": ManyToManyRelation(target="post", plural="posts")}


def test_one_sided_plural_gives_no_relation():
    result = infer_relations(entities(post=["id", "tags"], tag=["id", "name"]))

    assert result["post"].relations == {}
    assert result["tag"].relations == {}


def test_id_field_with_reverse_plural_gives_one_to_many():
    result = infer_relations(entities(user=["id", "idTeam"], team=["id", "users"]))

    assert result["user"].relations == {"team": OneToManyRelation(target="team", field="idTeam")}
    assert result["team"].relations == {}


def test_id_field_without_reverse_plural_gives_nothing():
    result = infer_relations(entities(user=["id", "idTeam"], team=["id", "name"]))

    assert result["user"].relations == {}


def test_camel_case_entities():
    result = infer_relations(entities(blogPost=["id", "idAuthor"], author=["id", "blogPosts"]))

    assert result["blogPost"].relations == {"author": OneToManyRelation(target="author", field="idAuthor")}


def test_irregular_plurals_are_recognised():
    result = infer_relations(entities(analysis=["id", "idPerson"], person=["id", "analyses"]))

    assert result["analysis"].relations == {"person": OneToManyRelation(target="person", field="idPerson")}


def test_one_to_many_replaces_many_to_many_with_warning(caplog):
    data = entities(order=["id", "items", "idItem"], item=["id", "orders"])

    with caplog.at_level(logging.WARNING):
        result = infer_relations(data)

    assert result["order"].relations == {"item": OneToManyRelation(target="item", field="idItem")}
    assert result["item"].relations == {"order": ManyToManyRelation(target="order", plural="orders")}
    assert "replaced" in caplog.text


def test_pluralizer_is_injectable():
    result = infer_relations(
        entities(user=["id", "teamList"], team=["id", "userList"]),
        pluralize=lambda word: word + "List",
    )

    assert result["user"].relations == {"team": ManyToManyRelation(target="team", plural="teamList")}
    assert result["team"].relations == {"user": ManyToManyRelation(target="user", plural="userList")}
