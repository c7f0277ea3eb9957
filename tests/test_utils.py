import pytest

from autocrud.core.utils import (
    call_hook,
    coerce_scalar,
    is_integer_type,
    is_truthy,
    lower_first,
    parse_int,
    pluralize,
    slugify,
    to_kebab_case,
)


@pytest.mark.parametrize("word, plural", [
    ("user", "users"),
    ("category", "categories"),
    ("day", "days"),
    ("box", "boxes"),
    ("match", "matches"),
    ("person", "people"),
    ("Person", "People"),
    ("blogPost", "blogPosts"),
    ("teamMember", "teamMembers"),
    ("knife", "knives"),
    ("news", "news"),
    ("analysis", "analyses"),
    ("axis", "axes"),
    ("crisis", "crises"),
    ("quiz", "quizzes"),
    ("blogStatus", "blogStatuses"),
])
def test_pluralize(word, plural):
    assert pluralize(word) == plural


def test_case_helpers():
    assert lower_first("BlogPost") == "blogPost"
    assert lower_first("") == ""
    assert to_kebab_case("blogPosts") == "blog-posts"
    assert to_kebab_case("users") == "users"


def test_slugify_folds_accents_and_separators():
    assert slugify("Hello World") == "hello-world"
    assert slugify("Crème  brûlée!") == "creme-brulee"
    assert slugify("  snake_case and-dash ") == "snake-case-and-dash"


def test_parse_int_is_strict():
    assert parse_int("42") == 42
    assert parse_int(" -7 ") == -7
    assert parse_int("12abc") is None
    assert parse_int("abc-slug") is None
    assert parse_int(True) is None
    assert parse_int(None) is None


def test_integer_type_tags():
    for tag in ("int", "Int", "BigInt", "integer", "biginteger", "smallinteger"):
        assert is_integer_type(tag)
    assert not is_integer_type("String")
    assert not is_integer_type(None)


def test_is_truthy():
    assert is_truthy("1")
    assert is_truthy("true")
    assert is_truthy("anything")
    for value in ("", "0", "false", "No", "off"):
        assert not is_truthy(value)
    assert not is_truthy(["1", "0"])


def test_coerce_scalar():
    assert coerce_scalar("5", "Int") == 5
    assert coerce_scalar("2.5", "float") == 2.5
    assert coerce_scalar("true", "Boolean") is True
    assert coerce_scalar("off", "bool") is False
    assert coerce_scalar("abc", "String") == "abc"
    with pytest.raises(ValueError):
        coerce_scalar("abc", "Int")
    with pytest.raises(ValueError):
        coerce_scalar("maybe", "bool")


async def test_call_hook_accepts_sync_and_async():
    def double(value):
        return value * 2

    async def triple(value):
        return value * 3

    assert await call_hook(double, 2) == 4
    assert await call_hook(triple, 2) == 6
