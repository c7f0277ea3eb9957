"""
Utility functions for autocrud.

Includes:
- Case conversion (first-letter case, camelCase -> kebab-case)
- Pluralization used by relation inference
- Slug generation used by upsert rules
- Scalar parsing of raw query-string values
- Hook invocation (sync or async callables)
"""

from __future__ import annotations

import inspect
import re
import unicodedata
from typing import Any, Callable, Optional

import inflection


# =============================================================================
# Case conversion utilities
# =============================================================================

_CAMEL_TO_SNAKE_PATTERN = re.compile(r'(?<!^)(?=[A-Z])')


def lower_first(name: str) -> str:
    """
    Lower-case the first character only.

    Examples:
        User -> user
        BlogPost -> blogPost
    """
    return name[:1].lower() + name[1:]


def upper_first(name: str) -> str:
    """
    Upper-case the first character only.

    Examples:
        user -> User
        blogPost -> BlogPost
    """
    return name[:1].upper() + name[1:]


def to_snake_case(name: str) -> str:
    """
    Convert camelCase to snake_case.

    Examples:
        blogPost -> blog_post
        HTTPResponse -> http_response
    """
    result = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', name)
    result = _CAMEL_TO_SNAKE_PATTERN.sub('_', result)
    return result.lower()


def to_kebab_case(name: str) -> str:
    """
    Convert camelCase to kebab-case.

    Examples:
        blogPosts -> blog-posts
        _internalThing -> internal-thing
    """
    return to_snake_case(name).strip("_").replace("_", "-")


# =============================================================================
# Pluralization
# =============================================================================

def pluralize(word: str) -> str:
    """
    Convert a singular English word to its plural form.

    Delegates to `inflection`, whose rules only touch the end of the word, so
    camelCase names pluralize their last segment.

    Examples:
        user -> users
        blogPost -> blogPosts
        person -> people
        analysis -> analyses
    """
    return inflection.pluralize(word)


# =============================================================================
# Slugs
# =============================================================================

_SLUG_STRIP_PATTERN = re.compile(r"[^\w\s-]")
_SLUG_SEPARATOR_PATTERN = re.compile(r"[\s_-]+")


def slugify(text: Any, separator: str = "-") -> str:
    """
    Convert text to a URL-friendly slug.

    Accents are folded to ASCII, the result is lower-cased and any run of
    whitespace, underscores or dashes becomes a single separator.

    Examples:
        "Hello World" -> "hello-world"
        "Crème brûlée!" -> "creme-brulee"
    """
    value = unicodedata.normalize("NFKD", str(text)).encode("ascii", "ignore").decode("ascii")
    value = _SLUG_STRIP_PATTERN.sub("", value.lower())
    return _SLUG_SEPARATOR_PATTERN.sub(separator, value).strip(separator)


# =============================================================================
# Scalar parsing
# =============================================================================

_INT_PATTERN = re.compile(r"^[+-]?\d+$")

INTEGER_TYPES = {"int", "integer", "biginteger", "smallinteger", "bigint"}
FLOAT_TYPES = {"float", "decimal", "numeric"}
BOOLEAN_TYPES = {"bool", "boolean"}

FALSY_STRINGS = {"", "0", "false", "no", "off"}


def parse_int(value: Any) -> Optional[int]:
    """
    Parse an integer strictly. Returns None when value is not an integer.

    Examples:
        "42" -> 42
        " 7 " -> 7
        "abc-slug" -> None
        "12abc" -> None
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INT_PATTERN.match(value.strip()):
        return int(value.strip())
    return None


def is_integer_type(field_type: Optional[str]) -> bool:
    """Check whether a declared field type tag denotes an integer."""
    return bool(field_type) and field_type.lower() in INTEGER_TYPES


def is_truthy(value: Any) -> bool:
    """Interpret a query-string flag."""
    if isinstance(value, (list, tuple)):
        value = value[-1] if value else ""
    if isinstance(value, str):
        return value.strip().lower() not in FALSY_STRINGS
    return bool(value)


def coerce_scalar(value: Any, field_type: Optional[str]) -> Any:
    """
    Coerce a raw query-string value to the declared field type.

    Raises ValueError when the value cannot represent that type.
    """
    if not isinstance(value, str) or not field_type:
        return value

    type_name = field_type.lower()
    if type_name in INTEGER_TYPES:
        parsed = parse_int(value)
        if parsed is None:
            raise ValueError(f"'{value}' is not an integer")
        return parsed
    if type_name in FLOAT_TYPES:
        return float(value)
    if type_name in BOOLEAN_TYPES:
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off"):
            return False
        raise ValueError(f"'{value}' is not a boolean")
    return value


# =============================================================================
# Hooks
# =============================================================================


async def call_hook(hook: Callable[..., Any], *args: Any) -> Any:
    """Call a hook that may be a plain function or a coroutine function."""
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result
