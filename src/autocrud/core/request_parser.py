"""
Request parser for the list/get query-string sub-protocol.

Recognized parameters:
    page, limit        pagination (positive integers)
    by, order          single-field sort
    q                  free-text search across queryable fields
    count              return only the total count
    select             comma-separated field projection
    include            comma-separated relations to eager-load
    fetch-<name>       eager-load one relation
    <field>            equality filter; "a,b" -> one of, "a|b" -> contains all of

A parameter bag maps names to a string or, for repeated parameters, a list
of strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from .utils import is_truthy, parse_int


ParamValue = Union[str, List[str]]

FETCH_PREFIX = "fetch-"

RESERVED_PARAMS = {"page", "limit", "by", "order", "q", "count", "select", "include"}

SORT_DIRECTIONS = ("asc", "desc")


def normalize_query_params(
    items: Union[Mapping[str, Any], Iterable[Tuple[str, Any]], None],
) -> dict[str, ParamValue]:
    """
    Normalize raw query parameters into a bag.

    Accepts a mapping or an iterable of (key, value) pairs (as produced by
    Starlette's `query_params.multi_items()`). Repeated keys collect into a
    list; non-string scalars are converted to strings.

    Example:
        [("tags", "1"), ("tags", "2"), ("page", "3")]
        -> {"tags": ["1", "2"], "page": "3"}
    """
    if items is None:
        return {}

    pairs = items.items() if isinstance(items, Mapping) else items
    bag: dict[str, ParamValue] = {}

    for key, value in pairs:
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            text = item if isinstance(item, str) else str(item)
            if key not in bag:
                bag[key] = text
            elif isinstance(bag[key], list):
                bag[key].append(text)
            else:
                bag[key] = [bag[key], text]

    return bag


def first_value(value: Optional[ParamValue]) -> Optional[str]:
    """Get the last given value of a parameter (later values win)."""
    if isinstance(value, list):
        return value[-1] if value else None
    return value


def split_csv(value: Optional[ParamValue]) -> list[str]:
    """
    Split a comma-separated parameter, flattening repeated parameters.

    Example:
        "id,name" -> ["id", "name"]
        ["id,name", "email"] -> ["id", "name", "email"]
    """
    if value is None:
        return []
    values = value if isinstance(value, list) else [value]
    result = []
    for item in values:
        result.extend(part.strip() for part in str(item).split(",") if part.strip())
    return result


def parse_filter_value(value: ParamValue) -> tuple[str, Any]:
    """
    Split a raw filter value into an operator and operand.

    Examples:
        "5"           -> ("equals", "5")
        "1,2,3"       -> ("in", ["1", "2", "3"])
        "red|blue"    -> ("hasEvery", ["red", "blue"])
        ["1", "2"]    -> ("in", ["1", "2"])
    """
    if isinstance(value, list):
        return "in", split_csv(value)
    if "," in value:
        return "in", [part.strip() for part in value.split(",") if part.strip()]
    if "|" in value:
        return "hasEvery", [part.strip() for part in value.split("|") if part.strip()]
    return "equals", value


def _positive_int(value: Optional[ParamValue], default: int) -> int:
    parsed = parse_int(first_value(value))
    if parsed is None or parsed < 1:
        return default
    return parsed


@dataclass
class ListParams:
    """Parsed list parameters."""
    page: int = 1
    limit: int = 100
    by: Optional[str] = None
    order: str = "desc"
    q: Optional[str] = None
    count_only: bool = False
    select: list[str] = field(default_factory=list)
    include: list[str] = field(default_factory=list)
    fetch: list[str] = field(default_factory=list)
    filters: dict[str, ParamValue] = field(default_factory=dict)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, ParamValue],
        *,
        default_page: int = 1,
        default_limit: int = 100,
        max_limit: Optional[int] = None,
        default_by: Optional[str] = "id",
        default_order: str = "desc",
    ) -> "ListParams":
        """Parse a parameter bag."""
        limit = _positive_int(params.get("limit"), default_limit)
        if max_limit is not None:
            limit = min(limit, max_limit)

        order = (first_value(params.get("order")) or default_order).strip().lower()
        if order not in SORT_DIRECTIONS:
            order = default_order

        q = first_value(params.get("q"))

        return cls(
            page=_positive_int(params.get("page"), default_page),
            limit=limit,
            by=(first_value(params.get("by")) or "").strip() or default_by,
            order=order,
            q=q if q else None,
            count_only="count" in params and is_truthy(params["count"]),
            select=split_csv(params.get("select")),
            include=split_csv(params.get("include")),
            fetch=fetch_targets(params),
            filters={
                key: value
                for key, value in params.items()
                if key not in RESERVED_PARAMS and not key.startswith(FETCH_PREFIX)
            },
        )


def fetch_targets(params: Mapping[str, ParamValue]) -> list[str]:
    """
    Collect relation names requested through fetch-<name> parameters.

    A fetch parameter with a falsy value ("0", "false", ...) is ignored;
    an empty value counts as a request.
    """
    targets = []
    for key, value in params.items():
        if not key.startswith(FETCH_PREFIX):
            continue
        name = key[len(FETCH_PREFIX):]
        raw = first_value(value)
        if not name or (raw not in (None, "") and not is_truthy(raw)):
            continue
        targets.append(name)
    return targets
