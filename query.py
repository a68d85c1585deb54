"""
Query-string filtering, sorting, projection and pagination for list routes.

``?price[gte]=10&price[lt]=50&brand=<id>&sort=price,-ratings&fields=title,price``
is parsed into ``FilterExpr`` values first and only then rendered into a
MongoDB filter, so field names and operators are checked before they reach
the store.
"""
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pymongo import ASCENDING, DESCENDING

import config
from database import is_object_id
from errors import InvalidInput

OPERATORS = ("eq", "gt", "gte", "lt", "lte")
RESERVED_PARAMS = ("page", "limit", "sort", "fields", "keyword")

_KEY_RE = re.compile(r"^(?P<field>[A-Za-z_][A-Za-z0-9_.]*)(?:\[(?P<op>[a-z]+)\])?$")
_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?\d*\.\d+$")


@dataclass(frozen=True)
class FilterExpr:
    field: str
    op: str
    value: Any

    def to_mongo(self) -> Any:
        if self.op == "eq":
            return self.value
        return {f"${self.op}": self.value}


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def total_pages(self, total: int) -> int:
        return math.ceil(total / self.limit)


def coerce_value(raw: str) -> Any:
    if is_object_id(raw):
        return raw
    if _INT_RE.match(raw):
        return int(raw)
    if _FLOAT_RE.match(raw):
        return float(raw)
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    return raw


def parse_filters(
    params: Iterable[Tuple[str, str]],
    allowed: Optional[Sequence[str]] = None,
) -> List[FilterExpr]:
    exprs = []
    for key, raw in params:
        if key in RESERVED_PARAMS:
            continue
        match = _KEY_RE.match(key)
        if not match:
            raise InvalidInput(f"Invalid filter '{key}'")
        field, op = match.group("field"), match.group("op") or "eq"
        if op not in OPERATORS:
            raise InvalidInput(f"Unsupported operator '{op}' for '{field}'")
        if allowed is not None and field not in allowed:
            raise InvalidInput(f"Filtering on '{field}' is not allowed")
        exprs.append(FilterExpr(field, op, coerce_value(raw)))
    return exprs


def build_filter(exprs: Iterable[FilterExpr]) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    for expr in exprs:
        current = query.get(expr.field)
        rendered = expr.to_mongo()
        if isinstance(current, dict) and isinstance(rendered, dict):
            current.update(rendered)
        else:
            # equality wins over an earlier range on the same field
            query[expr.field] = rendered
    return query


def keyword_filter(keyword: Optional[str], fields: Sequence[str]) -> Dict[str, Any]:
    if not keyword:
        return {}
    pattern = re.escape(keyword)
    return {"$or": [{f: {"$regex": pattern, "$options": "i"}} for f in fields]}


def parse_sort(raw: Optional[str], default: Sequence[Tuple[str, int]] = (("createdAt", DESCENDING),)) -> List[Tuple[str, int]]:
    if not raw:
        return list(default)
    keys = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        direction = DESCENDING if part.startswith("-") else ASCENDING
        field = part.lstrip("-+")
        if not _KEY_RE.match(field):
            raise InvalidInput(f"Invalid sort field '{field}'")
        keys.append((field, direction))
    return keys or list(default)


def parse_direction(raw: Optional[str]) -> int:
    return DESCENDING if (raw or "asc").lower() == "desc" else ASCENDING


def parse_projection(raw: Optional[str], hidden: Sequence[str] = ()) -> Optional[Dict[str, int]]:
    if not raw:
        return {f: 0 for f in hidden} or None
    fields = [f.strip() for f in raw.split(",") if f.strip() and f.strip() not in hidden]
    for f in fields:
        if not _KEY_RE.match(f):
            raise InvalidInput(f"Invalid field '{f}'")
    if not fields:
        return {f: 0 for f in hidden} or None
    return {f: 1 for f in fields}


def _positive_int(raw: Optional[str], default: int) -> int:
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        return default
    return value if value > 0 else default


def parse_pagination(page: Optional[str], limit: Optional[str], default_limit: int = config.DEFAULT_PAGE_SIZE) -> Pagination:
    return Pagination(
        page=_positive_int(page, 1),
        limit=min(_positive_int(limit, default_limit), config.MAX_PAGE_SIZE),
    )
