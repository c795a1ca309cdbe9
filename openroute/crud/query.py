"""
Parameterized SQL construction for CRUD endpoints.

Every statement the CRUD endpoints send to storage comes from QueryBuilder.
Identifiers are checked against the known columns and quoted; caller
values only ever travel in ``Query.params``.
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping, NamedTuple, Optional, Tuple

from ..exceptions import FieldIssue, ValidationError
from .meta import EndpointMeta

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DIRECTIONS = ("asc", "desc")


class Query(NamedTuple):
    text: str
    params: Tuple[Any, ...] = ()


class SelectQueries(NamedTuple):
    """A page query and the count query sharing its predicate."""

    rows: Query
    count: Query


def quote_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f'"{name}"'


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class QuerySpec:
    """Filters, search, ordering and pagination for one list request."""

    filters: Mapping[str, Any] = field(default_factory=dict)
    search_fields: Tuple[str, ...] = ()
    search: Optional[str] = None
    order_by: Optional[str] = None
    order_by_direction: str = "asc"
    page: int = 1
    per_page: int = 20

    def __post_init__(self):
        object.__setattr__(self, "filters", MappingProxyType(dict(self.filters)))
        object.__setattr__(self, "search_fields", tuple(self.search_fields))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @classmethod
    def build(
        cls,
        meta: EndpointMeta,
        filters: Optional[Mapping[str, Any]] = None,
        bound: Optional[Mapping[str, Any]] = None,
        search: Optional[str] = None,
        order_by: Optional[str] = None,
        order_by_direction: str = "asc",
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> "QuerySpec":
        """Check a list request against the endpoint's declared fields.

        ``filters`` come from the client and must be declared filter fields.
        ``bound`` are equality filters taken from the URL path.

        Raises:
            ValidationError: listing every field outside the declared sets
        """
        issues: List[FieldIssue] = []
        for name in filters or {}:
            if name not in meta.filter_fields:
                issues.append(FieldIssue(["query", name], f"'{name}' is not a filterable field", "filter_field"))
        if search is not None and not meta.search_fields:
            issues.append(FieldIssue(["query", "search"], "This endpoint does not support search", "search_field"))
        if order_by is not None and order_by not in meta.orderable_fields:
            issues.append(FieldIssue(["query", "order_by"], f"'{order_by}' is not a sortable field", "order_by_field"))
        if order_by_direction not in DIRECTIONS:
            issues.append(
                FieldIssue(["query", "order_by_direction"], "Direction must be 'asc' or 'desc'", "literal_error")
            )
        if page < 1:
            issues.append(FieldIssue(["query", "page"], "Page must be at least 1", "greater_than_equal"))
        if per_page is None:
            per_page = meta.per_page_default
        if not 1 <= per_page <= meta.per_page_max:
            issues.append(
                FieldIssue(["query", "per_page"], f"per_page must be between 1 and {meta.per_page_max}", "range")
            )
        if issues:
            raise ValidationError(issues=issues)

        combined = dict(filters or {})
        combined.update(bound or {})
        return cls(
            filters=combined,
            search_fields=meta.search_fields,
            search=search or None,
            order_by=order_by or meta.default_order_by,
            order_by_direction=order_by_direction,
            page=page,
            per_page=per_page,
        )


class QueryBuilder:
    """Builds SQLite statements (``?`` placeholders) against one table."""

    def __init__(self, table: str, columns: Iterable[str]):
        self.table = table
        self.columns = tuple(columns)
        self._known = frozenset(self.columns)
        self._table = quote_identifier(table)

    def _column(self, name: str) -> str:
        if name not in self._known:
            raise ValueError(f"Unknown column {name!r} for table {self.table!r}")
        return quote_identifier(name)

    def _equalities(self, values: Mapping[str, Any]) -> Tuple[List[str], List[Any]]:
        clauses = [f"{self._column(name)} = ?" for name in values]
        return clauses, list(values.values())

    def _key_predicate(self, keys: Mapping[str, Any]) -> Tuple[str, List[Any]]:
        if not keys:
            raise ValueError("At least one key is required")
        clauses, params = self._equalities(keys)
        return " AND ".join(clauses), params

    def predicate(self, spec: QuerySpec) -> Tuple[str, List[Any]]:
        """WHERE clause shared by the page and count queries."""
        clauses, params = self._equalities(spec.filters)
        if spec.search and spec.search_fields:
            term = f"%{escape_like(spec.search)}%"
            alternatives = [f"{self._column(name)} LIKE ? ESCAPE '\\'" for name in spec.search_fields]
            clauses.append("(" + " OR ".join(alternatives) + ")")
            params.extend([term] * len(alternatives))
        return " AND ".join(clauses), params

    def build_select(self, spec: QuerySpec) -> SelectQueries:
        predicate, params = self.predicate(spec)
        where = f" WHERE {predicate}" if predicate else ""

        text = f"SELECT * FROM {self._table}{where}"
        if spec.order_by:
            direction = "DESC" if spec.order_by_direction == "desc" else "ASC"
            text += f" ORDER BY {self._column(spec.order_by)} {direction}"
        text += " LIMIT ? OFFSET ?"

        return SelectQueries(
            rows=Query(text, (*params, spec.per_page, spec.offset)),
            count=Query(f"SELECT COUNT(*) AS total FROM {self._table}{where}", tuple(params)),
        )

    def build_select_one(self, keys: Mapping[str, Any]) -> Query:
        predicate, params = self._key_predicate(keys)
        return Query(f"SELECT * FROM {self._table} WHERE {predicate} LIMIT 1", tuple(params))

    def build_insert(self, data: Mapping[str, Any]) -> Query:
        if not data:
            return Query(f"INSERT INTO {self._table} DEFAULT VALUES RETURNING *")
        columns = ", ".join(self._column(name) for name in data)
        placeholders = ", ".join("?" for _ in data)
        return Query(
            f"INSERT INTO {self._table} ({columns}) VALUES ({placeholders}) RETURNING *",
            tuple(data.values()),
        )

    def build_update(self, keys: Mapping[str, Any], data: Mapping[str, Any]) -> Query:
        if not data:
            raise ValueError("Nothing to update")
        assignments, values = self._equalities(data)
        predicate, params = self._key_predicate(keys)
        return Query(
            f"UPDATE {self._table} SET {', '.join(assignments)} WHERE {predicate} RETURNING *",
            (*values, *params),
        )

    def build_delete(self, keys: Mapping[str, Any]) -> Query:
        predicate, params = self._key_predicate(keys)
        return Query(f"DELETE FROM {self._table} WHERE {predicate} RETURNING *", tuple(params))


