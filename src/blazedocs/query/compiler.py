"""
Compilation of index queries into RQL strings for document servers.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Dict, List, Tuple

from ..errors import InvalidPredicateError
from .expressions import Q, split_lookup

if TYPE_CHECKING:
    from ..transport.base import IndexQuery


TYPE_TAG_METADATA = "Raven-Python-Type"

LOOKUP_OPERATORS = {
    "exact": "=",
    "iexact": "=",
    "ne": "!=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class RQLCompiler:
    """
    Compile :class:`IndexQuery` state into an RQL statement and parameters.
    """

    def __init__(self, query: "IndexQuery") -> None:
        self.query = query
        self._params: Dict[str, Any] = {}

    def compile(self) -> Tuple[str, Dict[str, Any]]:
        self._params = {}
        parts: List[str] = [self._compile_source()]
        conditions: List[str] = []

        if self.query.index_name is None and self.query.type_tags is not None:
            placeholder = self._param(list(self.query.type_tags))
            conditions.append(f"@metadata.'{TYPE_TAG_METADATA}' in ({placeholder})")

        where = self.query.where
        if where is not None and not where.is_empty():
            compiled = self._compile_q(where)
            if compiled:
                conditions.append(compiled)

        if conditions:
            parts.append("where " + " and ".join(conditions))

        if self.query.order_by:
            parts.append("order by " + ", ".join(self._compile_ordering(f) for f in self.query.order_by))

        if self.query.limit is not None or self.query.offset:
            take = self.query.limit if self.query.limit is not None else 2**31 - 1
            parts.append(f"limit {take} offset {self.query.offset or 0}")

        if self.query.includes:
            parts.append("include " + ", ".join(include.path for include in self.query.includes))

        return " ".join(parts), dict(self._params)

    # Helpers -----------------------------------------------------------
    def _compile_source(self) -> str:
        if self.query.index_name is not None:
            name = self.query.index_name.replace("'", "\\'")
            return f"from index '{name}'"
        if self.query.collection is None:
            return "from @all_docs"
        return f"from {self._quote(self.query.collection)}"

    def _param(self, value: Any) -> str:
        name = f"p{len(self._params)}"
        self._params[name] = value
        return f"${name}"

    @staticmethod
    def _quote(name: str) -> str:
        if _IDENTIFIER.match(name):
            return name
        escaped = name.replace("'", "\\'")
        return f"'{escaped}'"

    def _compile_ordering(self, field_name: str) -> str:
        descending = field_name.startswith("-")
        name = field_name[1:] if descending else field_name
        clause = self._quote(name)
        if descending:
            clause += " desc"
        return clause

    def _compile_q(self, q: Q) -> str:
        parts: List[str] = []
        for child in q.children:
            if isinstance(child, Q):
                compiled = self._compile_q(child)
                if compiled:
                    parts.append(f"({compiled})")
            else:
                field_lookup, value = child
                parts.append(self._compile_lookup(field_lookup, value))

        if not parts:
            return ""
        sql = f" {q.connector.lower()} ".join(parts)
        if q.negated:
            sql = f"(true and not ({sql}))"
        return sql

    def _compile_lookup(self, field_lookup: str, value: Any) -> str:
        field_name, lookup = split_lookup(field_lookup)
        column = self._quote(field_name)

        if value is None:
            if lookup not in ("exact", "ne"):
                raise InvalidPredicateError("Null comparison only supported for equality.")
            return f"{column} {'=' if lookup == 'exact' else '!='} null"

        if lookup == "in":
            return f"{column} in ({self._param(list(value))})"
        if lookup == "startswith":
            return f"startsWith({column}, {self._param(value)})"
        if lookup in ("contains", "icontains"):
            return f"search({column}, {self._param(f'*{value}*')})"
        if lookup == "exact":
            return f"exact({column} = {self._param(value)})"
        return f"{column} {LOOKUP_OPERATORS[lookup]} {self._param(value)}"
