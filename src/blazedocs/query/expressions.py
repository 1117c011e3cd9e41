"""
Predicate expressions over indexed (or document) fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Tuple

from ..errors import InvalidPredicateError


AND = "AND"
OR = "OR"


def _ordered(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def compare(actual: Any, expected: Any) -> bool:
        if actual is None:
            return False
        try:
            return op(actual, expected)
        except TypeError:
            return False

    return compare


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return isinstance(expected, str) and expected in actual
    if isinstance(actual, list):
        return expected in actual
    return False


def _icontains(actual: Any, expected: Any) -> bool:
    return isinstance(actual, str) and isinstance(expected, str) and expected.lower() in actual.lower()


def _iexact(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str) and isinstance(expected, str):
        return actual.lower() == expected.lower()
    return actual == expected


def _startswith(actual: Any, expected: Any) -> bool:
    return isinstance(actual, str) and isinstance(expected, str) and actual.startswith(expected)


LOOKUPS: Dict[str, Callable[[Any, Any], bool]] = {
    "exact": lambda actual, expected: actual == expected,
    "iexact": _iexact,
    "ne": lambda actual, expected: actual != expected,
    "gt": _ordered(lambda a, b: a > b),
    "gte": _ordered(lambda a, b: a >= b),
    "lt": _ordered(lambda a, b: a < b),
    "lte": _ordered(lambda a, b: a <= b),
    "in": lambda actual, expected: actual in expected,
    "contains": _contains,
    "icontains": _icontains,
    "startswith": _startswith,
}


def split_lookup(field_lookup: str) -> Tuple[str, str]:
    if "__" in field_lookup:
        field_name, lookup = field_lookup.split("__", 1)
    else:
        field_name, lookup = field_lookup, "exact"
    if not field_name:
        raise InvalidPredicateError(f"Invalid lookup '{field_lookup}'.")
    if lookup not in LOOKUPS:
        raise InvalidPredicateError(
            f"Unsupported lookup '{lookup}' in '{field_lookup}'. Supported: {', '.join(sorted(LOOKUPS))}."
        )
    return field_name, lookup


@dataclass
class Q:
    """
    Boolean expression container similar to Django-style Q objects.

    ``Q(desc="x") | Q(desc__startswith="This")`` combines lookups; ``~Q(...)``
    negates. Lookups are validated eagerly so malformed predicates fail
    before they reach a transport.
    """

    children: List[Any] = field(default_factory=list)
    connector: str = AND
    negated: bool = False

    def __init__(self, *children: Any, **lookups: Any) -> None:
        self.children = []
        for child in children:
            if not isinstance(child, Q):
                raise InvalidPredicateError(f"Q() positional arguments must be Q objects, got {child!r}.")
            self.children.append(child)
        for field_lookup, value in lookups.items():
            _, lookup = split_lookup(field_lookup)
            if lookup == "in" and (isinstance(value, (str, bytes)) or not isinstance(value, Iterable)):
                raise InvalidPredicateError(f"'{field_lookup}' requires a list of values.")
            if lookup == "in":
                value = list(value)
            self.children.append((field_lookup, value))
        self.connector = AND
        self.negated = False

    def __or__(self, other: "Q") -> "Q":
        return self._combine(other, OR)

    def __and__(self, other: "Q") -> "Q":
        return self._combine(other, AND)

    def __invert__(self) -> "Q":
        q = self._clone()
        q.negated = not q.negated
        return q

    def is_empty(self) -> bool:
        return not self.children

    def field_names(self) -> Iterator[str]:
        for child in self.children:
            if isinstance(child, Q):
                yield from child.field_names()
            else:
                yield split_lookup(child[0])[0]

    def matches(self, entry: Mapping[str, Any]) -> bool:
        """
        Evaluate the predicate against an index entry or document body.
        """
        if not self.children:
            return not self.negated
        results = (self._match_child(child, entry) for child in self.children)
        outcome = all(results) if self.connector == AND else any(results)
        return not outcome if self.negated else outcome

    # Internal helpers -------------------------------------------------
    @staticmethod
    def _match_child(child: Any, entry: Mapping[str, Any]) -> bool:
        if isinstance(child, Q):
            return child.matches(entry)
        field_lookup, expected = child
        field_name, lookup = split_lookup(field_lookup)
        return LOOKUPS[lookup](entry.get(field_name), expected)

    def _clone(self) -> "Q":
        clone = Q()
        clone.children = list(self.children)
        clone.connector = self.connector
        clone.negated = self.negated
        return clone

    def _combine(self, other: "Q", connector: str) -> "Q":
        if not isinstance(other, Q):
            raise InvalidPredicateError(f"Cannot combine Q with {other!r}.")
        q = Q()
        q.children = [self._clone(), other._clone()]
        q.connector = connector
        return q
