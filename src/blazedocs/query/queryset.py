"""
Chainable document queries executed through a session.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator, List, Optional, Tuple, Type

from ..core.document import Document
from ..core.includes import Include, IncludeSpec, normalize_includes
from ..core.registry import document_registry
from ..errors import ConfigurationError, InvalidPredicateError
from ..transport.base import IndexQuery
from .expressions import Q
from .indexes import IndexDefinition

if TYPE_CHECKING:
    from ..persistence.session import Session


class DocumentQuery:
    """
    Immutable query builder bound to a session.

    Every chained call returns a new query. Field names are checked when
    they are added, so an invalid predicate fails before anything is sent.
    Against an index only indexed fields are accepted; against a collection
    any declared field of the document type (or ``id``) is.
    """

    def __init__(
        self,
        session: "Session",
        document_type: Optional[Type[Document]] = None,
        *,
        index: Optional[IndexDefinition] = None,
        where: Optional[Q] = None,
        includes: Tuple[Include, ...] = (),
        ordering: Tuple[str, ...] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> None:
        if index is None and document_type is None:
            raise ConfigurationError("A query needs a document type or an index.")
        if document_type is not None and document_type._meta.collection is None:
            raise ConfigurationError(
                f"'{document_type.__name__}' is abstract or embedded and has no collection to query."
            )
        self.session = session
        self.document_type = document_type
        self.index = index
        self._where = where or Q()
        self._includes = includes
        self._ordering = ordering
        self._limit = limit
        self._offset = offset

    # Public API --------------------------------------------------------
    def filter(self, **lookups: Any) -> "DocumentQuery":
        return self.where(Q(**lookups))

    def exclude(self, **lookups: Any) -> "DocumentQuery":
        return self.where(~Q(**lookups))

    def where(self, q_object: Q) -> "DocumentQuery":
        if not isinstance(q_object, Q):
            raise InvalidPredicateError(f"where() expects a Q object, got {q_object!r}.")
        for name in q_object.field_names():
            self._check_field(name)
        return self._clone(where=self._add_q(q_object))

    def include(self, *paths: IncludeSpec) -> "DocumentQuery":
        if not paths:
            raise ValueError("include() requires at least one relation path.")
        added = normalize_includes(paths)
        if self.document_type is not None:
            for include in added:
                include.validate_for(self.document_type)
        combined = tuple(dict.fromkeys(self._includes + added))
        return self._clone(includes=combined)

    def order_by(self, *fields: str) -> "DocumentQuery":
        for name in fields:
            self._check_field(name.lstrip("-"))
        return self._clone(ordering=tuple(fields))

    def limit(self, value: int) -> "DocumentQuery":
        if value < 0:
            raise ValueError("limit() must not be negative.")
        return self._clone(limit=value)

    def offset(self, value: int) -> "DocumentQuery":
        if value < 0:
            raise ValueError("offset() must not be negative.")
        return self._clone(offset=value)

    def to_index_query(self) -> IndexQuery:
        where = None if self._where.is_empty() else self._where
        if self.index is not None:
            return IndexQuery(
                index_name=self.index.name,
                where=where,
                includes=self._includes,
                order_by=self._ordering,
                limit=self._limit,
                offset=self._offset,
            )
        document_type: Type[Document] = self.document_type  # type: ignore[assignment]
        return IndexQuery(
            collection=document_type._meta.collection,
            type_tags=self._type_tags(document_type),
            where=where,
            includes=self._includes,
            order_by=self._ordering,
            limit=self._limit,
            offset=self._offset,
        )

    def to_list(self) -> List[Document]:
        return self.session._run_query(self)

    def first(self) -> Optional[Document]:
        results = self.limit(1).to_list()
        return results[0] if results else None

    def __iter__(self) -> Iterator[Document]:
        return iter(self.to_list())

    def __repr__(self) -> str:
        target = self.index.name if self.index is not None else self.document_type.__name__  # type: ignore[union-attr]
        return f"<DocumentQuery {target}>"

    # Internal helpers --------------------------------------------------
    def _check_field(self, name: str) -> None:
        if self.index is not None:
            if not self.index.accepts_field(name):
                raise InvalidPredicateError(
                    f"Field '{name}' is not indexed by '{self.index.name}'. "
                    f"Indexed fields: {', '.join(self.index.field_names)}."
                )
            return
        document_type: Type[Document] = self.document_type  # type: ignore[assignment]
        if name != "id" and not document_type._meta.has_field(name):
            raise InvalidPredicateError(
                f"'{document_type.__name__}' has no field '{name}' to query on."
            )

    @staticmethod
    def _type_tags(document_type: Type[Document]) -> Optional[Tuple[str, ...]]:
        # A collection query on a base class also returns its subclasses.
        all_tags = document_registry.tags_for_collection(document_type._meta.collection or "")
        matching = []
        for tag in all_tags:
            cls = document_registry.resolve(tag)
            if cls is not None and issubclass(cls, document_type):
                matching.append(tag)
        if document_type._meta.type_tag not in matching:
            matching.insert(0, document_type._meta.type_tag)
        if set(matching) >= set(all_tags):
            return None
        return tuple(matching)

    def _add_q(self, q_object: Q) -> Q:
        if self._where.is_empty():
            return q_object
        return self._where & q_object

    def _clone(self, **overrides: Any) -> "DocumentQuery":
        params = {
            "index": self.index,
            "where": overrides.get("where", self._where),
            "includes": overrides.get("includes", self._includes),
            "ordering": overrides.get("ordering", self._ordering),
            "limit": overrides.get("limit", self._limit),
            "offset": overrides.get("offset", self._offset),
        }
        return DocumentQuery(self.session, self.document_type, **params)
