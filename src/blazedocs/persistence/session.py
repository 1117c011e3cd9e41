"""
Session management coordinating the transport, unit of work, and identity map.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar

from ..core.document import Document
from ..core.includes import Include, IncludeSpec, collect_keys, normalize_includes
from ..core.registry import document_registry
from ..errors import (
    BlazeDocsError,
    ConfigurationError,
    DocumentTypeError,
    SessionClosedError,
    SessionError,
    TooManyRequestsError,
)
from ..query.indexes import IndexDefinition
from ..query.queryset import DocumentQuery
from ..security import abbreviate_keys
from ..transport.base import (
    DELETE,
    NEW_DOCUMENT_ETAG,
    PUT,
    BatchOperation,
    DocumentRecord,
    record_for,
)
from ..utils import get_logger, time_call
from ..utils.performance import RequestTracker
from .identity_map import IdentityEntry, IdentityMap
from .unit_of_work import UnitOfWork

if TYPE_CHECKING:
    from ..hooks import HookDispatcher
    from .store import DocumentStore


TDocument = TypeVar("TDocument", bound=Document)
T = TypeVar("T")


@dataclass
class CommitResult:
    """Outcome of a successful commit."""

    stored: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    versions: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def operation_count(self) -> int:
        return len(self.stored) + len(self.deleted)


class IncludeLoader:
    """
    Returned by :meth:`Session.include`; collects relation paths and loads
    the primary documents and everything they reference in one call.
    """

    def __init__(self, session: "Session", includes: Tuple[Include, ...]) -> None:
        self.session = session
        self.includes = includes

    def include(self, path: IncludeSpec) -> "IncludeLoader":
        combined = tuple(dict.fromkeys(self.includes + normalize_includes(path)))
        return IncludeLoader(self.session, combined)

    def load(self, key: str, document_type: Optional[Type[TDocument]] = None) -> Optional[TDocument]:
        return self.session.load(key, document_type, includes=self.includes)

    def load_many(
        self, keys: Iterable[str], document_type: Optional[Type[TDocument]] = None
    ) -> Dict[str, Optional[TDocument]]:
        return self.session.load_many(keys, document_type, includes=self.includes)


class Session:
    """
    Unit of work over a document store.

    Keeps one instance per key, buffers writes until :meth:`commit`, and
    counts every transport call against the store's request budget.
    Sessions are meant for a single thread and are not locked.
    """

    def __init__(self, store: "DocumentStore") -> None:
        self.document_store = store
        self.transport = store.transport
        self.conventions = store.conventions
        self.use_optimistic_concurrency = store.conventions.use_optimistic_concurrency
        self.identity_map = IdentityMap()
        self.unit_of_work = UnitOfWork()
        self.number_of_requests = 0
        self._closed = False
        from ..hooks import hooks

        self.hooks: "HookDispatcher" = hooks
        self.logger = get_logger("persistence.session")
        self.request_tracker = RequestTracker(
            self.logger, n_plus_one_threshold=store.conventions.n_plus_one_threshold
        )

    # ------------------------------------------------------------------ #
    # Context management
    # ------------------------------------------------------------------ #
    def __enter__(self) -> "Session":
        self._ensure_open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        if len(self.unit_of_work):
            self.logger.warning(
                "Closing session with %s uncommitted write(s); discarding them",
                len(self.unit_of_work),
                extra={"keys": abbreviate_keys(self.unit_of_work.keys())},
            )
        self.logger.debug(
            "Session closed after %s request(s)",
            self.number_of_requests,
            extra={"requests": self.request_tracker.summary()},
        )
        self.identity_map.clear()
        self.unit_of_work.clear()
        self._closed = True

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #
    def load(
        self,
        key: str,
        document_type: Optional[Type[TDocument]] = None,
        *,
        includes: Iterable[IncludeSpec] | IncludeSpec | None = None,
    ) -> Optional[TDocument]:
        self._ensure_open()
        if includes:
            return self.load_many([key], document_type, includes=includes)[key]
        if self.unit_of_work.is_deleted(key):
            return None
        entry = self.identity_map.get(key)
        if entry is not None:
            return self._resolve(entry, document_type)

        record = self._request("fetch_one", [key], lambda: self.transport.fetch_one(key))
        if record is None:
            self.identity_map.mark_missing(key)
            return None
        return self._track(record, document_type)

    def load_many(
        self,
        keys: Iterable[str],
        document_type: Optional[Type[TDocument]] = None,
        *,
        includes: Iterable[IncludeSpec] | IncludeSpec | None = None,
    ) -> Dict[str, Optional[TDocument]]:
        """
        Load several keys with at most one transport call.

        The result has one entry per distinct requested key, in request
        order, holding ``None`` for keys that do not exist.
        """
        self._ensure_open()
        requested = list(dict.fromkeys(keys))
        include_list = self._prepare_includes(includes, document_type)

        to_fetch = [
            key
            for key in requested
            if key not in self.identity_map and not self.unit_of_work.is_deleted(key)
        ]
        if include_list:
            # Cached documents still need a round-trip when a related key is unknown.
            for key in requested:
                if key in to_fetch or self.unit_of_work.is_deleted(key):
                    continue
                entry = self.identity_map.get(key)
                body = entry.body() if entry is not None else None
                if body is not None and self._has_unknown_keys(body, include_list):
                    to_fetch.append(key)

        if to_fetch:
            fetch_keys = list(to_fetch)
            result = self._request(
                "fetch_many", fetch_keys, lambda: self.transport.fetch_many(fetch_keys, include_list)
            )
            for key in fetch_keys:
                self._absorb(key, result.documents.get(key))
            self._absorb_includes(result.includes)

        loaded: Dict[str, Optional[TDocument]] = {}
        for key in requested:
            entry = None if self.unit_of_work.is_deleted(key) else self.identity_map.get(key)
            loaded[key] = self._resolve(entry, document_type) if entry is not None else None
        return loaded

    def include(self, *paths: IncludeSpec) -> IncludeLoader:
        """
        Start a load that also fetches the documents referenced by ``paths``.
        """
        self._ensure_open()
        if not paths:
            raise ValueError("include() requires at least one relation path.")
        return IncludeLoader(self, normalize_includes(paths))

    def is_loaded(self, key: str) -> bool:
        entry = self.identity_map.get(key)
        return entry is not None and not entry.missing

    # ------------------------------------------------------------------ #
    # Querying
    # ------------------------------------------------------------------ #
    def query(
        self,
        document_type: Optional[Type[Document]] | str = None,
        *,
        index: str | IndexDefinition | None = None,
    ) -> DocumentQuery:
        """
        Build a query over ``document_type``'s collection, or over a
        registered index. ``session.query("Examples/ByDesc")`` is shorthand
        for ``session.query(index="Examples/ByDesc")``.
        """
        self._ensure_open()
        if isinstance(document_type, str):
            if index is not None:
                raise ConfigurationError("Pass the index name either positionally or as index=, not both.")
            index, document_type = document_type, None
        definition = None
        if index is not None:
            name = index.name if isinstance(index, IndexDefinition) else index
            definition = self.document_store.get_index(name)
        return DocumentQuery(self, document_type, index=definition)

    def _run_query(self, query: DocumentQuery) -> List[Document]:
        self._ensure_open()
        self.hooks.fire("before_query", None, session=self, query=query)
        index_query = query.to_index_query()
        result = self._request("query", (), lambda: self.transport.query(index_query))
        self._absorb_includes(result.includes)
        documents = []
        for record in result.documents:
            if self.unit_of_work.is_deleted(record.key):
                continue
            documents.append(self._track(record, query.document_type))
        return documents

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #
    def store(self, document: Document, key: str | None = None) -> str:
        """
        Track ``document`` and schedule it to be written on commit.

        A key is generated when the document has none. Returns the key.
        """
        self._ensure_open()
        if not isinstance(document, Document):
            raise TypeError(f"Only Document instances can be stored, got {type(document).__name__}.")
        if key is not None:
            if document.key is not None and document.key.lower() != key.lower():
                raise SessionError(f"Document already has key '{document.key}'; cannot store it as '{key}'.")
            document.id = key  # type: ignore[attr-defined]
        if document.key is None:
            document.id = self.document_store.key_generator.next_key(type(document))  # type: ignore[attr-defined]
        key: str = document.key  # type: ignore[assignment]

        entry = self.identity_map.get(key)
        if entry is not None and entry.document is not None and entry.document is not document:
            raise SessionError(f"A different instance is already tracked under '{key}' in this session.")
        if entry is None or entry.document is None:
            etag = entry.etag if entry is not None else None
            pending = self.unit_of_work.get(key)
            if etag is None and pending is not None and pending.kind == DELETE:
                etag = pending.expected_etag
            entry = self.identity_map.add(document, etag=etag)

        self.unit_of_work.register_put(key, document, self._expected_etag(entry))
        return key

    def delete(self, target: Document | str) -> None:
        """
        Schedule a delete for a document or key and evict it from the session.
        """
        self._ensure_open()
        if isinstance(target, Document):
            key = target.key
            if key is None:
                raise SessionError("Cannot delete a document that has no key.")
        else:
            key = target

        entry = self.identity_map.get(key)
        instance = entry.document if entry is not None else None
        if isinstance(target, Document) and instance is not None and instance is not target:
            raise SessionError(f"A different instance is tracked under '{key}' in this session.")
        if instance is None and isinstance(target, Document):
            instance = target
        self.hooks.fire("before_delete", instance, session=self, key=key)

        expected = None
        if self.use_optimistic_concurrency and entry is not None and entry.etag is not None:
            expected = entry.etag
        self.identity_map.remove(key)
        self.unit_of_work.register_delete(key, expected)

    def evict(self, document: Document) -> None:
        """
        Stop tracking ``document``: drop it from the identity map and discard
        any pending write for its key.
        """
        if document.key is None:
            return
        entry = self.identity_map.get(document.key)
        if entry is not None and entry.document is document:
            self.identity_map.remove(document.key)
            self.unit_of_work.discard(document.key)

    def etag_for(self, document: Document) -> str | None:
        if document.key is None:
            return None
        entry = self.identity_map.get(document.key)
        if entry is None or entry.document is not document:
            return None
        return entry.etag

    @property
    def has_changes(self) -> bool:
        if len(self.unit_of_work):
            return True
        return any(entry.is_dirty() for entry in self.identity_map.entries())

    # ------------------------------------------------------------------ #
    # Commit
    # ------------------------------------------------------------------ #
    def commit(self) -> CommitResult:
        """
        Send every pending write in one atomic batch.

        On failure the pending writes are kept so the caller can fix the
        cause and commit again.
        """
        self._ensure_open()
        self.unit_of_work.collect_dirty(self.identity_map.entries(), self._expected_etag)
        pending = self.unit_of_work.pending()
        if not pending:
            self.logger.debug("Nothing to commit")
            return CommitResult()

        operations: List[BatchOperation] = []
        bodies: Dict[str, Dict[str, Any]] = {}
        for write in pending:
            if write.kind == PUT:
                document: Document = write.document  # type: ignore[assignment]
                self.hooks.fire("before_store", document, session=self)
                document.full_clean()
                body = document.to_dict()
                bodies[write.key.lower()] = body
                operations.append(
                    BatchOperation(write.key, PUT, record_for(write.key, document, body), write.expected_etag)
                )
            else:
                operations.append(BatchOperation(write.key, DELETE, expected_etag=write.expected_etag))

        keys = [write.key for write in pending]
        try:
            batch = self._request("apply_batch", keys, lambda: self.transport.apply_batch(operations))
        except BlazeDocsError:
            self.logger.warning(
                "Commit of %s operation(s) failed; pending writes kept",
                len(operations),
                extra={"keys": abbreviate_keys(keys)},
            )
            raise

        versions = {key.lower(): version for key, version in batch.versions.items()}
        result = CommitResult(versions=dict(batch.versions))
        for write in pending:
            normalized = write.key.lower()
            if write.kind == PUT:
                entry = self.identity_map.get(write.key)
                if entry is not None and entry.document is write.document:
                    entry.etag = versions.get(normalized, entry.etag)
                    entry.snapshot = bodies[normalized]
                result.stored.append(write.key)
            else:
                self.identity_map.mark_missing(write.key)
                result.deleted.append(write.key)
        self.unit_of_work.clear()

        self.logger.info(
            "Committed %s put(s) and %s delete(s)",
            len(result.stored),
            len(result.deleted),
            extra={"keys": abbreviate_keys(keys)},
        )
        self.hooks.fire("after_commit", None, session=self, result=result)
        return result

    # ------------------------------------------------------------------ #
    # Diagnostics
    # ------------------------------------------------------------------ #
    def request_stats(self) -> List[dict[str, object]]:
        return self.request_tracker.summary()

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError("Session is closed.")

    def _request(self, operation: str, keys: Sequence[str], call: Callable[[], T]) -> T:
        self._ensure_open()
        budget = self.conventions.max_requests_per_session
        if self.number_of_requests >= budget:
            raise TooManyRequestsError(
                f"Session exceeded its budget of {budget} requests; "
                "use include() or load_many() to batch loads, or open a new session."
            )
        key_list = list(keys)

        def record(elapsed_ms: float) -> None:
            self.request_tracker.record(operation, key_list, elapsed_ms)

        with time_call(
            f"session.{operation}",
            self.logger,
            keys=abbreviate_keys(key_list),
            threshold_ms=self.transport.slow_request_ms,
            on_complete=record,
        ):
            result = call()
        # Failed calls do not count against the budget.
        self.number_of_requests += 1
        return result

    def _prepare_includes(
        self,
        includes: Iterable[IncludeSpec] | IncludeSpec | None,
        document_type: Optional[Type[Document]],
    ) -> Tuple[Include, ...]:
        include_list = normalize_includes(includes)
        if document_type is not None:
            for include in include_list:
                include.validate_for(document_type)
        return include_list

    def _has_unknown_keys(self, body: Dict[str, Any], includes: Sequence[Include]) -> bool:
        return any(
            related not in self.identity_map and not self.unit_of_work.is_deleted(related)
            for related in collect_keys([body], includes)
        )

    def _expected_etag(self, entry: IdentityEntry) -> Optional[str]:
        if not self.use_optimistic_concurrency:
            return None
        return entry.etag if entry.etag is not None else NEW_DOCUMENT_ETAG

    def _absorb(self, key: str, record: Optional[DocumentRecord]) -> IdentityEntry:
        entry = self.identity_map.get(key)
        if entry is not None and entry.document is not None:
            return entry
        if record is None:
            return self.identity_map.mark_missing(key)
        return self.identity_map.add_record(record)

    def _absorb_includes(self, includes: Dict[str, Optional[DocumentRecord]]) -> None:
        for key, record in includes.items():
            self._absorb(key, record)

    def _track(self, record: DocumentRecord, document_type: Optional[Type[TDocument]]) -> TDocument:
        entry = self._absorb(record.key, record)
        return self._resolve(entry, document_type)  # type: ignore[return-value]

    def _resolve(self, entry: IdentityEntry, document_type: Optional[Type[TDocument]]) -> Optional[TDocument]:
        if entry.missing:
            return None
        if entry.document is None and entry.record is not None:
            entry = self._materialize(entry.record, document_type)
        document = entry.document
        if document_type is not None and not isinstance(document, document_type):
            raise DocumentTypeError(entry.key, document_type, type(document))
        return document  # type: ignore[return-value]

    def _materialize(self, record: DocumentRecord, document_type: Optional[Type[Document]]) -> IdentityEntry:
        cls = document_registry.class_for(
            record.key, record.type_tag, document_type, collection=record.collection
        )
        document = cls.from_dict(record.body)
        document.id = record.key  # type: ignore[attr-defined]
        return self.identity_map.add(document, etag=record.etag, snapshot=document.to_dict())
