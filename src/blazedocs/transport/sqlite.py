"""
SQLite document transport implementation.

Documents are stored as JSON bodies in a single table; index entries are
materialized into a side table whenever a batch is applied, so queries
never scan document bodies for indexed lookups.
"""

from __future__ import annotations

import json
import re
import sqlite3
from dataclasses import dataclass
from threading import RLock
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..core.includes import Include, collect_keys
from ..errors import (
    ConcurrencyError,
    TransportConfigurationError,
    TransportConnectionError,
    TransportFailure,
    TransportTimeoutError,
)
from ..query.indexes import IndexDefinition
from ..utils import get_logger, time_call
from ..utils.performance import resolve_slow_request_ms
from .base import (
    DELETE,
    NEW_DOCUMENT_ETAG,
    BatchOperation,
    BatchResult,
    ConnectionConfig,
    DocumentRecord,
    DocumentTransport,
    FetchResult,
    IndexQuery,
    KeyRange,
    QueryResult,
)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS documents (
        key TEXT PRIMARY KEY COLLATE NOCASE,
        collection TEXT NOT NULL COLLATE NOCASE,
        type_tag TEXT,
        etag TEXT NOT NULL,
        body TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS documents_by_collection ON documents (collection)",
    """
    CREATE TABLE IF NOT EXISTS index_entries (
        index_name TEXT NOT NULL,
        key TEXT NOT NULL COLLATE NOCASE,
        entry TEXT NOT NULL,
        PRIMARY KEY (index_name, key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS hilo (
        collection TEXT PRIMARY KEY COLLATE NOCASE,
        max_id INTEGER NOT NULL
    )
    """,
    "CREATE TABLE IF NOT EXISTS counters (name TEXT PRIMARY KEY, value INTEGER NOT NULL)",
)

# SQLite limits bound parameters per statement; stay well below it.
_MAX_KEYS_PER_STATEMENT = 500


@dataclass(slots=True)
class SQLiteConnectionState:
    connection: sqlite3.Connection
    config: ConnectionConfig


class SQLiteTransport(DocumentTransport):
    """
    Transport keeping documents in a local SQLite database via the stdlib
    ``sqlite3`` module. One connection is shared by every session of a
    store and guarded by a lock.
    """

    def __init__(self, slow_request_ms: int | None = None) -> None:
        self._state: SQLiteConnectionState | None = None
        self._indexes: Dict[str, IndexDefinition] = {}
        self._lock = RLock()
        self.logger = get_logger("transport.sqlite")
        self.slow_request_ms = resolve_slow_request_ms(default=100, override=slow_request_ms)

    # ------------------------------------------------------------------ #
    # Connection management
    # ------------------------------------------------------------------ #
    def connect(self, config: ConnectionConfig) -> sqlite3.Connection:
        path = self._normalize_path(config.url)
        timeout = config.timeout if config.timeout is not None else 5.0
        self.logger.info("Opening SQLite document store %s", config.descriptive_label())
        try:
            connection = sqlite3.connect(
                path,
                isolation_level=None,
                timeout=timeout,
                check_same_thread=False,
            )
            connection.row_factory = sqlite3.Row
            for statement in _SCHEMA:
                connection.execute(statement)
        except sqlite3.Error as exc:
            raise TransportConnectionError(f"Failed to open SQLite database '{path}'.") from exc

        with self._lock:
            self._state = SQLiteConnectionState(connection, config)
        return connection

    def close(self) -> None:
        with self._lock:
            if self._state:
                try:
                    self._state.connection.close()
                finally:
                    self._state = None

    def _ensure_connection(self) -> sqlite3.Connection:
        if not self._state:
            raise TransportConnectionError("SQLiteTransport is not connected.")
        return self._state.connection

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    def fetch_one(self, key: str) -> Optional[DocumentRecord]:
        with self._lock, self._guard("fetch_one"):
            with time_call("sqlite.fetch_one", self.logger, keys=[key], threshold_ms=self.slow_request_ms):
                return self._select_records([key]).get(key.lower())

    def fetch_many(self, keys: Sequence[str], includes: Sequence[Include] = ()) -> FetchResult:
        with self._lock, self._guard("fetch_many"):
            with time_call("sqlite.fetch_many", self.logger, keys=keys, threshold_ms=self.slow_request_ms):
                found = self._select_records(keys)
                documents = {key: found.get(key.lower()) for key in keys}
                bodies = [record.body for record in documents.values() if record is not None]
                return FetchResult(
                    documents=documents,
                    includes=self._resolve_includes(bodies, includes, exclude=documents),
                )

    def query(self, query: IndexQuery) -> QueryResult:
        with self._lock, self._guard("query"):
            label = query.index_name or query.collection or "<all>"
            with time_call(f"sqlite.query[{label}]", self.logger, threshold_ms=self.slow_request_ms):
                if query.index_name is not None:
                    records = self._query_index(query)
                else:
                    records = self._query_collection(query)
                return QueryResult(
                    documents=records,
                    includes=self._resolve_includes(
                        [record.body for record in records],
                        query.includes,
                        exclude={record.key: record for record in records},
                    ),
                )

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #
    def apply_batch(self, operations: Sequence[BatchOperation]) -> BatchResult:
        keys = [op.key for op in operations]
        with self._lock, self._guard("apply_batch"):
            connection = self._ensure_connection()
            with time_call("sqlite.apply_batch", self.logger, keys=keys, threshold_ms=self.slow_request_ms):
                connection.execute("BEGIN IMMEDIATE")
                try:
                    versions = self._apply_operations(connection, operations)
                except BaseException:
                    connection.execute("ROLLBACK")
                    raise
                connection.execute("COMMIT")
        self.logger.debug("Applied batch of %s operation(s)", len(operations), extra={"keys": keys})
        return BatchResult(versions=versions)

    def reserve_key_range(self, collection: str, capacity: int, separator: str = "/") -> KeyRange:
        if capacity < 1:
            raise TransportConfigurationError("Key range capacity must be positive.")
        with self._lock, self._guard("reserve_key_range"):
            connection = self._ensure_connection()
            connection.execute("BEGIN IMMEDIATE")
            try:
                row = connection.execute(
                    "SELECT max_id FROM hilo WHERE collection = ?", (collection,)
                ).fetchone()
                if row:
                    current = row["max_id"]
                else:
                    current = self._highest_numeric_key(connection, collection, separator)
                high = current + capacity
                connection.execute(
                    "INSERT INTO hilo (collection, max_id) VALUES (?, ?) "
                    "ON CONFLICT(collection) DO UPDATE SET max_id = excluded.max_id",
                    (collection, high),
                )
            except BaseException:
                connection.execute("ROLLBACK")
                raise
            connection.execute("COMMIT")
        return KeyRange(low=current + 1, high=high)

    def put_indexes(self, definitions: Sequence[IndexDefinition]) -> None:
        with self._lock, self._guard("put_indexes"):
            connection = self._ensure_connection()
            connection.execute("BEGIN IMMEDIATE")
            try:
                for definition in definitions:
                    self._indexes[definition.name] = definition
                    self._rebuild_index(connection, definition)
            except BaseException:
                connection.execute("ROLLBACK")
                raise
            connection.execute("COMMIT")
        self.logger.info("Deployed %s index(es): %s", len(definitions), ", ".join(d.name for d in definitions))

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _guard(self, operation: str):
        transport = self

        class ErrorTranslator:
            def __enter__(self):
                return self

            def __exit__(self, exc_type, exc, tb):
                if exc is None or not isinstance(exc, sqlite3.Error):
                    return False
                if isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc).lower():
                    raise TransportTimeoutError(f"SQLite {operation} timed out: {exc}") from exc
                transport.logger.error("SQLite %s failed: %s", operation, exc)
                raise TransportFailure(f"SQLite {operation} failed: {exc}") from exc

        return ErrorTranslator()

    def _select_records(self, keys: Iterable[str]) -> Dict[str, DocumentRecord]:
        connection = self._ensure_connection()
        unique = list(dict.fromkeys(key.lower() for key in keys))
        found: Dict[str, DocumentRecord] = {}
        for start in range(0, len(unique), _MAX_KEYS_PER_STATEMENT):
            chunk = unique[start : start + _MAX_KEYS_PER_STATEMENT]
            placeholders = ", ".join("?" for _ in chunk)
            rows = connection.execute(
                f"SELECT key, collection, type_tag, etag, body FROM documents WHERE key IN ({placeholders})",
                chunk,
            ).fetchall()
            for row in rows:
                found[row["key"].lower()] = self._row_to_record(row)
        return found

    def _resolve_includes(
        self,
        bodies: List[Dict[str, Any]],
        includes: Sequence[Include],
        *,
        exclude: Dict[str, Any],
    ) -> Dict[str, Optional[DocumentRecord]]:
        if not includes or not bodies:
            return {}
        excluded = {key.lower() for key in exclude}
        related = [key for key in collect_keys(bodies, includes) if key.lower() not in excluded]
        if not related:
            return {}
        found = self._select_records(related)
        return {key: found.get(key.lower()) for key in related}

    def _query_index(self, query: IndexQuery) -> List[DocumentRecord]:
        definition = self._indexes.get(query.index_name or "")
        if definition is None:
            raise TransportConfigurationError(f"Index '{query.index_name}' has not been deployed.")
        connection = self._ensure_connection()
        rows = connection.execute(
            "SELECT key, entry FROM index_entries WHERE index_name = ? ORDER BY rowid",
            (definition.name,),
        ).fetchall()
        matches = []
        for row in rows:
            entry = json.loads(row["entry"])
            if query.where is None or query.where.matches(entry):
                matches.append((row["key"], entry))
        matches = self._order_and_slice(matches, query)
        found = self._select_records(key for key, _ in matches)
        return [found[key.lower()] for key, _ in matches if key.lower() in found]

    def _query_collection(self, query: IndexQuery) -> List[DocumentRecord]:
        connection = self._ensure_connection()
        if query.collection is None:
            rows = connection.execute(
                "SELECT key, collection, type_tag, etag, body FROM documents ORDER BY rowid"
            ).fetchall()
        else:
            rows = connection.execute(
                "SELECT key, collection, type_tag, etag, body FROM documents WHERE collection = ? ORDER BY rowid",
                (query.collection,),
            ).fetchall()
        matches = []
        for row in rows:
            record = self._row_to_record(row)
            if query.type_tags is not None and record.type_tag not in query.type_tags:
                continue
            view = dict(record.body, id=record.key)
            if query.where is None or query.where.matches(view):
                matches.append((record, view))
        return [record for record, _ in self._order_and_slice(matches, query)]

    @staticmethod
    def _order_and_slice(matches: List[Any], query: IndexQuery) -> List[Any]:
        for name in reversed(query.order_by):
            descending = name.startswith("-")
            field_name = name.lstrip("-")
            matches.sort(key=lambda item: _sort_key(item[1].get(field_name)), reverse=descending)
        start = query.offset or 0
        end = start + query.limit if query.limit is not None else None
        return matches[start:end]

    def _apply_operations(
        self, connection: sqlite3.Connection, operations: Sequence[BatchOperation]
    ) -> Dict[str, Optional[str]]:
        versions: Dict[str, Optional[str]] = {}
        for op in operations:
            current = connection.execute(
                "SELECT etag FROM documents WHERE key = ?", (op.key,)
            ).fetchone()
            current_etag = current["etag"] if current else None
            if op.expected_etag == NEW_DOCUMENT_ETAG:
                if current_etag is not None:
                    raise ConcurrencyError(op.key, expected=None, actual=current_etag)
            elif op.expected_etag is not None and op.expected_etag != current_etag:
                raise ConcurrencyError(op.key, expected=op.expected_etag, actual=current_etag)

            if op.kind == DELETE:
                connection.execute("DELETE FROM documents WHERE key = ?", (op.key,))
                connection.execute("DELETE FROM index_entries WHERE key = ?", (op.key,))
                versions[op.key] = None
                continue

            record: DocumentRecord = op.record  # type: ignore[assignment]
            etag = self._next_etag(connection)
            connection.execute(
                "INSERT INTO documents (key, collection, type_tag, etag, body) VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET collection = excluded.collection, "
                "type_tag = excluded.type_tag, etag = excluded.etag, body = excluded.body",
                (op.key, record.collection, record.type_tag, etag, json.dumps(record.body)),
            )
            self._write_index_entries(connection, op.key, record)
            versions[op.key] = etag
        return versions

    def _write_index_entries(
        self, connection: sqlite3.Connection, key: str, record: DocumentRecord
    ) -> None:
        for definition in self._indexes.values():
            if definition.covers(record.collection, record.type_tag):
                connection.execute(
                    "INSERT INTO index_entries (index_name, key, entry) VALUES (?, ?, ?) "
                    "ON CONFLICT(index_name, key) DO UPDATE SET entry = excluded.entry",
                    (definition.name, key, json.dumps(definition.entry_for(record.body))),
                )
            else:
                connection.execute(
                    "DELETE FROM index_entries WHERE index_name = ? AND key = ?",
                    (definition.name, key),
                )

    def _rebuild_index(self, connection: sqlite3.Connection, definition: IndexDefinition) -> None:
        connection.execute("DELETE FROM index_entries WHERE index_name = ?", (definition.name,))
        for collection in definition.collections:
            rows = connection.execute(
                "SELECT key, collection, type_tag, etag, body FROM documents WHERE collection = ? ORDER BY rowid",
                (collection,),
            ).fetchall()
            for row in rows:
                record = self._row_to_record(row)
                if definition.covers(record.collection, record.type_tag):
                    connection.execute(
                        "INSERT INTO index_entries (index_name, key, entry) VALUES (?, ?, ?)",
                        (definition.name, record.key, json.dumps(definition.entry_for(record.body))),
                    )

    @staticmethod
    def _next_etag(connection: sqlite3.Connection) -> str:
        connection.execute(
            "INSERT INTO counters (name, value) VALUES ('etag', 1) "
            "ON CONFLICT(name) DO UPDATE SET value = value + 1"
        )
        value = connection.execute("SELECT value FROM counters WHERE name = 'etag'").fetchone()[0]
        return f"A:{value}"

    @staticmethod
    def _highest_numeric_key(connection: sqlite3.Connection, collection: str, separator: str) -> int:
        pattern = re.compile(rf"^{re.escape(collection)}{re.escape(separator)}(\d+)$", re.IGNORECASE)
        highest = 0
        for row in connection.execute(
            "SELECT key FROM documents WHERE collection = ?", (collection,)
        ).fetchall():
            match = pattern.match(row["key"])
            if match:
                highest = max(highest, int(match.group(1)))
        return highest

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> DocumentRecord:
        return DocumentRecord(
            key=row["key"],
            collection=row["collection"],
            type_tag=row["type_tag"],
            etag=row["etag"],
            body=json.loads(row["body"]),
        )

    @staticmethod
    def _normalize_path(url: str) -> str:
        if url == "sqlite:///:memory:":
            return ":memory:"
        prefix = "sqlite:///"
        if url.startswith(prefix):
            return url[len(prefix) :].split("?", 1)[0]
        return url


def _sort_key(value: Any) -> tuple:
    if value is None:
        return (2, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value)
    return (1, str(value))
