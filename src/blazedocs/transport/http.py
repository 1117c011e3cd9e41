"""
HTTP document transport speaking the REST API of a RavenDB-compatible server.
"""

from __future__ import annotations

from dataclasses import dataclass
from threading import RLock
from typing import Any, Dict, List, Optional, Sequence

from ..core.includes import Include
from ..errors import (
    BatchError,
    ConcurrencyError,
    TransportConfigurationError,
    TransportConnectionError,
    TransportFailure,
    TransportTimeoutError,
)
from ..query.compiler import TYPE_TAG_METADATA, RQLCompiler
from ..query.indexes import IndexDefinition
from ..security import abbreviate_keys, redact_value
from ..utils import get_logger, time_call
from ..utils.performance import resolve_slow_request_ms
from .base import (
    DELETE,
    PUT,
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

# Longer key lists are sent in a POST body instead of the query string.
_MAX_KEYS_IN_URL = 64


def _load_client():
    try:
        import httpx

        return httpx
    except ImportError:
        return None


@dataclass
class HttpConnectionState:
    client: Any
    config: ConnectionConfig
    driver: Any
    database: str
    owns_client: bool


class HttpTransport(DocumentTransport):
    """
    Transport wrapping an ``httpx.Client``.

    A pre-built client (for example one using ``httpx.MockTransport``) can be
    supplied; otherwise one is created from the connection config on connect.
    """

    def __init__(self, client: Any = None, slow_request_ms: int | None = None) -> None:
        self._client = client
        self._state: HttpConnectionState | None = None
        self._lock = RLock()
        self.logger = get_logger("transport.http")
        self.slow_request_ms = resolve_slow_request_ms(default=100, override=slow_request_ms)

    # ------------------------------------------------------------------ #
    # Connection management
    # ------------------------------------------------------------------ #
    def connect(self, config: ConnectionConfig) -> Any:
        driver = _load_client()
        if driver is None:
            raise TransportConfigurationError("httpx is required to use HttpTransport.")
        if not config.database:
            raise TransportConfigurationError(
                f"No database named in {config.descriptive_label()}; use http://host:port/Database."
            )

        self.logger.info(
            "Connecting to document server %s (database=%s)",
            config.descriptive_label(),
            config.database,
        )

        client = self._client
        owns_client = client is None
        if client is None:
            headers = {}
            if config.api_key:
                headers["Authorization"] = f"Bearer {config.api_key}"
            options: Dict[str, Any] = {}
            if config.tls:
                options.update(config.tls.httpx_options())
            base_url = config.dsn.base_url if config.dsn else config.url
            try:
                client = driver.Client(
                    base_url=base_url,
                    timeout=config.timeout if config.timeout is not None else 30.0,
                    headers=headers,
                    **options,
                )
            except Exception as exc:
                raise TransportConnectionError("Failed to create HTTP client.") from exc

        with self._lock:
            self._state = HttpConnectionState(client, config, driver, config.database, owns_client)
        return client

    def close(self) -> None:
        with self._lock:
            if self._state:
                try:
                    if self._state.owns_client:
                        self._state.client.close()
                finally:
                    self._state = None

    def _ensure_state(self) -> HttpConnectionState:
        if not self._state:
            raise TransportConnectionError("HttpTransport is not connected.")
        return self._state

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    def fetch_one(self, key: str) -> Optional[DocumentRecord]:
        response = self._request("fetch_one", "GET", "docs", params=[("id", key)], keys=[key], allow=(404,))
        if response.status_code == 404:
            return None
        results = response.json().get("Results") or []
        return self._to_record(results[0]) if results and results[0] else None

    def fetch_many(self, keys: Sequence[str], includes: Sequence[Include] = ()) -> FetchResult:
        params: List[tuple[str, str]] = [("include", include.path) for include in includes]
        if len(keys) > _MAX_KEYS_IN_URL:
            response = self._request(
                "fetch_many", "POST", "docs", params=params, json={"Ids": list(keys)}, keys=keys
            )
        else:
            params = [("id", key) for key in keys] + params
            response = self._request("fetch_many", "GET", "docs", params=params, keys=keys, allow=(404,))
        if response.status_code == 404:
            return FetchResult(documents={key: None for key in keys})

        payload = response.json()
        results = payload.get("Results") or []
        documents: Dict[str, Optional[DocumentRecord]] = {}
        for index, key in enumerate(keys):
            raw = results[index] if index < len(results) else None
            documents[key] = self._to_record(raw) if raw else None
        return FetchResult(documents=documents, includes=self._to_includes(payload.get("Includes")))

    def query(self, query: IndexQuery) -> QueryResult:
        rql, parameters = RQLCompiler(query).compile()
        self.logger.debug("Compiled RQL: %s", rql, extra={"rql": rql})
        response = self._request(
            "query", "POST", "queries", json={"Query": rql, "QueryParameters": parameters}
        )
        payload = response.json()
        return QueryResult(
            documents=[self._to_record(raw) for raw in payload.get("Results") or []],
            includes=self._to_includes(payload.get("Includes")),
        )

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #
    def apply_batch(self, operations: Sequence[BatchOperation]) -> BatchResult:
        commands = [self._to_command(op) for op in operations]
        keys = [op.key for op in operations]
        response = self._request(
            "apply_batch", "POST", "bulk_docs", json={"Commands": commands}, keys=keys, allow=(409, 400, 422)
        )
        if response.status_code == 409:
            error = self._json_or_empty(response)
            raise ConcurrencyError(
                error.get("Id") or (keys[0] if keys else ""),
                expected=error.get("Expected"),
                actual=error.get("Actual"),
            )
        if response.status_code in (400, 422):
            error = self._json_or_empty(response)
            raise BatchError(error.get("Message") or "Batch rejected by server.", keys=keys)

        versions: Dict[str, Optional[str]] = {key: None for key in keys}
        for result in response.json().get("Results") or []:
            key = result.get("@id") or result.get("Id")
            if key is None:
                continue
            versions[key] = result.get("@change-vector") if result.get("Type") == PUT else None
        return BatchResult(versions=versions)

    def reserve_key_range(self, collection: str, capacity: int, separator: str = "/") -> KeyRange:
        response = self._request(
            "reserve_key_range",
            "GET",
            "hilo/next",
            params=[
                ("tag", collection),
                ("lastBatchSize", str(capacity)),
                ("identityPartsSeparator", separator),
            ],
        )
        payload = response.json()
        return KeyRange(low=int(payload["Low"]), high=int(payload["High"]), node_tag=payload.get("ServerTag"))

    def put_indexes(self, definitions: Sequence[IndexDefinition]) -> None:
        body = {"Indexes": [self._to_index_definition(definition) for definition in definitions]}
        self._request("put_indexes", "PUT", "admin/indexes", json=body)
        self.logger.info("Deployed %s index(es): %s", len(definitions), ", ".join(d.name for d in definitions))

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: Sequence[tuple[str, str]] | None = None,
        json: Any = None,
        keys: Sequence[str] = (),
        allow: Sequence[int] = (),
    ):
        state = self._ensure_state()
        url = f"/databases/{state.database}/{path}"
        httpx = state.driver
        with time_call(
            f"http.{operation}",
            self.logger,
            keys=abbreviate_keys(keys),
            threshold_ms=self.slow_request_ms,
        ):
            try:
                response = state.client.request(method, url, params=list(params or []), json=json)
            except httpx.TimeoutException as exc:
                raise TransportTimeoutError(f"{operation} timed out") from exc
            except httpx.HTTPError as exc:
                raise TransportFailure(f"{operation} failed: {exc}") from exc

        if response.status_code in allow or response.is_success:
            return response
        self.logger.error(
            "%s returned HTTP %s",
            operation,
            response.status_code,
            extra={"keys": abbreviate_keys(keys), "payload": redact_value(self._json_or_empty(response))},
        )
        raise TransportFailure(f"{operation} failed with HTTP {response.status_code}: {response.text[:200]}")

    @staticmethod
    def _json_or_empty(response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError:
            return {}

    @staticmethod
    def _to_record(raw: Dict[str, Any]) -> DocumentRecord:
        body = dict(raw)
        metadata = body.pop("@metadata", {}) or {}
        return DocumentRecord(
            key=metadata.get("@id") or body.get("id", ""),
            collection=metadata.get("@collection") or "",
            type_tag=metadata.get(TYPE_TAG_METADATA),
            etag=metadata.get("@change-vector"),
            body=body,
        )

    def _to_includes(self, raw: Dict[str, Any] | None) -> Dict[str, Optional[DocumentRecord]]:
        if not raw:
            return {}
        return {key: self._to_record(value) if value else None for key, value in raw.items()}

    @staticmethod
    def _to_command(op: BatchOperation) -> Dict[str, Any]:
        if op.kind == DELETE:
            return {"Id": op.key, "Type": DELETE, "ChangeVector": op.expected_etag}
        record: DocumentRecord = op.record  # type: ignore[assignment]
        document = dict(record.body)
        document["@metadata"] = {
            "@collection": record.collection,
            TYPE_TAG_METADATA: record.type_tag,
        }
        return {"Id": op.key, "Type": PUT, "Document": document, "ChangeVector": op.expected_etag}

    @staticmethod
    def _to_index_definition(definition: IndexDefinition) -> Dict[str, Any]:
        maps = list(definition.server_maps)
        if not maps:
            if definition.computed:
                raise TransportConfigurationError(
                    f"Index '{definition.name}' has computed fields; provide server_maps for HTTP servers."
                )
            selected = ", ".join(f"doc.{name}" for name in definition.fields)
            tags = definition.type_tags
            for collection in definition.collections:
                if tags is None:
                    maps.append(f"from doc in docs.{collection} select new {{ {selected} }}")
                else:
                    tag_list = ", ".join(f'"{tag}"' for tag in tags)
                    maps.append(
                        f"from doc in docs.{collection} "
                        f"where new[] {{ {tag_list} }}.Contains(doc[\"@metadata\"][\"{TYPE_TAG_METADATA}\"]) "
                        f"select new {{ {selected} }}"
                    )
        return {"Name": definition.name, "Maps": maps, "Type": "Map"}
