"""
Transport protocol definitions and shared wire types for BlazeDocs.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from ..core.includes import Include
from ..errors import TransportConfigurationError
from ..query.expressions import Q
from ..query.indexes import IndexDefinition
from ..security.dsns import DSNConfig, parse_dsn

PUT = "PUT"
DELETE = "DELETE"

# Expected etag meaning "the key must not exist yet".
NEW_DOCUMENT_ETAG = ""


@dataclass
class TLSConfig:
    cert: str | None = None
    key: str | None = None
    verify: bool | str | None = None

    def httpx_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if self.cert and self.key:
            options["cert"] = (self.cert, self.key)
        elif self.cert:
            options["cert"] = self.cert
        if self.verify is not None:
            options["verify"] = self.verify
        return options


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(value: str, *, key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise TransportConfigurationError(f"Invalid boolean value for '{key}': {value!r}")


def _parse_float(value: str, *, key: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise TransportConfigurationError(f"Invalid float value for '{key}': {value!r}") from exc


def _pop_float(query: dict[str, str], key: str) -> float | None:
    if key not in query:
        return None
    return _parse_float(query.pop(key), key=key)


def _parse_tls(query: dict[str, str]) -> TLSConfig | None:
    tls = TLSConfig()
    if "cert" in query:
        tls.cert = query.pop("cert")
    if "cert_key" in query:
        tls.key = query.pop("cert_key")
    if "ca" in query:
        tls.verify = query.pop("ca")
    if "verify" in query:
        tls.verify = _parse_bool(query.pop("verify"), key="verify")
    if tls.cert or tls.key or tls.verify is not None:
        return tls
    return None


@dataclass
class ConnectionConfig:
    """
    Normalized connection configuration for transports.

    ``sqlite:///path/to/file.db`` and ``sqlite:///:memory:`` select the
    SQLite transport; ``http(s)://host:port/Database`` selects the HTTP
    transport, the first path segment naming the database.
    """

    url: str
    database: str | None = None
    timeout: float | None = None
    api_key: str | None = None
    options: dict[str, Any] | None = None
    tls: TLSConfig | None = None
    dsn: DSNConfig | None = None
    source: str | None = None

    @classmethod
    def from_dsn(cls, dsn: str, **kwargs: Any) -> "ConnectionConfig":
        """
        Build a connection config by parsing the DSN string.
        """

        parsed = parse_dsn(dsn)
        if not parsed.scheme:
            raise TransportConfigurationError(f"DSN {dsn!r} has no scheme.")
        query = dict(parsed.query)

        parsed_timeout = _pop_float(query, "timeout")
        parsed_api_key = query.pop("api_key", None)
        parsed_database = query.pop("database", None)
        if parsed_database is None and parsed.scheme in ("http", "https"):
            parsed_database = parsed.path.strip("/").split("/")[0] or None
        parsed_tls = _parse_tls(query)

        options = dict(query)
        options.update(kwargs.pop("options", None) or {})

        return cls(
            url=dsn,
            dsn=parsed,
            database=kwargs.pop("database", parsed_database),
            timeout=kwargs.pop("timeout", parsed_timeout),
            api_key=kwargs.pop("api_key", parsed_api_key),
            tls=kwargs.pop("tls", parsed_tls),
            options=options or None,
            **kwargs,
        )

    @classmethod
    def from_env(cls, env_var: str, **kwargs: Any) -> "ConnectionConfig":
        """
        Build a config from an environment variable containing a DSN.
        """

        value = os.getenv(env_var)
        if not value:
            raise TransportConfigurationError(f"Environment variable {env_var} is not set")
        return cls.from_dsn(value, source=env_var, **kwargs)

    @property
    def scheme(self) -> str:
        if self.dsn:
            return self.dsn.scheme
        return self.url.split(":", 1)[0]

    def redacted_dsn(self) -> str:
        """
        Return a DSN safe for logging (credentials removed).
        """

        if self.dsn:
            return self.dsn.redacted()
        return parse_dsn(self.url).redacted()

    def descriptive_label(self) -> str:
        """
        Describe the config source for diagnostics.
        """

        redacted = self.redacted_dsn()
        if self.source:
            return f"{self.source} ({redacted})"
        return redacted


# --------------------------------------------------------------------------- #
# Wire types
# --------------------------------------------------------------------------- #
@dataclass
class DocumentRecord:
    """
    A stored document as transports see it: key, metadata and JSON body.
    """

    key: str
    collection: str
    type_tag: str | None
    body: Dict[str, Any]
    etag: str | None = None


@dataclass
class FetchResult:
    """
    ``documents`` holds every requested key (``None`` when missing);
    ``includes`` holds every related key reached through the include paths.
    """

    documents: Dict[str, Optional[DocumentRecord]] = field(default_factory=dict)
    includes: Dict[str, Optional[DocumentRecord]] = field(default_factory=dict)


@dataclass
class BatchOperation:
    key: str
    kind: str
    record: DocumentRecord | None = None
    expected_etag: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in (PUT, DELETE):
            raise ValueError(f"Unknown batch operation '{self.kind}'")
        if self.kind == PUT and self.record is None:
            raise ValueError(f"PUT for '{self.key}' requires a document record")


@dataclass
class BatchResult:
    """New etags per written key (``None`` for deleted keys)."""

    versions: Dict[str, Optional[str]] = field(default_factory=dict)


@dataclass
class IndexQuery:
    """
    A query against a registered index, or against a collection when
    ``index_name`` is ``None``.
    """

    index_name: str | None = None
    collection: str | None = None
    type_tags: Tuple[str, ...] | None = None
    where: Q | None = None
    includes: Tuple[Include, ...] = ()
    order_by: Tuple[str, ...] = ()
    limit: int | None = None
    offset: int | None = None


@dataclass
class QueryResult:
    documents: List[DocumentRecord] = field(default_factory=list)
    includes: Dict[str, Optional[DocumentRecord]] = field(default_factory=dict)


@dataclass
class KeyRange:
    """
    Inclusive identity range reserved for one collection. ``node_tag`` is
    appended to generated keys by servers that shard identities.
    """

    low: int
    high: int
    node_tag: str | None = None


class DocumentTransport(Protocol):
    """
    Transport interface exposing the document store operations used by sessions.

    Implementations must be safe to share between sessions of one store and
    must apply a batch atomically.
    """

    slow_request_ms: int

    def connect(self, config: ConnectionConfig) -> Any:
        """
        Establish the underlying connection using the supplied configuration.
        """

    def close(self) -> None:
        """
        Close underlying resources. Implementations should be idempotent.
        """

    def fetch_one(self, key: str) -> Optional[DocumentRecord]:
        """
        Fetch a single document, ``None`` when it does not exist.
        """

    def fetch_many(self, keys: Sequence[str], includes: Sequence[Include] = ()) -> FetchResult:
        """
        Fetch several documents plus everything reachable through ``includes``.
        """

    def apply_batch(self, operations: Sequence[BatchOperation]) -> BatchResult:
        """
        Apply all operations or none of them.
        """

    def query(self, query: IndexQuery) -> QueryResult:
        """
        Run a query against an index or collection.
        """

    def reserve_key_range(self, collection: str, capacity: int, separator: str = "/") -> KeyRange:
        """
        Reserve ``capacity`` identities for new documents in ``collection``.
        The first range starts after any existing ``collection<separator><n>`` key.
        """

    def put_indexes(self, definitions: Sequence[IndexDefinition]) -> None:
        """
        Deploy index definitions so that subsequent queries can use them.
        """


def record_for(key: str, document: Any, body: Mapping[str, Any], etag: str | None = None) -> DocumentRecord:
    meta = document._meta
    return DocumentRecord(
        key=key,
        collection=meta.collection,
        type_tag=meta.type_tag,
        body=dict(body),
        etag=etag,
    )
