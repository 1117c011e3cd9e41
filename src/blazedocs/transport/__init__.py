"""
Document transport interfaces and implementations.
"""

from ..errors import TransportConfigurationError
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
    TLSConfig,
)
from .http import HttpTransport
from .sqlite import SQLiteTransport


def transport_for(config: ConnectionConfig) -> DocumentTransport:
    """
    Pick a transport implementation from the DSN scheme.
    """
    scheme = config.scheme.lower()
    if scheme == "sqlite":
        return SQLiteTransport()
    if scheme in ("http", "https"):
        return HttpTransport()
    raise TransportConfigurationError(f"No transport available for scheme '{scheme}'.")


__all__ = [
    "DELETE",
    "PUT",
    "BatchOperation",
    "BatchResult",
    "ConnectionConfig",
    "DocumentRecord",
    "DocumentTransport",
    "FetchResult",
    "HttpTransport",
    "IndexQuery",
    "KeyRange",
    "QueryResult",
    "SQLiteTransport",
    "TLSConfig",
    "transport_for",
]
