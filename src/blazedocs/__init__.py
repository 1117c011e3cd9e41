"""
BlazeDocs public package initialization.

Exposes documents, fields, the store and session, queries, and the error
hierarchy.
"""

from .core.document import Document, DocumentConfigurationError, EmbeddedDocument  # noqa: F401
from .core.fields import (
    BooleanField,
    DateTimeField,
    EmbeddedField,
    FloatField,
    IntegerField,
    ListField,
    ReferenceField,
    StringField,
)  # noqa: F401
from .core.includes import Include  # noqa: F401
from .errors import (  # noqa: F401
    BatchError,
    BlazeDocsError,
    ConcurrencyError,
    ConfigurationError,
    DocumentTypeError,
    InvalidPredicateError,
    SessionClosedError,
    StoreNotInitializedError,
    TooManyRequestsError,
    TransportConnectionError,
    TransportFailure,
    TransportTimeoutError,
    UnknownIndexError,
)
from .hooks import hooks  # noqa: F401
from .query import IndexDefinition, Q  # noqa: F401
from .transport import ConnectionConfig  # noqa: F401
from .persistence import CommitResult, DocumentStore, Session, StoreConventions  # noqa: F401
from .query.queryset import DocumentQuery  # noqa: F401
from .validation import ValidationError  # noqa: F401

__all__ = [
    "BatchError",
    "BlazeDocsError",
    "BooleanField",
    "CommitResult",
    "ConcurrencyError",
    "ConfigurationError",
    "ConnectionConfig",
    "DateTimeField",
    "Document",
    "DocumentConfigurationError",
    "DocumentQuery",
    "DocumentStore",
    "DocumentTypeError",
    "EmbeddedDocument",
    "EmbeddedField",
    "FloatField",
    "Include",
    "IndexDefinition",
    "IntegerField",
    "InvalidPredicateError",
    "ListField",
    "Q",
    "ReferenceField",
    "Session",
    "SessionClosedError",
    "StoreConventions",
    "StoreNotInitializedError",
    "StringField",
    "TooManyRequestsError",
    "TransportConnectionError",
    "TransportFailure",
    "TransportTimeoutError",
    "UnknownIndexError",
    "ValidationError",
    "hooks",
]
