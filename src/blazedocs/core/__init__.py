"""
Core building blocks for BlazeDocs documents, fields, and includes.
"""

from .document import (
    BaseDocument,
    Document,
    DocumentConfigurationError,
    DocumentMeta,
    DocumentOptions,
    EmbeddedDocument,
)
from .fields import (
    BooleanField,
    DateTimeField,
    EmbeddedField,
    Field,
    FloatField,
    IntegerField,
    KeyField,
    ListField,
    ReferenceField,
    StringField,
)
from .includes import Include, normalize_includes
from .registry import DocumentRegistry, document_registry

__all__ = [
    "BaseDocument",
    "BooleanField",
    "DateTimeField",
    "Document",
    "DocumentConfigurationError",
    "DocumentMeta",
    "DocumentOptions",
    "DocumentRegistry",
    "EmbeddedDocument",
    "EmbeddedField",
    "Field",
    "FloatField",
    "Include",
    "IntegerField",
    "KeyField",
    "ListField",
    "ReferenceField",
    "StringField",
    "document_registry",
    "normalize_includes",
]
