"""
Document base classes and metadata orchestration for BlazeDocs.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Type, TypeVar

from ..errors import ConfigurationError
from ..utils import collection_name
from .fields import Field, KeyField
from .registry import document_registry


class DocumentConfigurationError(ConfigurationError):
    """Raised when a document class is misconfigured."""


@dataclass
class DocumentOptions:
    """
    Container for document metadata calculated by :class:`DocumentMeta`.
    """

    document: Type["BaseDocument"]
    collection: Optional[str] = None
    type_tag: str = ""
    abstract: bool = False
    embedded: bool = False
    fields: "OrderedDict[str, Field]" = field(default_factory=OrderedDict)
    key_field: Optional[KeyField] = None

    def add_field(self, field_obj: Field) -> None:
        self.fields[field_obj.require_name()] = field_obj
        if isinstance(field_obj, KeyField):
            self.key_field = field_obj

    def get_field(self, name: str) -> Field:
        try:
            return self.fields[name]
        except KeyError as exc:
            raise KeyError(f"Unknown field '{name}' on document '{self.document.__name__}'") from exc

    def has_field(self, name: str) -> bool:
        return name in self.fields

    def get_fields(self) -> Iterable[Field]:
        return self.fields.values()

    def body_fields(self) -> Iterable[Field]:
        return [f for f in self.fields.values() if not isinstance(f, KeyField)]


TDocument = TypeVar("TDocument", bound="Document")


class DocumentMeta(type):
    """
    Metaclass collecting fields (including inherited ones) and establishing
    collection, type tag, and key metadata.
    """

    def __new__(mcls, name: str, bases: tuple[type, ...], attrs: Dict[str, Any]) -> "DocumentMeta":
        # The root base class carries no metadata.
        if not any(isinstance(base, DocumentMeta) for base in bases):
            return super().__new__(mcls, name, bases, attrs)

        declared_fields: Dict[str, Field] = {}
        for attr_name, value in list(attrs.items()):
            if isinstance(value, Field):
                declared_fields[attr_name] = attrs.pop(attr_name)

        cls = super().__new__(mcls, name, bases, attrs)

        meta = cls.__dict__.get("Meta")
        abstract = bool(getattr(meta, "abstract", False)) if meta else False
        embedded = bool(getattr(cls, "_embedded", False))
        collection = getattr(meta, "collection", None) if meta else None
        type_tag = getattr(meta, "type_tag", None) if meta else None

        options = DocumentOptions(
            document=cls,
            type_tag=type_tag or name,
            abstract=abstract,
            embedded=embedded,
        )

        # Inherited fields come first, in base-class order.
        for base in reversed(cls.__mro__[1:]):
            base_meta = base.__dict__.get("_meta")
            if isinstance(base_meta, DocumentOptions):
                for inherited in base_meta.get_fields():
                    options.add_field(inherited)
                if collection is None and base_meta.collection:
                    collection = base_meta.collection

        sorted_fields = sorted(declared_fields.items(), key=lambda item: item[1].creation_counter)
        for attr_name, field_obj in sorted_fields:
            field_obj.contribute_to_class(cls, attr_name)
            options.add_field(field_obj)

        if not embedded and not abstract:
            if options.key_field is None:
                if "id" in options.fields:
                    raise DocumentConfigurationError(
                        f"Document '{name}' defines a field named 'id' that is not a KeyField."
                    )
                key_field = KeyField()
                key_field.contribute_to_class(cls, "id")
                options.add_field(key_field)
                options.fields.move_to_end("id", last=False)
            options.collection = collection or collection_name(name)

        cls._meta = options

        if not embedded and not abstract:
            document_registry.register(cls)

        return cls


class BaseDocument(metaclass=DocumentMeta):
    """
    Data container shared by documents and embedded documents.
    """

    _meta: DocumentOptions

    def __init__(self, **kwargs: Any) -> None:
        self._field_values: Dict[str, Any] = {}
        self._extra: Dict[str, Any] = {}

        unknown = set(kwargs) - set(self._meta.fields)
        if unknown:
            raise TypeError(
                f"{self.__class__.__name__} got unexpected field(s): {', '.join(sorted(unknown))}"
            )

        for field_obj in self._meta.get_fields():
            if field_obj.name in kwargs:
                setattr(self, field_obj.name, kwargs[field_obj.name])
            elif field_obj.has_default:
                default_value = field_obj.get_default()
                if default_value is not None:
                    setattr(self, field_obj.name, default_value)

    def __repr__(self) -> str:
        field_parts = ", ".join(
            f"{f.name}={self._field_values.get(f.name)!r}"
            for f in self._meta.get_fields()
            if f.name in self._field_values
        )
        return f"<{self.__class__.__name__} {field_parts}>"

    def to_dict(self) -> Dict[str, Any]:
        """
        JSON-compatible body. Unknown attributes read from the store are kept.
        """
        data: Dict[str, Any] = dict(self._extra)
        for field_obj in self._meta.body_fields():
            data[field_obj.require_name()] = field_obj.to_json(getattr(self, field_obj.name))
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        instance = cls.__new__(cls)
        instance._field_values = {}
        instance._extra = {}
        for name, value in data.items():
            if cls._meta.has_field(name) and not isinstance(cls._meta.fields[name], KeyField):
                instance._field_values[name] = cls._meta.fields[name].from_json(value)
            elif not name.startswith("@"):
                instance._extra[name] = value
        return instance

    # Validation --------------------------------------------------------
    def full_clean(self) -> None:
        from ..validation import validate_instance

        validate_instance(self)

    def clean(self) -> None:
        """
        Hook for subclasses to implement document-level validation.
        """
        return None


class EmbeddedDocument(BaseDocument):
    """
    A value nested inside a document body (e.g. an order line). Has no key
    and no collection of its own.
    """

    _embedded = True


class Document(BaseDocument):
    """
    Base class for stored documents. Concrete subclasses get an ``id``
    key field, a collection shared with their subclasses, and a type tag.
    """

    class Meta:
        abstract = True

    @property
    def key(self) -> Optional[str]:
        return self.id  # type: ignore[attr-defined]

    @classmethod
    def register_hook(cls, event: str, handler) -> None:
        from ..hooks import hooks

        hooks.register(event, handler, document=cls)
