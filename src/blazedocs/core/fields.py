"""
Field definitions and descriptors for BlazeDocs documents.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Sequence, cast

if TYPE_CHECKING:
    from .document import BaseDocument, EmbeddedDocument


class FieldError(Exception):
    """Internal exception for field configuration issues."""


class Field:
    """
    Base class for document field descriptors.

    Fields manage attribute storage on document instances and convert values
    between their Python form and the JSON-compatible form kept in the store.
    """

    _creation_counter = 0

    def __init__(
        self,
        *,
        nullable: bool = True,
        default: Any = None,
        choices: Optional[Sequence[Any]] = None,
        validators: Optional[Iterable[Callable[[Any], None]]] = None,
        help_text: Optional[str] = None,
    ) -> None:
        self.nullable = nullable
        self.default = default
        self.choices = tuple(choices) if choices is not None else None
        self.validators = list(validators or [])
        self.help_text = help_text

        self.owner: type["BaseDocument"] | None = None  # Set during contribute_to_class
        self.name: str | None = None
        self.creation_counter = Field._creation_counter
        Field._creation_counter += 1

    # Descriptor protocol -------------------------------------------------
    def __get__(self, instance: object | None, owner: type | None = None) -> Any:
        if instance is None:
            return self

        document = cast("BaseDocument", instance)
        name = self.require_name()
        value = document._field_values.get(name)
        if value is None and name not in document._field_values:
            default = self.get_default()
            if default is not None or self.default is not None:
                document._field_values[name] = default
                return default
        return value

    def __set__(self, instance: object, value: Any) -> None:
        document = cast("BaseDocument", instance)
        name = self.require_name()
        if value is None:
            if not self.nullable:
                raise ValueError(f"Field '{name}' cannot be None")
            document._field_values[name] = None
            return

        if self.choices and value not in self.choices:
            raise ValueError(f"Value '{value}' for field '{name}' not in choices {self.choices}")

        document._field_values[name] = self.to_python(value)

    # Metadata helpers ----------------------------------------------------
    def contribute_to_class(self, owner: type["BaseDocument"], name: str) -> None:
        """
        Attach the field to the document class as a descriptor.
        """
        self.owner = owner
        self.name = name
        setattr(owner, name, self)

    def require_name(self) -> str:
        if self.name is None:
            raise FieldError("Field name is not set.")
        return self.name

    # Conversion / validation ---------------------------------------------
    def get_default(self) -> Any:
        if callable(self.default):
            return self.default()
        return self.default

    @property
    def has_default(self) -> bool:
        return self.default is not None or callable(self.default)

    def to_python(self, value: Any) -> Any:
        return value

    def to_json(self, value: Any) -> Any:
        return value

    def from_json(self, value: Any) -> Any:
        if value is None:
            return None
        return self.to_python(value)

    def run_validators(self, value: Any) -> None:
        for validator in self.validators:
            validator(value)


class KeyField(Field):
    """
    Document key (``"products/1"``). Assigned by the store when missing.
    """

    def __init__(self) -> None:
        super().__init__(nullable=True)

    def to_python(self, value: Any) -> str | None:
        if value is None:
            return value
        if not isinstance(value, str) or not value:
            raise ValueError(f"Document keys must be non-empty strings, received {value!r}")
        return value


class IntegerField(Field):
    def to_python(self, value: Any) -> int | None:
        if value is None:
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid integer value '{value}'")
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid integer value '{value}'") from exc


class FloatField(Field):
    def to_python(self, value: Any) -> float | None:
        if value is None:
            return value
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid float value '{value}'") from exc


class BooleanField(Field):
    def __init__(self, *, default: Any = False, **kwargs: Any) -> None:
        kwargs.setdefault("nullable", False)
        super().__init__(default=default, **kwargs)

    def to_python(self, value: Any) -> bool | None:
        if value is None:
            return value
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.lower()
            if lowered in {"true", "t", "1"}:
                return True
            if lowered in {"false", "f", "0"}:
                return False
        if isinstance(value, (int, float)):
            return bool(value)
        raise ValueError(f"Invalid boolean value '{value}'")


class StringField(Field):
    def __init__(self, *, max_length: int | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.max_length = max_length

    def to_python(self, value: Any) -> str | None:
        if value is None:
            return value
        result = str(value)
        if self.max_length and len(result) > self.max_length:
            field_name = self.require_name()
            raise ValueError(f"Value for field '{field_name}' exceeds max_length {self.max_length}")
        return result


class DateTimeField(Field):
    """
    Timezone-aware datetime stored as an ISO-8601 string.
    """

    def __init__(self, *, auto_now_add: bool = False, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.auto_now_add = auto_now_add

    def get_default(self) -> Any:
        if self.auto_now_add:
            return datetime.now(timezone.utc)
        return super().get_default()

    @property
    def has_default(self) -> bool:
        return self.auto_now_add or super().has_default

    def to_python(self, value: Any) -> datetime | None:
        if value is None:
            return value
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value)
            except ValueError as exc:
                raise ValueError(f"Invalid datetime for field '{self.name}': {value!r}") from exc
        raise ValueError(f"Expected datetime for field '{self.name}', received {value!r}")

    def to_json(self, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        return value


class ReferenceField(StringField):
    """
    Holds the key of another document. Assigning a document stores its key.

    Reference fields are the relation paths that ``include`` prefetches.
    """

    def __init__(self, to: type | str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.to = to

    def __set__(self, instance: object, value: Any) -> None:
        if value is not None and not isinstance(value, str) and hasattr(value, "id"):
            if value.id is None:
                raise ValueError(
                    f"Cannot reference an unsaved '{value.__class__.__name__}'; store it first."
                )
            value = value.id
        super().__set__(instance, value)

    def resolve_target(self) -> type | None:
        if isinstance(self.to, type):
            return self.to
        from .registry import document_registry

        return document_registry.by_name(self.to)


class EmbeddedField(Field):
    """
    Nests an :class:`EmbeddedDocument` inside a document body.
    """

    def __init__(self, document_class: type["EmbeddedDocument"], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.document_class = document_class

    def to_python(self, value: Any) -> Any:
        if value is None or isinstance(value, self.document_class):
            return value
        if isinstance(value, dict):
            return self.document_class.from_dict(value)
        raise ValueError(
            f"Expected {self.document_class.__name__} or dict for field '{self.name}', received {value!r}"
        )

    def to_json(self, value: Any) -> Any:
        if value is None:
            return None
        return value.to_dict()


class ListField(Field):
    """
    A list of scalar values or embedded documents.

    ``ListField(ReferenceField("Product"))`` and ``ListField(OrderLine)`` are
    both accepted; a document class is wrapped in an :class:`EmbeddedField`.
    """

    def __init__(self, item: Field | type["EmbeddedDocument"], **kwargs: Any) -> None:
        kwargs.setdefault("default", list)
        super().__init__(**kwargs)
        if isinstance(item, Field):
            self.item_field = item
        else:
            self.item_field = EmbeddedField(item)

    def contribute_to_class(self, owner: type["BaseDocument"], name: str) -> None:
        super().contribute_to_class(owner, name)
        self.item_field.owner = owner
        self.item_field.name = f"{name}[]"

    @property
    def embedded_class(self) -> type["EmbeddedDocument"] | None:
        if isinstance(self.item_field, EmbeddedField):
            return self.item_field.document_class
        return None

    def to_python(self, value: Any) -> list[Any] | None:
        if value is None:
            return value
        if isinstance(value, (str, bytes, dict)) or not isinstance(value, Iterable):
            raise ValueError(f"Expected a list for field '{self.name}', received {value!r}")
        return [self.item_field.to_python(item) for item in value]

    def to_json(self, value: Any) -> Any:
        if value is None:
            return None
        return [self.item_field.to_json(item) for item in value]

    def from_json(self, value: Any) -> Any:
        if value is None:
            return None
        return [self.item_field.from_json(item) for item in value]

    def run_validators(self, value: Any) -> None:
        super().run_validators(value)
        for item in value:
            self.item_field.run_validators(item)
