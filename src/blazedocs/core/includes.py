"""
Declarative relation descriptors used to prefetch related documents.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Tuple, Type, Union

from ..errors import ConfigurationError
from .fields import EmbeddedField, ListField, ReferenceField


@dataclass(frozen=True)
class Include:
    """
    A relation path whose values are document keys.

    ``Include("company")`` follows a key stored directly on the document;
    ``Include("lines", "product")`` follows the ``product`` key of every
    element of the ``lines`` list (or of a single embedded value).
    """

    field: str
    nested: Optional[str] = None

    @classmethod
    def parse(cls, path: str) -> "Include":
        cleaned = path.replace("[]", "").strip()
        if not cleaned:
            raise ConfigurationError("Include paths cannot be empty.")
        head, sep, tail = cleaned.partition(".")
        if not head or "." in tail or (sep and not tail):
            raise ConfigurationError(
                f"Invalid include path '{path}'; expected 'field' or 'field.nested'."
            )
        return cls(head, tail or None)

    @property
    def path(self) -> str:
        """Wire form understood by document servers (``lines[].product``)."""
        if self.nested:
            return f"{self.field}[].{self.nested}"
        return self.field

    def keys_from(self, body: Mapping[str, Any]) -> Iterator[str]:
        value = body.get(self.field)
        if value is None:
            return
        items = value if isinstance(value, list) else [value]
        for item in items:
            if self.nested is not None:
                item = item.get(self.nested) if isinstance(item, Mapping) else None
            if isinstance(item, str) and item:
                yield item
            elif isinstance(item, list):
                yield from (key for key in item if isinstance(key, str) and key)

    def validate_for(self, document_class: Type[Any]) -> None:
        """
        Check that the path exists on ``document_class`` and ends in a key-valued field.
        """
        meta = document_class._meta
        if not meta.has_field(self.field):
            raise ConfigurationError(
                f"Cannot include '{self.path}': '{document_class.__name__}' has no field '{self.field}'."
            )
        field = meta.get_field(self.field)
        if self.nested is None:
            target = field.item_field if isinstance(field, ListField) else field
            if not isinstance(target, ReferenceField):
                raise ConfigurationError(
                    f"Cannot include '{self.path}': field '{self.field}' does not hold document keys."
                )
            return
        if isinstance(field, ListField):
            embedded = field.embedded_class
        elif isinstance(field, EmbeddedField):
            embedded = field.document_class
        else:
            embedded = None
        if embedded is None or not embedded._meta.has_field(self.nested):
            raise ConfigurationError(
                f"Cannot include '{self.path}': '{self.field}' has no nested field '{self.nested}'."
            )
        nested_field = embedded._meta.get_field(self.nested)
        target = nested_field.item_field if isinstance(nested_field, ListField) else nested_field
        if not isinstance(target, ReferenceField):
            raise ConfigurationError(
                f"Cannot include '{self.path}': '{self.nested}' does not hold document keys."
            )


IncludeSpec = Union[Include, str]


def normalize_includes(includes: Iterable[IncludeSpec] | IncludeSpec | None) -> Tuple[Include, ...]:
    if includes is None:
        return ()
    if isinstance(includes, (str, Include)):
        includes = [includes]
    normalized: List[Include] = []
    for item in includes:
        include = item if isinstance(item, Include) else Include.parse(item)
        if include not in normalized:
            normalized.append(include)
    return tuple(normalized)


def collect_keys(bodies: Iterable[Mapping[str, Any]], includes: Iterable[Include]) -> List[str]:
    """
    Related keys referenced by ``bodies`` along ``includes``, de-duplicated in order.
    """
    seen: dict[str, None] = {}
    include_list = list(includes)
    for body in bodies:
        for include in include_list:
            for key in include.keys_from(body):
                seen.setdefault(key, None)
    return list(seen)
