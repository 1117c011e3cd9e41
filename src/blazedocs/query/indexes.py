"""
Index definitions registered on a store and materialized by transports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional, Tuple, Type

from ..core.registry import document_registry
from ..errors import ConfigurationError

if TYPE_CHECKING:
    from ..core.document import Document


ComputedField = Callable[[Mapping[str, Any]], Any]


@dataclass
class IndexDefinition:
    """
    A named map over one or more document types.

    Each indexed document contributes one entry holding ``fields`` copied
    from its body plus ``computed`` values derived from the body. Sources
    sharing a collection (a base class and its subclasses) are covered by a
    single map; with ``polymorphic=False`` only the listed type tags match.

    ``server_maps`` carries map source for servers that build indexes
    themselves and cannot run Python callables.
    """

    name: str
    sources: Tuple[Type["Document"], ...]
    fields: Tuple[str, ...] = ()
    computed: Dict[str, ComputedField] = field(default_factory=dict)
    polymorphic: bool = True
    server_maps: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ConfigurationError("Index names cannot be empty.")
        self.sources = tuple(self.sources)
        self.fields = tuple(self.fields)
        self.server_maps = tuple(self.server_maps)
        if not self.sources:
            raise ConfigurationError(f"Index '{self.name}' needs at least one source document type.")
        if not self.fields and not self.computed:
            raise ConfigurationError(f"Index '{self.name}' does not index any field.")
        overlap = set(self.fields) & set(self.computed)
        if overlap:
            raise ConfigurationError(
                f"Index '{self.name}' declares {sorted(overlap)} both as plain and computed fields."
            )
        for source in self.sources:
            meta = getattr(source, "_meta", None)
            if meta is None or meta.collection is None:
                raise ConfigurationError(
                    f"Index '{self.name}' source {source!r} is not a concrete document class."
                )
            for name in self.fields:
                if not meta.has_field(name):
                    raise ConfigurationError(
                        f"Index '{self.name}' field '{name}' does not exist on '{source.__name__}'."
                    )

    @property
    def collections(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(source._meta.collection for source in self.sources))

    @property
    def type_tags(self) -> Optional[Tuple[str, ...]]:
        """
        Type tags this index maps: the sources' own tags plus, when
        polymorphic, every registered subclass of a source. ``None`` means
        every type stored in the covered collections.
        """
        covered: Dict[str, None] = {}
        for source in self.sources:
            covered.setdefault(source._meta.type_tag, None)
            if not self.polymorphic:
                continue
            for tag in document_registry.tags_for_collection(source._meta.collection):
                candidate = document_registry.resolve(tag)
                if candidate is not None and issubclass(candidate, source):
                    covered.setdefault(tag, None)
        if self.polymorphic:
            stored = {
                tag for collection in self.collections for tag in document_registry.tags_for_collection(collection)
            }
            if stored <= set(covered):
                return None
        return tuple(covered)

    @property
    def field_names(self) -> Tuple[str, ...]:
        return self.fields + tuple(self.computed)

    def accepts_field(self, name: str) -> bool:
        return name in self.fields or name in self.computed

    def covers(self, collection: str, type_tag: str | None) -> bool:
        if collection.lower() not in {c.lower() for c in self.collections}:
            return False
        tags = self.type_tags
        return tags is None or type_tag in tags

    def entry_for(self, body: Mapping[str, Any]) -> Dict[str, Any]:
        entry = {name: body.get(name) for name in self.fields}
        for name, compute in self.computed.items():
            entry[name] = compute(body)
        return entry
