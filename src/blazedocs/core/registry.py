"""
Registry mapping stored type tags to document classes.
"""

from __future__ import annotations

from threading import RLock
from typing import TYPE_CHECKING, Dict, List, Optional, Type

from ..errors import DocumentTypeError, UnknownDocumentTypeError

if TYPE_CHECKING:
    from .document import Document


class DocumentRegistry:
    """
    Keeps track of concrete document classes by type tag and collection.

    Re-registering a tag replaces the previous class, so the most recently
    defined class wins.
    """

    def __init__(self) -> None:
        self._by_tag: Dict[str, Type["Document"]] = {}
        self._by_name: Dict[str, Type["Document"]] = {}
        self._by_collection: Dict[str, List[str]] = {}
        self._lock = RLock()

    def register(self, document: Type["Document"]) -> None:
        meta = document._meta
        with self._lock:
            self._by_tag[meta.type_tag] = document
            self._by_name[document.__name__] = document
            tags = self._by_collection.setdefault(meta.collection.lower(), [])
            if meta.type_tag not in tags:
                tags.append(meta.type_tag)

    def resolve(self, type_tag: str | None) -> Optional[Type["Document"]]:
        if not type_tag:
            return None
        with self._lock:
            return self._by_tag.get(type_tag)

    def by_name(self, name: str) -> Optional[Type["Document"]]:
        label = name.split(".")[-1]
        with self._lock:
            return self._by_name.get(label) or self._by_tag.get(label)

    def tags_for_collection(self, collection: str) -> List[str]:
        with self._lock:
            return list(self._by_collection.get(collection.lower(), []))

    def class_for(
        self,
        key: str,
        type_tag: str | None,
        expected: Optional[Type["Document"]] = None,
        *,
        collection: str | None = None,
    ) -> Type["Document"]:
        """
        Choose the class used to materialize a stored document.

        The stored tag decides when it names a subclass of ``expected``;
        an untagged or unknown tag falls back to ``expected``, or to the
        only class registered for ``collection``.
        """
        if expected is not None and type_tag == expected._meta.type_tag:
            return expected
        candidate = self.resolve(type_tag)
        if candidate is None and expected is None and collection:
            tags = self.tags_for_collection(collection)
            if len(tags) == 1:
                candidate = self.resolve(tags[0])
        if expected is None:
            if candidate is None:
                raise UnknownDocumentTypeError(
                    f"No document class registered for type tag {type_tag!r} (key '{key}')."
                )
            return candidate
        if candidate is None:
            return expected
        if not issubclass(candidate, expected):
            raise DocumentTypeError(key, expected, candidate)
        return candidate


document_registry = DocumentRegistry()
