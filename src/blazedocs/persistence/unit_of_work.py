"""
Unit of Work buffering document writes until commit.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from ..core.document import Document
from ..transport.base import DELETE, PUT
from .identity_map import IdentityEntry


@dataclass
class PendingWrite:
    key: str
    kind: str
    document: Optional[Document] = None
    expected_etag: str | None = None


class UnitOfWork:
    """
    Ordered buffer of pending writes, one per key; the latest operation wins.

    PUTs keep a reference to the live document and are serialized at commit,
    so later in-memory changes are always what gets written.
    """

    def __init__(self) -> None:
        self._pending: "OrderedDict[str, PendingWrite]" = OrderedDict()

    # Registration methods ----------------------------------------------
    def register_put(self, key: str, document: Document, expected_etag: str | None = None) -> None:
        self._register(PendingWrite(key, PUT, document, expected_etag))

    def register_delete(self, key: str, expected_etag: str | None = None) -> None:
        self._register(PendingWrite(key, DELETE, None, expected_etag))

    def collect_dirty(
        self,
        entries: Iterable[IdentityEntry],
        expected_etag: Callable[[IdentityEntry], Optional[str]] = lambda entry: None,
    ) -> None:
        for entry in entries:
            if entry.key.lower() in self._pending or entry.document is None:
                continue
            if entry.is_dirty():
                self.register_put(entry.key, entry.document, expected_etag(entry))

    def _register(self, write: PendingWrite) -> None:
        normalized = write.key.lower()
        # Re-registering moves the key to the end so batch order follows the last change.
        self._pending.pop(normalized, None)
        self._pending[normalized] = write

    def discard(self, key: str) -> None:
        self._pending.pop(key.lower(), None)

    # Inspection ----------------------------------------------------------
    def pending(self) -> List[PendingWrite]:
        return list(self._pending.values())

    def get(self, key: str) -> Optional[PendingWrite]:
        return self._pending.get(key.lower())

    def is_deleted(self, key: str) -> bool:
        write = self._pending.get(key.lower())
        return write is not None and write.kind == DELETE

    def keys(self) -> List[str]:
        return [write.key for write in self._pending.values()]

    def clear(self) -> None:
        self._pending.clear()

    def __contains__(self, key: str) -> bool:
        return key.lower() in self._pending

    def __len__(self) -> int:
        return len(self._pending)
