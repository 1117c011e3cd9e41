"""
Identity map ensuring a single in-memory instance per document key.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from ..core.document import Document
from ..transport.base import DocumentRecord


@dataclass
class IdentityEntry:
    """
    What a session knows about one key.

    Included documents arrive as raw ``record``s and are materialized on
    first load; ``missing`` marks keys the store reported as absent.
    """

    key: str
    document: Optional[Document] = None
    record: Optional[DocumentRecord] = None
    etag: str | None = None
    snapshot: Optional[Dict[str, Any]] = None
    missing: bool = False

    @property
    def is_materialized(self) -> bool:
        return self.document is not None

    def body(self) -> Optional[Dict[str, Any]]:
        if self.document is not None:
            return self.document.to_dict()
        if self.record is not None:
            return self.record.body
        return None

    def is_dirty(self) -> bool:
        if self.document is None:
            return False
        return self.snapshot is None or self.document.to_dict() != self.snapshot


class IdentityMap:
    """
    Stores entries keyed by document key. Keys compare case-insensitively,
    so ``Products/1`` and ``products/1`` share one instance.
    """

    def __init__(self) -> None:
        self._store: Dict[str, IdentityEntry] = {}

    @staticmethod
    def _make_key(key: str) -> str:
        return key.lower()

    def add(
        self,
        document: Document,
        *,
        etag: str | None = None,
        snapshot: Optional[Dict[str, Any]] = None,
    ) -> IdentityEntry:
        key = document.key
        if key is None:
            raise ValueError(f"Cannot track {document!r} without a key.")
        entry = IdentityEntry(key=key, document=document, etag=etag, snapshot=snapshot)
        self._store[self._make_key(key)] = entry
        return entry

    def add_record(self, record: DocumentRecord) -> IdentityEntry:
        entry = IdentityEntry(key=record.key, record=record, etag=record.etag)
        self._store[self._make_key(record.key)] = entry
        return entry

    def mark_missing(self, key: str) -> IdentityEntry:
        entry = IdentityEntry(key=key, missing=True)
        self._store[self._make_key(key)] = entry
        return entry

    def get(self, key: str) -> Optional[IdentityEntry]:
        return self._store.get(self._make_key(key))

    def remove(self, key: str) -> Optional[IdentityEntry]:
        return self._store.pop(self._make_key(key), None)

    def clear(self) -> None:
        self._store.clear()

    def entries(self) -> List[IdentityEntry]:
        return list(self._store.values())

    def documents(self) -> Iterator[Document]:
        for entry in self._store.values():
            if entry.document is not None:
                yield entry.document

    def __contains__(self, key: str) -> bool:
        return self._make_key(key) in self._store

    def __len__(self) -> int:
        return len(self._store)
