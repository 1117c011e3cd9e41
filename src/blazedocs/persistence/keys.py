"""
Key generation for documents stored without an explicit key.
"""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Dict, Protocol, Type

from ..core.document import Document
from ..transport.base import DocumentTransport
from ..utils import get_logger


class KeyGenerator(Protocol):
    def next_key(self, document_class: Type[Document]) -> str:
        """
        Return a fresh key for a new document of ``document_class``.
        """


@dataclass
class _ReservedRange:
    next_value: int
    high: int
    node_tag: str | None = None

    @property
    def exhausted(self) -> bool:
        return self.next_value > self.high

    def take(self) -> int:
        value = self.next_value
        self.next_value += 1
        return value


class HiLoKeyGenerator:
    """
    Hands out ``<collection>/<n>`` keys from ranges reserved on the transport.

    One range is kept per collection, so ``Example`` and ``DerivedExample``
    share a key sequence. A new range is reserved only when the current one
    runs out. Safe to share between threads.
    """

    def __init__(self, transport: DocumentTransport, *, capacity: int = 32, separator: str = "/") -> None:
        if capacity < 1:
            raise ValueError("Key range capacity must be positive.")
        self.transport = transport
        self.capacity = capacity
        self.separator = separator
        self._ranges: Dict[str, _ReservedRange] = {}
        self._lock = Lock()
        self.logger = get_logger("persistence.keys")

    def next_key(self, document_class: Type[Document]) -> str:
        collection = document_class._meta.collection
        if collection is None:
            raise ValueError(f"{document_class.__name__} has no collection; it cannot be stored.")
        with self._lock:
            reserved = self._ranges.get(collection)
            if reserved is None or reserved.exhausted:
                key_range = self.transport.reserve_key_range(collection, self.capacity, self.separator)
                self.logger.debug(
                    "Reserved keys %s-%s for '%s'", key_range.low, key_range.high, collection
                )
                reserved = _ReservedRange(key_range.low, key_range.high, key_range.node_tag)
                self._ranges[collection] = reserved
            value = reserved.take()
        key = f"{collection}{self.separator}{value}"
        if reserved.node_tag:
            key = f"{key}-{reserved.node_tag}"
        return key
