"""
Hook dispatcher coordinating session lifecycle events.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Type

if TYPE_CHECKING:
    from ..core.document import Document


HookHandler = Callable[..., None]

HOOK_EVENTS = frozenset({"before_store", "before_delete", "after_commit", "before_query"})


class HookDispatcher:
    """
    Maintains global and per-document-class hook handlers.

    Per-class handlers also fire for subclasses, so a handler registered on
    ``Example`` sees ``DerivedExample`` instances.
    """

    def __init__(self) -> None:
        self._global_handlers: Dict[str, List[HookHandler]] = defaultdict(list)
        self._document_handlers: Dict[Type["Document"], Dict[str, List[HookHandler]]] = defaultdict(
            lambda: defaultdict(list)
        )

    def register(
        self, event: str, handler: HookHandler, *, document: Optional[Type["Document"]] = None
    ) -> None:
        if event not in HOOK_EVENTS:
            raise ValueError(f"Unknown hook event '{event}'. Expected one of {sorted(HOOK_EVENTS)}.")
        if document:
            self._document_handlers[document][event].append(handler)
        else:
            self._global_handlers[event].append(handler)

    def fire(self, event: str, instance: Optional["Document"], **context: Any) -> None:
        handlers = list(self._global_handlers.get(event, []))
        if instance is not None:
            for klass in type(instance).__mro__:
                handlers.extend(self._document_handlers.get(klass, {}).get(event, []))
        for handler in handlers:
            handler(instance, **context)

    def clear(self) -> None:
        self._global_handlers.clear()
        self._document_handlers.clear()


hooks = HookDispatcher()
