"""
Persistence layer components: store, sessions, unit of work, identity map.
"""

from .identity_map import IdentityEntry, IdentityMap
from .keys import HiLoKeyGenerator, KeyGenerator
from .session import CommitResult, IncludeLoader, Session
from .store import DocumentStore, StoreConventions
from .unit_of_work import PendingWrite, UnitOfWork

__all__ = [
    "CommitResult",
    "DocumentStore",
    "HiLoKeyGenerator",
    "IdentityEntry",
    "IdentityMap",
    "IncludeLoader",
    "KeyGenerator",
    "PendingWrite",
    "Session",
    "StoreConventions",
    "UnitOfWork",
]
