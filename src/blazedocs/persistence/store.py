"""
Long-lived document store holding configuration, conventions and indexes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from threading import RLock
from typing import Any, Dict, List, Optional

from ..errors import ConfigurationError, StoreNotInitializedError, UnknownIndexError
from ..query.indexes import IndexDefinition
from ..transport import ConnectionConfig, DocumentTransport, transport_for
from ..utils import get_logger
from .keys import HiLoKeyGenerator, KeyGenerator
from .session import Session


@dataclass
class StoreConventions:
    """
    Behaviour shared by every session of a store.

    ``from_env`` reads ``BLAZEDOCS_<FIELD>`` overrides, for example
    ``BLAZEDOCS_MAX_REQUESTS_PER_SESSION=50``.
    """

    max_requests_per_session: int = 30
    use_optimistic_concurrency: bool = False
    key_range_capacity: int = 32
    identity_separator: str = "/"
    n_plus_one_threshold: int = 5

    def __post_init__(self) -> None:
        if self.max_requests_per_session < 1:
            raise ConfigurationError("max_requests_per_session must be at least 1.")
        if self.key_range_capacity < 1:
            raise ConfigurationError("key_range_capacity must be at least 1.")
        if not self.identity_separator:
            raise ConfigurationError("identity_separator cannot be empty.")

    @classmethod
    def from_env(cls, prefix: str = "BLAZEDOCS_", **overrides: Any) -> "StoreConventions":
        values: Dict[str, Any] = {}
        for spec in fields(cls):
            raw = os.getenv(f"{prefix}{spec.name.upper()}")
            if raw is None:
                continue
            default = spec.default
            try:
                if isinstance(default, bool):
                    values[spec.name] = raw.strip().lower() in ("1", "true", "yes", "on")
                elif isinstance(default, int):
                    values[spec.name] = int(raw)
                else:
                    values[spec.name] = raw
            except ValueError as exc:
                raise ConfigurationError(f"Invalid value for {prefix}{spec.name.upper()}: {raw!r}") from exc
        values.update(overrides)
        return cls(**values)


class DocumentStore:
    """
    Entry point for applications: configure once, ``initialize()``, then
    open short-lived sessions.

    Construction only records configuration; ``initialize()`` connects the
    transport and deploys registered indexes. Safe to share between threads.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        database: str | None = None,
        config: ConnectionConfig | None = None,
        transport: DocumentTransport | None = None,
        conventions: StoreConventions | None = None,
        key_generator: KeyGenerator | None = None,
    ) -> None:
        if url is not None and config is not None:
            raise ConfigurationError("Pass either a url or a ConnectionConfig, not both.")
        if config is None:
            extra = {"database": database} if database is not None else {}
            config = ConnectionConfig.from_dsn(url or "sqlite:///:memory:", **extra)
        self.config = config
        self.transport = transport or transport_for(config)
        self.conventions = conventions or StoreConventions()
        self._key_generator = key_generator
        self._indexes: Dict[str, IndexDefinition] = {}
        self._initialized = False
        self._lock = RLock()
        self.logger = get_logger("persistence.store")

    @classmethod
    def from_env(cls, env_var: str = "BLAZEDOCS_URL", **kwargs: Any) -> "DocumentStore":
        return cls(config=ConnectionConfig.from_env(env_var), **kwargs)

    # ------------------------------------------------------------------ #
    # Context management
    # ------------------------------------------------------------------ #
    def __enter__(self) -> "DocumentStore":
        return self.initialize()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Indexes
    # ------------------------------------------------------------------ #
    def register_index(self, definition: IndexDefinition) -> IndexDefinition:
        """
        Register an index. After initialization it is deployed immediately.
        """
        with self._lock:
            if self._initialized:
                self.transport.put_indexes([definition])
            self._indexes[definition.name] = definition
        self.logger.debug("Registered index '%s'", definition.name)
        return definition

    def get_index(self, name: str) -> IndexDefinition:
        with self._lock:
            definition = self._indexes.get(name)
        if definition is None:
            raise UnknownIndexError(name)
        return definition

    @property
    def indexes(self) -> List[IndexDefinition]:
        with self._lock:
            return list(self._indexes.values())

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> "DocumentStore":
        with self._lock:
            if self._initialized:
                return self
            self.transport.connect(self.config)
            if self._indexes:
                self.transport.put_indexes(list(self._indexes.values()))
            if self._key_generator is None:
                self._key_generator = HiLoKeyGenerator(
                    self.transport,
                    capacity=self.conventions.key_range_capacity,
                    separator=self.conventions.identity_separator,
                )
            self._initialized = True
        self.logger.info(
            "Document store initialized for %s with %s index(es)",
            self.config.descriptive_label(),
            len(self._indexes),
        )
        return self

    @property
    def key_generator(self) -> KeyGenerator:
        if self._key_generator is None:
            raise StoreNotInitializedError("Call initialize() before generating keys.")
        return self._key_generator

    def open_session(self, *, use_optimistic_concurrency: Optional[bool] = None) -> Session:
        if not self._initialized:
            raise StoreNotInitializedError("Call initialize() before opening sessions.")
        session = Session(self)
        if use_optimistic_concurrency is not None:
            session.use_optimistic_concurrency = use_optimistic_concurrency
        return session

    def close(self) -> None:
        with self._lock:
            if not self._initialized:
                return
            self.transport.close()
            self._initialized = False
        self.logger.info("Document store closed")
