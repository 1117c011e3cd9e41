"""
Exception hierarchy shared across BlazeDocs packages.

Absence of a document is never an error: loads return ``None``. Everything
below signals a failure the caller is expected to branch on.
"""

from __future__ import annotations

from typing import Iterable


class BlazeDocsError(Exception):
    """Base error for all BlazeDocs failures."""


class ConfigurationError(BlazeDocsError):
    """Raised for invalid setup or requests detected before any transport call."""


class StoreNotInitializedError(ConfigurationError):
    pass


class UnknownIndexError(ConfigurationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Index '{name}' is not registered on this store.")
        self.name = name


class InvalidPredicateError(ConfigurationError):
    pass


class UnknownDocumentTypeError(ConfigurationError):
    pass


class DocumentTypeError(BlazeDocsError):
    """Raised when a key resolves to a document of an incompatible type."""

    def __init__(self, key: str, expected: type, actual: type | str) -> None:
        actual_name = actual if isinstance(actual, str) else actual.__name__
        super().__init__(
            f"Document '{key}' is a '{actual_name}', which is not a '{expected.__name__}'."
        )
        self.key = key
        self.expected = expected
        self.actual = actual


class SessionError(BlazeDocsError):
    pass


class SessionClosedError(SessionError):
    pass


class TooManyRequestsError(SessionError):
    """Raised when a session exceeds its transport request budget."""


class TransportError(BlazeDocsError):
    """Base error for transport-related failures."""


class TransportConfigurationError(TransportError, ConfigurationError):
    """Raised when transport configuration or required dependencies are invalid."""


class TransportFailure(TransportError):
    """Network, server, or storage failure while performing a transport call."""


class TransportConnectionError(TransportFailure):
    pass


class TransportTimeoutError(TransportFailure):
    pass


class BatchError(TransportError):
    """
    Raised when a commit batch is rejected. The batch is never partially applied.
    """

    def __init__(self, message: str, *, keys: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.keys = list(keys)


class ConcurrencyError(BatchError):
    """Raised when an expected etag no longer matches the stored document."""

    def __init__(
        self,
        key: str,
        *,
        expected: str | None,
        actual: str | None,
    ) -> None:
        super().__init__(
            f"Optimistic concurrency violation on '{key}': expected etag {expected!r}, found {actual!r}.",
            keys=[key],
        )
        self.key = key
        self.expected = expected
        self.actual = actual
