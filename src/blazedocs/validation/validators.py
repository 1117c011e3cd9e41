"""
Built-in validator helpers attachable to document fields.
"""

from __future__ import annotations

import re
from typing import Any, Protocol

from ..core.registry import document_registry


class Validator(Protocol):
    def __call__(self, value: Any) -> None: ...


class MinValueValidator:
    def __init__(self, minimum: float, message: str | None = None) -> None:
        self.minimum = minimum
        self.message = message or f"Ensure value is greater than or equal to {minimum}."

    def __call__(self, value: Any) -> None:
        if value is not None and value < self.minimum:
            raise ValueError(self.message)


class MaxValueValidator:
    def __init__(self, maximum: float, message: str | None = None) -> None:
        self.maximum = maximum
        self.message = message or f"Ensure value is less than or equal to {maximum}."

    def __call__(self, value: Any) -> None:
        if value is not None and value > self.maximum:
            raise ValueError(self.message)


class RegexValidator:
    """
    Requires string values to match ``pattern`` (e.g. key formats such as
    ``^companies/\\d+``).
    """

    def __init__(self, pattern: str, message: str | None = None) -> None:
        self.pattern = re.compile(pattern)
        self.message = message or f"Value does not match pattern '{pattern}'."

    def __call__(self, value: Any) -> None:
        if value is None:
            return
        if not isinstance(value, str):
            raise ValueError("Value must be a string for RegexValidator.")
        if not self.pattern.match(value):
            raise ValueError(self.message)


class DocumentKeyValidator:
    """
    Requires a stored key to belong to ``target``'s collection, e.g.
    ``companies/1`` for a reference to ``Company``.

    ``target`` may be a document class or its name; names are resolved on
    first use so references can point at classes defined later.
    """

    def __init__(self, target: type | str, separator: str = "/", message: str | None = None) -> None:
        self.target = target
        self.separator = separator
        self.message = message

    @property
    def collection(self) -> str:
        target = self.target
        if isinstance(target, str):
            resolved = document_registry.by_name(target)
            if resolved is None:
                raise ValueError(f"Unknown document type '{target}' for key validation.")
            target = resolved
        collection = target._meta.collection
        if collection is None:
            raise ValueError(f"'{target.__name__}' has no collection; its keys cannot be validated.")
        return collection

    def __call__(self, value: Any) -> None:
        if value is None:
            return
        if not isinstance(value, str):
            raise ValueError("Document keys must be strings.")
        prefix = f"{self.collection}{self.separator}"
        if len(value) <= len(prefix) or not value.lower().startswith(prefix.lower()):
            raise ValueError(self.message or f"Key '{value}' is not a '{prefix}<id>' key.")
