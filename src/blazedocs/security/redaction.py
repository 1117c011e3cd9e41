"""Redaction helpers for DSNs, headers and logged payloads."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

REDACTED_VALUE = "***"

_SENSITIVE_KEY_TOKENS = (
    "password",
    "passwd",
    "pwd",
    "secret",
    "token",
    "apikey",
    "api_key",
    "authorization",
    "private_key",
    "cert",
    "key_file",
)


def _compact(value: str) -> str:
    return "".join(ch for ch in value if ch.isalnum())


def is_sensitive_key(key: str) -> bool:
    normalized = key.lower()
    compact = _compact(normalized)
    for token in _SENSITIVE_KEY_TOKENS:
        if token in normalized or _compact(token) in compact:
            return True
    return False


def redact_query_params(query: Mapping[str, str]) -> dict[str, str]:
    return {key: REDACTED_VALUE if is_sensitive_key(key) else val for key, val in query.items()}


def redact_value(value: Any, *, key: str | None = None) -> Any:
    if key is not None and is_sensitive_key(str(key)):
        return REDACTED_VALUE
    if isinstance(value, dict):
        return {k: redact_value(v, key=str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(redact_value(item) for item in value)
    return value


def abbreviate_keys(keys: Iterable[str], *, limit: int = 10) -> list[str]:
    """
    Trim long key lists for log records.
    """
    key_list = list(keys)
    if len(key_list) <= limit:
        return key_list
    return key_list[:limit] + [f"... (+{len(key_list) - limit} more)"]
