"""Security helpers for BlazeDocs."""

from .dsns import DSNConfig, parse_dsn
from .redaction import abbreviate_keys, redact_query_params, redact_value

__all__ = ["DSNConfig", "parse_dsn", "abbreviate_keys", "redact_query_params", "redact_value"]
