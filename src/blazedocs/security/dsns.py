"""DSN parsing and redaction utilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse

from .redaction import redact_query_params


@dataclass
class DSNConfig:
    scheme: str
    username: Optional[str]
    password: Optional[str]
    host: Optional[str]
    port: Optional[int]
    path: str
    query: dict[str, str]

    @property
    def base_url(self) -> str:
        """
        ``scheme://host:port`` without credentials, path or query.
        """
        netloc = self.host or ""
        if self.port:
            netloc += f":{self.port}"
        return f"{self.scheme}://{netloc}"

    def redacted(self) -> str:
        """
        Return the DSN with credentials and sensitive query values redacted.
        """

        netloc = ""
        if self.username:
            netloc += self.username
            if self.password:
                netloc += ":***"
            netloc += "@"
        if self.host:
            netloc += self.host
        if self.port:
            netloc += f":{self.port}"

        query_string = urlencode(redact_query_params(self.query)) if self.query else ""

        # Build manually so we retain the double slash prefix even when netloc is empty
        result = f"{self.scheme}://"
        if netloc:
            result += netloc
        result += self.path or ""
        if query_string:
            result += f"?{query_string}"
        return result


def parse_dsn(dsn: str) -> DSNConfig:
    parsed = urlparse(dsn)
    query = {k: v[0] for k, v in parse_qs(parsed.query).items()}
    return DSNConfig(
        scheme=parsed.scheme,
        username=parsed.username,
        password=parsed.password,
        host=parsed.hostname,
        port=parsed.port,
        path=parsed.path or "",
        query=query,
    )
