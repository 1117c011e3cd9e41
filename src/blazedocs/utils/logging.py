"""Structured logging helpers for BlazeDocs."""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Any, Iterable, Optional

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        return True


def configure_logging(level: int = logging.INFO) -> None:
    logger = logging.getLogger("blazedocs")
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(correlation_id)s | %(name)s | %(message)s"
    )
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())
    logger.addHandler(handler)
    logger.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(f"blazedocs.{name}")


def set_correlation_id(value: Optional[str] = None) -> str:
    token = value or str(uuid.uuid4())
    _correlation_id.set(token)
    return token


def get_correlation_id() -> str:
    cid = _correlation_id.get()
    if cid is None:
        cid = set_correlation_id()
    return cid


def time_call(
    name: str,
    logger: logging.Logger,
    *,
    keys: Iterable[str] | None = None,
    threshold_ms: int = 100,
    on_complete: Any = None,
):
    """
    Context manager logging how long a transport call took.

    ``on_complete`` receives the elapsed milliseconds, letting callers feed
    request statistics without timing the call twice.
    """
    start = time.monotonic()
    key_list = list(keys) if keys is not None else None

    class Timer:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            elapsed_ms = (time.monotonic() - start) * 1000
            level = logging.WARNING if elapsed_ms >= threshold_ms else logging.DEBUG
            extra = {"keys": key_list, "elapsed_ms": elapsed_ms}
            logger.log(level, "%s took %.2fms", name, elapsed_ms, extra=extra)
            if on_complete is not None:
                on_complete(elapsed_ms)

    return Timer()
