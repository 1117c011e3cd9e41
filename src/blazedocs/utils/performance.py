"""
Request tracking utilities and N+1 load detection.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Sequence

SLOW_REQUEST_ENV = "BLAZEDOCS_SLOW_REQUEST_MS"


def resolve_slow_request_ms(*, default: int = 100, override: int | None = None) -> int:
    """
    Pick the slow-request threshold: explicit override, then environment, then default.
    """
    if override is not None:
        return override
    raw = os.getenv(SLOW_REQUEST_ENV)
    if raw:
        try:
            return int(raw)
        except ValueError:
            logging.getLogger("blazedocs.performance").warning(
                "Ignoring invalid %s value %r", SLOW_REQUEST_ENV, raw
            )
    return default


@dataclass
class RequestStat:
    operation: str
    count: int = 0
    total_ms: float = 0.0
    fingerprints: set[str] = field(default_factory=set)
    samples: List[str] = field(default_factory=list)

    def record(self, fingerprint: str, elapsed_ms: float, *, sample_limit: int) -> None:
        self.count += 1
        self.total_ms += elapsed_ms
        if fingerprint:
            if fingerprint not in self.fingerprints:
                self.fingerprints.add(fingerprint)
                if len(self.samples) < sample_limit:
                    self.samples.append(fingerprint)

    @property
    def average_ms(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total_ms / self.count


class RequestTracker:
    """
    Tracks transport requests issued by a session and warns about
    repeated single-document loads that an include would have avoided.
    """

    def __init__(
        self,
        logger: logging.Logger,
        *,
        n_plus_one_threshold: int = 5,
        sample_size: int = 5,
    ) -> None:
        self.logger = logger
        self.n_plus_one_threshold = n_plus_one_threshold
        self.sample_size = sample_size
        self.stats: dict[str, RequestStat] = {}
        self._reported: set[str] = set()

    @property
    def total_requests(self) -> int:
        return sum(stat.count for stat in self.stats.values())

    def record(self, operation: str, keys: Sequence[str], elapsed_ms: float) -> None:
        label = self._label(operation, keys)
        stat = self.stats.setdefault(label, RequestStat(operation=label))
        stat.record(self._fingerprint(keys), elapsed_ms, sample_limit=self.sample_size)
        if operation == "fetch_one" and self._should_report(stat):
            self._report(label, stat)

    def summary(self) -> List[dict[str, object]]:
        return [
            {
                "operation": stat.operation,
                "count": stat.count,
                "total_ms": stat.total_ms,
                "average_ms": stat.average_ms,
                "distinct_keys": len(stat.fingerprints),
            }
            for stat in self.stats.values()
        ]

    def reset(self) -> None:
        self.stats.clear()
        self._reported.clear()

    def _should_report(self, stat: RequestStat) -> bool:
        if stat.count < self.n_plus_one_threshold:
            return False
        if len(stat.fingerprints) < 2:
            return False
        if stat.operation in self._reported:
            return False
        return True

    def _report(self, label: str, stat: RequestStat) -> None:
        self._reported.add(label)
        self.logger.warning(
            "Potential N+1 detected for '%s' (%s single loads, %s distinct keys); consider include()",
            label,
            stat.count,
            len(stat.fingerprints),
            extra={"operation": label, "count": stat.count, "samples": list(stat.samples)},
        )

    @staticmethod
    def _label(operation: str, keys: Sequence[str]) -> str:
        # Single loads are grouped per collection so related lookups show up together.
        if operation == "fetch_one" and keys:
            collection = keys[0].split("/", 1)[0] if "/" in keys[0] else keys[0]
            return f"fetch_one:{collection.lower()}"
        return operation

    @staticmethod
    def _fingerprint(keys: Sequence[str]) -> str:
        if not keys:
            return ""
        return repr(tuple(key.lower() for key in keys))
