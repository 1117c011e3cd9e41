"""
Validation error hierarchy for BlazeDocs.
"""

from __future__ import annotations

from typing import Dict, List, Mapping

from ..errors import BlazeDocsError


class ValidationError(BlazeDocsError):
    """
    Aggregated validation error storing field-to-messages mapping.
    """

    def __init__(self, errors: Mapping[str, List[str]], *, key: str | None = None) -> None:
        self.errors: Dict[str, List[str]] = {
            name: list(messages) for name, messages in errors.items()
        }
        self.key = key
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        segments = []
        for name, messages in self.errors.items():
            prefix = name if name != "__all__" else "non-field"
            combined = "; ".join(messages)
            segments.append(f"{prefix}: {combined}")
        message = "; ".join(segments)
        if self.key:
            return f"{self.key}: {message}"
        return message
