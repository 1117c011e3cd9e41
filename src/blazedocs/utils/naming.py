"""
Naming utilities for BlazeDocs.
"""

import re


_FIRST_CAP_RE = re.compile("(.)([A-Z][a-z]+)")
_ALL_CAP_RE = re.compile("([a-z0-9])([A-Z])")


def camel_to_snake(name: str) -> str:
    """
    Convert ``CamelCase`` names to ``snake_case``.
    """
    step1 = _FIRST_CAP_RE.sub(r"\1_\2", name)
    snake = _ALL_CAP_RE.sub(r"\1_\2", step1).lower()
    return snake


def pluralize(word: str) -> str:
    if word.endswith("y") and len(word) > 1 and word[-2] not in "aeiou":
        return word[:-1] + "ies"
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


def collection_name(class_name: str) -> str:
    """
    Derive the default collection for a document class:
    ``OrderLine`` -> ``order_lines``, ``Company`` -> ``companies``.
    """
    return pluralize(camel_to_snake(class_name))
