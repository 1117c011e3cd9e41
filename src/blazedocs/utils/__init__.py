"""
Utility helpers shared across BlazeDocs packages.
"""

from .logging import configure_logging, get_logger, time_call
from .naming import camel_to_snake, collection_name

__all__ = ["camel_to_snake", "collection_name", "configure_logging", "get_logger", "time_call"]
