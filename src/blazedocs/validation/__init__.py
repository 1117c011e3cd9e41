"""
Validation utilities exposed at the package level.
"""

from .errors import ValidationError
from .pipeline import validate_instance
from .validators import DocumentKeyValidator, MaxValueValidator, MinValueValidator, RegexValidator

__all__ = [
    "ValidationError",
    "validate_instance",
    "MinValueValidator",
    "MaxValueValidator",
    "RegexValidator",
    "DocumentKeyValidator",
]
