"""
Query construction: predicates, index definitions, and compilation.
"""

from .compiler import RQLCompiler
from .expressions import Q
from .indexes import IndexDefinition

__all__ = ["IndexDefinition", "Q", "RQLCompiler"]
