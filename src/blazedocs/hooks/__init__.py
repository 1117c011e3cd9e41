"""
Lifecycle hooks registry for BlazeDocs sessions.
"""

from .dispatcher import HOOK_EVENTS, HookDispatcher, hooks

__all__ = ["HOOK_EVENTS", "HookDispatcher", "hooks"]
