"""
Hook system for account and session lifecycle events.
"""

from .manager import HookManager, Hook, HookPriority, HookResult, hooks

__all__ = [
    "HookManager",
    "Hook",
    "HookPriority",
    "HookResult",
    "hooks",
]
