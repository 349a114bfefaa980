"""
Hook manager for account and session events.
"""
from __future__ import annotations

from typing import Callable, Any, Awaitable, TypeVar, ParamSpec
from dataclasses import dataclass, field
from enum import IntEnum
from collections import defaultdict
import logging

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


class HookPriority(IntEnum):
    """Hook execution priority (lower runs first)."""
    FIRST = 0
    NORMAL = 50
    LAST = 100


@dataclass
class Hook:
    """Registered hook information."""
    name: str
    handler: Callable[..., Awaitable[Any]]
    priority: HookPriority = HookPriority.NORMAL
    source: str = ""  # Module that registered this


@dataclass
class HookResult:
    """Result from running hooks."""
    hook_name: str
    results: list[Any] = field(default_factory=list)
    errors: list[tuple[str, Exception]] = field(default_factory=list)


class HookManager:
    """
    Dispatches lifecycle events to registered async handlers.

    Events emitted by the services:
    - user.registered: Account created by password registration
    - user.created_via_oauth: Account created by an OAuth sign-in
    - user.deactivated: Account deactivated (self-service or admin)
    - user.created: Account created by an administrator
    - user.activated: Account reactivated by an administrator
    - user.password_changed: Password changed
    - user.password_reset: Password set by an administrator
    - user.profile_updated: Profile fields changed
    - auth.login: Session issued by password login
    - auth.oauth_login: Session issued by OAuth sign-in
    - auth.failed: Credential check failed
    - auth.logout: Single session revoked
    - auth.logout_all: Every session of a user revoked
    - auth.refresh_reuse: A rotated refresh token was presented again
    - oauth.linked: External identity linked
    - oauth.unlinked: External identity unlinked
    - rbac.role_assigned / rbac.role_removed
    - rbac.permission_granted / rbac.permission_revoked

    Handler failures never fail the operation that triggered the event;
    they are logged and collected in the returned ``HookResult``.

    Example usage:
    ```python
    hooks = HookManager()

    @hooks.on("oauth.linked")
    async def notify(user_id: UUID, provider: str):
        ...

    await hooks.trigger("oauth.linked", user_id=user.id, provider="google")
    ```
    """

    def __init__(self):
        self._hooks: dict[str, list[Hook]] = defaultdict(list)

    def register(
        self,
        name: str,
        handler: Callable[..., Awaitable[Any]],
        *,
        priority: HookPriority = HookPriority.NORMAL,
        source: str = "",
    ) -> Hook:
        """Register a hook handler."""
        hook = Hook(name=name, handler=handler, priority=priority, source=source)

        self._hooks[name].append(hook)
        self._hooks[name].sort(key=lambda h: h.priority)

        logger.debug(f"Registered hook: {name} (priority={priority})")
        return hook

    def unregister(self, name: str, handler: Callable) -> bool:
        """Unregister a hook handler."""
        hooks = self._hooks.get(name, [])
        for i, hook in enumerate(hooks):
            if hook.handler is handler:
                del hooks[i]
                return True
        return False

    def on(
        self,
        name: str,
        *,
        priority: HookPriority = HookPriority.NORMAL,
    ) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
        """Decorator to register a hook handler."""
        def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
            self.register(name, func, priority=priority)
            return func
        return decorator

    async def trigger(self, name: str, *args, **kwargs) -> HookResult:
        """
        Trigger all handlers for a hook, in priority order.

        Args:
            name: Hook name to trigger
            *args, **kwargs: Passed to handlers
        """
        result = HookResult(hook_name=name)

        for hook in list(self._hooks.get(name, [])):
            try:
                result.results.append(await hook.handler(*args, **kwargs))
            except Exception as e:
                result.errors.append((hook.source or str(hook.handler), e))
                logger.error(f"Hook {name} handler error: {e}")

        return result

    def has_hooks(self, name: str) -> bool:
        """Check if any hooks are registered for name."""
        return bool(self._hooks.get(name))

    def clear(self, name: str | None = None) -> None:
        """Clear hooks. If name given, clear only that hook."""
        if name:
            self._hooks.pop(name, None)
        else:
            self._hooks.clear()


# Global hook manager instance
hooks = HookManager()
