"""Ordered lifecycle hooks run around model writes."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class LifecycleEvent(str, Enum):
    """Points in the model lifecycle where hooks run."""

    BEFORE_SAVE = "before_save"
    AFTER_SAVE = "after_save"
    BEFORE_CREATE = "before_create"
    AFTER_CREATE = "after_create"
    BEFORE_UPDATE = "before_update"
    AFTER_UPDATE = "after_update"
    BEFORE_DESTROY = "before_destroy"
    AFTER_DESTROY = "after_destroy"


@dataclass(frozen=True)
class Callback:
    """A named hook. ``func`` takes the instance and may be sync or async."""

    name: str
    func: Callable[[Any], Any]


class CallbackRegistry:
    """Per-model hook lists, run in registration order.

    A hook that raises aborts the remaining hooks and propagates; nothing
    already written to the store is undone.
    """

    def __init__(self, hooks: dict[LifecycleEvent, list[Callback]] | None = None) -> None:
        self._hooks: dict[LifecycleEvent, list[Callback]] = {
            event: list(callbacks) for event, callbacks in (hooks or {}).items()
        }

    def register(
        self,
        event: LifecycleEvent | str,
        func: Callable[[Any], Any],
        *,
        name: str | None = None,
    ) -> Callable[[Any], Any]:
        """Append *func* to the hooks of *event*. Returns *func* so it works as a decorator."""
        event = LifecycleEvent(event)
        hook_name = name or getattr(func, "__name__", repr(func))
        existing = self._hooks.setdefault(event, [])
        if any(cb.name == hook_name for cb in existing):
            raise ValueError(f"A {event.value} hook named '{hook_name}' is already registered")
        existing.append(Callback(name=hook_name, func=func))
        return func

    def unregister(self, event: LifecycleEvent | str, name: str) -> None:
        event = LifecycleEvent(event)
        callbacks = self._hooks.get(event, [])
        remaining = [cb for cb in callbacks if cb.name != name]
        if len(remaining) == len(callbacks):
            raise KeyError(f"No {event.value} hook named '{name}'")
        self._hooks[event] = remaining

    def hooks(self, event: LifecycleEvent | str) -> list[Callback]:
        return list(self._hooks.get(LifecycleEvent(event), []))

    def copy(self) -> CallbackRegistry:
        """Return an independent registry with the same hooks (used for subclasses)."""
        return CallbackRegistry(self._hooks)

    async def run(self, event: LifecycleEvent, instance: Any) -> None:
        for callback in self._hooks.get(event, []):
            logger.debug("Running %s hook %s on %s", event.value, callback.name, type(instance).__name__)
            result = callback.func(instance)
            if inspect.isawaitable(result):
                await result
