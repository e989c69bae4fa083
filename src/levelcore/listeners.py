"""Notification channels for XP and level changes.

Each channel keeps its observers in an immutable tuple that is replaced on
every registration change. Dispatch iterates the tuple it started with, so
registering or unregistering during a notification never skips or repeats
a callback in that notification.

A listener that raises is logged and skipped; the remaining listeners in
the channel still run.
"""

from __future__ import annotations

import inspect
import threading
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class XpChange:
    """An XP gain or loss. ``amount`` is the requested delta."""

    identity: uuid.UUID
    amount: int
    old_xp: int
    new_xp: int


@dataclass(frozen=True)
class LevelChange:
    identity: uuid.UUID
    old_level: int
    new_level: int


EventT = TypeVar("EventT", XpChange, LevelChange)
Listener = Callable[[EventT], Awaitable[None] | None]


class ListenerChannel(Generic[EventT]):
    """Ordered observers for one kind of notification."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: tuple[Listener, ...] = ()
        self._write_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._listeners)

    def register(self, listener: Listener) -> None:
        with self._write_lock:
            self._listeners = (*self._listeners, listener)

    def unregister(self, listener: Listener) -> bool:
        """Remove the earliest registration of ``listener``. Returns False if absent."""
        with self._write_lock:
            listeners = list(self._listeners)
            try:
                listeners.remove(listener)
            except ValueError:
                return False
            self._listeners = tuple(listeners)
            return True

    async def dispatch(self, event: EventT) -> None:
        """Call every listener in registration order; sync and async callables are both accepted."""
        for listener in self._listeners:
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.error(
                    "listener_failed",
                    channel=self.name,
                    listener=getattr(listener, "__qualname__", repr(listener)),
                    identity=str(event.identity),
                    exc_info=True,
                )
