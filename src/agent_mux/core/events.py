"""Minimal publish/subscribe used for provider and monitor events."""

import asyncio
import inspect
import logging
from typing import Callable, Generic, List, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], object]


class EventEmitter(Generic[T]):
    """Edge-triggered event channel.

    Listeners are called synchronously in subscription order. A listener that
    returns a coroutine has it scheduled on the running loop. Listener errors
    are logged and never reach the code that fired the event.
    """

    def __init__(self, name: str = "event"):
        self.name = name
        self._listeners: List[Listener] = []
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    __call__ = subscribe

    def fire(self, value: T) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(value)
            except Exception as e:
                logger.error(f"Listener for {self.name} failed: {e}")
                continue
            if inspect.isawaitable(result):
                self._schedule(result)

    def _schedule(self, awaitable) -> None:
        try:
            task = asyncio.ensure_future(awaitable)
        except RuntimeError as e:
            logger.error(f"Cannot schedule async listener for {self.name}: {e}")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        self._pending.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Async listener for {self.name} failed: {task.exception()}")

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def dispose(self) -> None:
        self._listeners.clear()
