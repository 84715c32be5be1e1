"""Per-target publish/subscribe point for stream signals."""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

Callback = Callable[[Any], Any]


class Signal(str, Enum):
    ALARM = "alarm"
    ERROR = "error"
    DEBUG = "debug"
    RECONNECTING = "reconnecting"


class EventChannel:
    """Fan-out of engine signals to any number of subscribers.

    Subscribers of one signal are called in subscription order. Coroutine
    functions are scheduled as tasks and never awaited here; a subscriber
    that raises is logged and skipped.
    """

    def __init__(self, name: str = "", logger: Optional[logging.Logger] = None):
        self.name = name
        self.log = logger or logging.getLogger(__name__)
        self._subscribers: Dict[Signal, List[Callback]] = {signal: [] for signal in Signal}
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, signal: Signal, callback: Callback) -> Callback:
        self._subscribers[Signal(signal)].append(callback)
        return callback

    def unsubscribe(self, signal: Signal, callback: Callback) -> None:
        try:
            self._subscribers[Signal(signal)].remove(callback)
        except ValueError:
            pass

    def subscribers(self, signal: Signal) -> List[Callback]:
        return list(self._subscribers[Signal(signal)])

    # Convenience wrappers ---------------------------------------------------
    def on_alarm(self, callback: Callback) -> Callback:
        return self.subscribe(Signal.ALARM, callback)

    def on_error(self, callback: Callback) -> Callback:
        return self.subscribe(Signal.ERROR, callback)

    def on_debug(self, callback: Callback) -> Callback:
        return self.subscribe(Signal.DEBUG, callback)

    def on_reconnecting(self, callback: Callback) -> Callback:
        return self.subscribe(Signal.RECONNECTING, callback)

    # Publishing -------------------------------------------------------------
    def publish(self, signal: Signal, payload: Any) -> None:
        signal = Signal(signal)
        for callback in self.subscribers(signal):
            if inspect.iscoroutinefunction(callback):
                self._schedule(callback, payload)
                continue
            try:
                callback(payload)
            except Exception:
                self.log.exception("Subscriber %r failed on %s signal for %s", callback, signal.value, self.name)

    def _schedule(self, callback: Callback, payload: Any) -> None:
        task = asyncio.get_running_loop().create_task(callback(payload))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.log.error("Async subscriber failed for %s: %s", self.name, exc)

    async def drain(self) -> None:
        """Wait for scheduled coroutine subscribers to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = ["EventChannel", "Signal"]
