"""
Event-loop plumbing shared by the ledger and the caches

Provides:
- ListenerRegistry: ordered observer registry with isolated delivery
- PeriodicTask: cancellable background refresh timer
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


class ListenerRegistry(Generic[T]):
    """
    Observer registry

    Listeners are invoked synchronously in registration order. A listener
    that raises is logged and skipped; the remaining listeners still run
    and the exception never reaches the notifier.

    Usage:
        registry = ListenerRegistry("transaction")
        registry.add(on_update)
        registry.notify(tx)
    """

    def __init__(self, name: str):
        self._name = name
        self._listeners: List[Callable[[T], None]] = []

    def add(self, listener: Callable[[T], None]) -> None:
        """Register a listener (registering the same callable twice is a no-op)"""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove(self, listener: Callable[[T], None]) -> bool:
        """Unregister a listener, returns False if it was not registered"""
        try:
            self._listeners.remove(listener)
            return True
        except ValueError:
            return False

    def clear(self) -> None:
        self._listeners.clear()

    def notify(self, payload: T) -> None:
        # Snapshot so listeners may (un)register during delivery
        for listener in list(self._listeners):
            try:
                listener(payload)
            except Exception:
                logger.exception(f"Error in {self._name} update listener {listener!r}")

    def __len__(self) -> int:
        return len(self._listeners)


class PeriodicTask:
    """
    Cancellable periodic background job

    Runs the callback once immediately (optional) and then every interval
    seconds until stopped. Callback exceptions are logged and the loop
    continues with the next tick.

    Usage:
        task = PeriodicTask("price-refresh", 60.0, cache.refresh)
        task.start()
        ...
        await task.aclose()
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Awaitable[None]],
        sleep: Optional[SleepFunc] = None,
        run_immediately: bool = False,
    ):
        self._name = name
        self._interval = interval
        self._callback = callback
        self._sleep = sleep or asyncio.sleep
        self._run_immediately = run_immediately
        self._task: Optional[asyncio.Task] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop (restarts it if already running)"""
        self.stop()
        self._task = asyncio.create_task(self._run(), name=self._name)
        logger.debug(f"Started periodic task {self._name} (every {self._interval}s)")

    def stop(self) -> None:
        """Cancel the loop without waiting for it to unwind"""
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.debug(f"Stopped periodic task {self._name}")

    async def aclose(self) -> None:
        """Cancel the loop and wait until it has unwound"""
        task = self._task
        self.stop()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _run(self):
        if self._run_immediately:
            await self._tick()
        while True:
            await self._sleep(self._interval)
            await self._tick()

    async def _tick(self):
        try:
            await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Periodic task {self._name} failed, retrying next tick")
