# src/linkflow/core/wakeup.py

"""
Wakeup channel between task-mutating commands and the reminder scheduler.

Commands run on arbitrary threads (console REPL, tests); the scheduler awaits on
its own asyncio loop. The channel is a single coalescing slot:
- notify() records "signaled" under a lock, then pokes the waiter's loop,
- wait() consumes the slot if it is already set before parking,
so a notify() that lands while the scheduler is entering its wait is never lost.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading

logger = logging.getLogger(__name__)


class WakeupChannel:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._event: asyncio.Event | None = None

    def notify(self) -> None:
        """Raise the signal. Safe to call from any thread; repeated calls coalesce."""
        with self._lock:
            self._pending = True
            loop, event = self._loop, self._event

        if loop is None or event is None:
            return

        # Loop already closed: the pending flag is still recorded for the next waiter.
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(event.set)

    def is_pending(self) -> bool:
        with self._lock:
            return self._pending

    def _consume(self) -> bool:
        with self._lock:
            was = self._pending
            self._pending = False
            return was

    def _bind(self) -> asyncio.Event:
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._loop is not loop or self._event is None:
                self._loop = loop
                self._event = asyncio.Event()
            return self._event

    async def wait(self, timeout: float | None = None) -> bool:
        """
        Block until the signal is raised or `timeout` seconds pass.

        Returns True if a signal was consumed, False on timeout.
        """
        event = self._bind()
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + max(0.0, float(timeout))

        while True:
            if self._consume():
                event.clear()
                return True

            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False

            try:
                await asyncio.wait_for(event.wait(), remaining)
            except TimeoutError:
                return self._consume()

            # Either a fresh notify or a stale set() from an already-consumed one.
            event.clear()
