"""
Trailing-edge debounce for autosave writes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 1.0


class DebounceScheduler:
    """
    Collapse bursts of ``schedule()`` calls into one callback invocation.

    Each call re-arms a single timer owned by this instance; the callback
    runs once the timer has been left alone for ``delay`` seconds. The
    callback reads whatever state is current when it fires. Callbacks never
    overlap: one fired while another is running waits for it to finish.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        delay: float = DEFAULT_DELAY_SECONDS,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        if delay < 0:
            raise ValueError("delay must be non-negative")
        self.delay = delay
        self._callback = callback
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()
        self._lock = asyncio.Lock()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> None:
        loop = self._loop or asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def flush(self) -> None:
        """Run a pending callback now instead of waiting for the timer."""
        if self._handle is None:
            await self.wait()
            return
        self.cancel()
        self._fire()
        await self.wait()

    async def wait(self) -> None:
        """Wait for callbacks already in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self) -> None:
        self._handle = None
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(self._run())
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    async def _run(self) -> None:
        # Runs one at a time, in the order fired.
        async with self._lock:
            await self._callback()

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Debounced callback raised", exc_info=(type(exc), exc, exc.__traceback__)
            )
