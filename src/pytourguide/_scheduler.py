"""Cancelable delayed callbacks bound to a guidance lifetime."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

_logger = logging.getLogger(__name__)


class TaskScheduler:
    """Tracks background tasks so that stopping guidance cancels all of them."""

    def __init__(self, *, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
        self._sleep = sleep
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def call_later(self, delay: float, callback: Callable[[], None], *, name: str | None = None) -> asyncio.Task[None]:
        """Run *callback* after *delay* seconds unless cancelled first."""

        async def _runner() -> None:
            await self._sleep(delay)
            try:
                callback()
            except Exception:  # noqa: BLE001
                _logger.warning("Scheduled callback %s failed", name or callback, exc_info=True)

        task = asyncio.get_running_loop().create_task(_runner(), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel_all(self) -> int:
        """Cancel every pending task; returns how many were cancelled."""
        cancelled = 0
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
                cancelled += 1
        self._tasks.clear()
        if cancelled:
            _logger.debug("Cancelled %d scheduled guidance tasks", cancelled)
        return cancelled
