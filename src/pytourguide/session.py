"""Position feed serialization for one guidance session."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from pytourguide.exceptions import TourGuideError
from pytourguide.guidance.coordinator import GuidanceCoordinator
from pytourguide.guidance.progress import TourProgressTracker
from pytourguide.models.poi import Coordinate

_logger = logging.getLogger(__name__)

# Sentinel that tells the consumer to finish after the queued positions.
_CLOSE = object()


class GuidanceSession:
    """Single consumer that feeds positions to guidance in arrival order.

    Position sources (GPS callbacks, the simulated walker) call
    :meth:`push` without awaiting anything; one background task forwards
    each position to the coordinator and, if given, the progress tracker.

    Usage::

        async with GuidanceSession(coordinator, tracker) as session:
            session.push(position)
            await session.drain()
    """

    def __init__(
        self,
        coordinator: GuidanceCoordinator,
        tracker: TourProgressTracker | None = None,
        *,
        max_pending: int = 0,
    ) -> None:
        self._coordinator = coordinator
        self._tracker = tracker
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max_pending)
        self._consumer: asyncio.Task[None] | None = None
        self._processed = 0
        self._closed = False

    @property
    def processed(self) -> int:
        """Number of positions handled so far."""
        return self._processed

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> GuidanceSession:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def start(self) -> None:
        if self._closed:
            raise TourGuideError("Guidance session is closed")
        if self._consumer is None:
            self._consumer = asyncio.get_running_loop().create_task(self._consume(), name="pytourguide-positions")

    # ------------------------------------------------------------------
    # Feeding
    # ------------------------------------------------------------------

    def push(self, position: Coordinate) -> None:
        """Queue *position*; raises :class:`asyncio.QueueFull` when bounded and full."""
        if self._closed:
            raise TourGuideError("Guidance session is closed")
        self._queue.put_nowait(position)

    async def drain(self) -> None:
        """Wait until every queued position has been processed."""
        await self._queue.join()

    async def close(self, *, drain: bool = False) -> None:
        """Stop the consumer; pending positions are dropped unless *drain* is set."""
        if self._closed:
            return
        self._closed = True
        consumer = self._consumer
        self._consumer = None
        if consumer is None:
            return
        if drain:
            await self._queue.put(_CLOSE)
            await consumer
            return
        consumer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await consumer

    async def _consume(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is _CLOSE:
                    return
                await self._handle(item)
            finally:
                self._queue.task_done()

    async def _handle(self, position: Coordinate) -> None:
        try:
            await self._coordinator.update_position(position)
            if self._tracker is not None:
                self._tracker.check_proximity(position)
        except TourGuideError:
            _logger.warning("Position update failed", exc_info=True)
        except Exception:  # noqa: BLE001
            _logger.exception("Unexpected error while handling position %s", position)
        self._processed += 1
