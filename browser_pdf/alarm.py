"""
Per-instance alarm scheduling on the asyncio event loop.

One alarm may be pending per scheduler; arming again replaces it.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class AlarmScheduler:
    """Fires an async handler at a wall-clock time."""

    def __init__(self, handler: Callable[[], Awaitable[None]], name: str = "alarm"):
        self._handler = handler
        self._name = name
        self._task: Optional[asyncio.Task] = None
        self.scheduled_at_ms: Optional[int] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self, at_time_ms: int) -> None:
        """
        Schedule the handler to run at `at_time_ms` (epoch milliseconds).

        Replaces any pending alarm. A time in the past fires on the next
        loop iteration.
        """
        self.cancel()
        self.scheduled_at_ms = at_time_ms
        self._task = asyncio.get_running_loop().create_task(
            self._fire(at_time_ms), name=f"{self._name}-{at_time_ms}"
        )

    def cancel(self) -> None:
        task = self._task
        self._task = None
        self.scheduled_at_ms = None
        # The handler may cancel its own alarm while running
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _fire(self, at_time_ms: int) -> None:
        delay = max(0, at_time_ms - now_ms()) / 1000
        await asyncio.sleep(delay)
        # Detach before running so the handler can re-arm
        if self._task is asyncio.current_task():
            self._task = None
            self.scheduled_at_ms = None
        try:
            await self._handler()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"{self._name} handler failed: {e}")
