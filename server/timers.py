"""
Named, cancellable delayed callbacks on the asyncio loop.

A GameSession owns one TimerRegistry; the UNO grace windows, the sync
request timeout, the host's periodic sync, send retries and computer
turns all live here so a new round or leaving the room can cancel them
in one place.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerRegistry:
    """Delayed and repeating callbacks keyed by name."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}

    def __contains__(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()

    def __len__(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    def names(self) -> list[str]:
        return [name for name in self._tasks if name in self]

    def schedule(self, name: str, delay: float, callback: TimerCallback) -> asyncio.Task:
        """
        Run ``callback`` once after ``delay`` seconds.

        Scheduling a name that is already pending replaces the old timer.
        """
        self.cancel(name)

        async def _fire() -> None:
            await asyncio.sleep(delay)
            if self._tasks.get(name) is task:
                del self._tasks[name]
            try:
                await callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Timer {name} failed: {e}", exc_info=True)

        task = asyncio.create_task(_fire())
        self._tasks[name] = task
        return task

    def schedule_repeating(self, name: str, interval: float, callback: TimerCallback) -> asyncio.Task:
        """Run ``callback`` every ``interval`` seconds until cancelled."""
        self.cancel(name)

        async def _loop() -> None:
            while True:
                await asyncio.sleep(interval)
                try:
                    await callback()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Repeating timer {name} failed: {e}", exc_info=True)

        task = asyncio.create_task(_loop())
        self._tasks[name] = task
        return task

    def cancel(self, name: str) -> bool:
        """Cancel a pending timer. Returns True if one was pending."""
        task: Optional[asyncio.Task] = self._tasks.pop(name, None)
        if task is None or task.done():
            return False
        if task is not asyncio.current_task():
            task.cancel()
        return True

    def cancel_prefix(self, prefix: str) -> int:
        """Cancel every timer whose name starts with ``prefix``."""
        names = [n for n in self._tasks if n.startswith(prefix)]
        return sum(1 for n in names if self.cancel(n))

    def cancel_all(self) -> None:
        for name in list(self._tasks):
            self.cancel(name)
        self._tasks.clear()
