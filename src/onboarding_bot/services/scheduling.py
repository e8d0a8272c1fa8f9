"""Keyed delayed tasks used for debouncing."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)

DelayedCallback = Callable[[], Awaitable[None]]


class DelayedTaskScheduler(Protocol):
    """Runs a callback once after a delay, keyed so it can be rearmed."""

    def schedule(
        self, key: str, delay_seconds: float, callback: DelayedCallback
    ) -> None:
        """Arm a task for the key, replacing any pending task for it."""

    def cancel(self, key: str) -> bool:
        """Cancel the pending task for the key, if any."""

    def is_pending(self, key: str) -> bool:
        """Return true when a task is armed for the key."""


@dataclass
class AsyncioDelayedTaskScheduler(DelayedTaskScheduler):
    """Delayed tasks backed by the running asyncio loop."""

    _tasks: dict[str, asyncio.Task[None]] = field(default_factory=dict)

    def schedule(
        self, key: str, delay_seconds: float, callback: DelayedCallback
    ) -> None:
        """Arm a task on the running loop."""
        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._tasks[key] = loop.create_task(self._run(key, delay_seconds, callback))

    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        task.cancel()
        return True

    def is_pending(self, key: str) -> bool:
        return key in self._tasks

    async def shutdown(self) -> None:
        """Cancel every pending task and wait for them to finish."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(
        self, key: str, delay_seconds: float, callback: DelayedCallback
    ) -> None:
        await asyncio.sleep(delay_seconds)
        # The callback may rearm the same key.
        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]
        try:
            await callback()
        except Exception:
            logger.exception("Delayed task failed", extra={"task_key": key})
