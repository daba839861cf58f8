"""Cancel-on-supersede debouncing for async lookups"""

import asyncio
from typing import Awaitable, Callable, Optional


class Debouncer:
    """
    Runs the most recently scheduled coroutine after a quiet period.

    Scheduling again before the previous call has finished cancels it,
    including a request that is already in flight.
    """

    def __init__(self, delay_seconds: float):
        self.delay_seconds = delay_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, factory: Callable[[], Awaitable[None]]) -> asyncio.Task:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(factory))
        return self._task

    def cancel(self) -> None:
        if self.pending:
            self._task.cancel()

    async def wait(self) -> None:
        """Wait for the latest scheduled call to finish or be cancelled"""
        while self._task is not None:
            task = self._task
            await asyncio.wait({task})
            if task is self._task:
                return

    async def _run(self, factory: Callable[[], Awaitable[None]]) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        await factory()
