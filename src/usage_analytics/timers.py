from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable

from loguru import logger


class OwnedTimer:
    """A single-instance delayed callback.

    ``start`` always cancels a pending run before arming a new one, so at most
    one run is ever scheduled. Once the delay elapses the handle is released
    before the callback runs; ``cancel`` never interrupts a callback in flight.
    A run that was superseded by ``start`` or ``cancel`` after its delay
    elapsed but before its callback began is skipped.
    """

    def __init__(self, name: str, delay_seconds: float, callback: Callable[[], Awaitable[None] | None]):
        self._name = name
        self._delay_seconds = max(0.0, delay_seconds)
        self._callback = callback
        self._task: asyncio.Task | None = None
        self._arm = 0
        self._running: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def delay_seconds(self) -> float:
        return self._delay_seconds

    def start(self) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._wait_and_fire(self._arm))

    def cancel(self) -> bool:
        self._arm += 1
        task, self._task = self._task, None
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug(f"Timer {self._name!r} cancelled")
        return True

    async def drain(self) -> None:
        """Wait for callbacks that already fired to finish."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    async def _wait_and_fire(self, arm: int) -> None:
        await asyncio.sleep(self._delay_seconds)
        self._task = None
        run = asyncio.get_running_loop().create_task(self._fire(arm))
        self._running.add(run)
        run.add_done_callback(self._running.discard)

    async def _fire(self, arm: int) -> None:
        if arm != self._arm:
            logger.debug(f"Timer {self._name!r} run superseded before firing")
            return
        logger.debug(f"Timer {self._name!r} fired")
        try:
            result = self._callback()
            if inspect.isawaitable(result):
                await result
        except Exception as ex:
            logger.error(f"Timer {self._name!r} callback failed: {ex}")
