from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


def _log_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Periodic callback failed: %s", exc, exc_info=exc)


class CancelToken:
    """Marks one start()..stop() lifetime; work started under it checks it before committing."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class PeriodicTimer:
    """Fires ``callback`` every ``interval`` seconds until cancelled.

    Ticks are a fixed interval apart and are not drift-corrected. When the
    previous callback is still running at tick time the tick is skipped and
    ``on_skip`` is called instead.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], Awaitable[None]],
        on_skip: Optional[Callable[[], None]] = None,
    ) -> None:
        self.interval = interval
        self._callback = callback
        self._on_skip = on_skip
        self._loop_task: Optional[asyncio.Task] = None
        self._current: Optional[asyncio.Task] = None
        self.ticks = 0
        self.skipped = 0

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def busy(self) -> bool:
        return self._current is not None and not self._current.done()

    def start(self) -> None:
        if self.running:
            return
        self._loop_task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.ticks += 1
            if self.busy:
                self.skipped += 1
                logger.debug("Skipping tick %d, previous run still in flight", self.ticks)
                if self._on_skip is not None:
                    self._on_skip()
                continue
            self._current = asyncio.ensure_future(self._callback())
            self._current.add_done_callback(_log_failure)

    def cancel(self) -> None:
        if self._loop_task is not None:
            self._loop_task.cancel()
            self._loop_task = None
        if self._current is not None:
            self._current.cancel()
            self._current = None
