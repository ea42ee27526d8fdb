from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable

from storefront_checkout.core.ports.outbound.scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class _LoopTimer(TimerHandle):
    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self._lock = threading.Lock()
        self._timer: asyncio.TimerHandle | None = None
        self._cancelled = False

    def arm(self, delay: float, callback: Callable[[], None]) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._timer = self._loop.call_later(delay, self._run, callback)

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            timer = self._timer
        if timer is not None:
            self._loop.call_soon_threadsafe(timer.cancel)

    def _run(self, callback: Callable[[], None]) -> None:
        # the callback does blocking I/O, keep it off the loop thread
        future = self._loop.run_in_executor(None, callback)
        future.add_done_callback(_log_failure)


class AsyncioScheduler(Scheduler):
    """Timers on an asyncio event loop, safe to arm from worker threads.

    The loop is bound at application startup; without one, the loop running
    in the calling thread is used.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        timer = _LoopTimer(loop)
        loop.call_soon_threadsafe(timer.arm, delay, callback)
        return timer


def _log_failure(future: "asyncio.Future[None]") -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("scheduled quote refresh crashed", exc_info=exc)
