from __future__ import annotations

from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Cooperative single-threaded timers (an event loop, or a manual clock)."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...
