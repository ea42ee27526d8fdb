from __future__ import annotations

import logging
from typing import Callable

from storefront_checkout.core.ports.outbound.scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class QuoteRefreshDebouncer:
    """Coalesces bursts of edits into one quote refresh.

    Every `poke` restarts the quiet period; `action` runs once the period
    elapses without another poke. An already running refresh is never
    cancelled, the staleness check on its result takes care of that.
    """

    def __init__(self, scheduler: Scheduler, quiet_period: float, action: Callable[[], None]):
        self._scheduler = scheduler
        self._quiet_period = quiet_period
        self._action = action
        self._pending: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def poke(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
        self._pending = self._scheduler.call_later(self._quiet_period, self._fire)

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _fire(self) -> None:
        self._pending = None
        logger.debug("quiet period elapsed, refreshing quote")
        self._action()
