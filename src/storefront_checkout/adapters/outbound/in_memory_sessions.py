from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict

from returns.result import Failure, Result, Success

from storefront_checkout.core.domain.model.checkout import CheckoutId, CheckoutState
from storefront_checkout.core.domain.model.errors import CheckoutError, SessionNotFound, ValidationError
from storefront_checkout.core.ports.outbound.sessions import (
    CheckoutSession,
    CheckoutSessionRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    session: CheckoutSession
    last_seen: float


@dataclass
class InMemoryCheckoutSessionRepository(CheckoutSessionRepository):
    """Live checkout sessions keyed by id, plus the final state of recently settled ones.

    A session nobody has looked up for `idle_timeout_seconds` is dropped on the
    next access. Only the last `finished_limit` settled states are kept.
    """

    idle_timeout_seconds: float | None = 1800.0
    finished_limit: int = 1000
    clock: Callable[[], float] = time.monotonic
    _store: Dict[str, _Entry] = field(default_factory=dict)
    _finished: "OrderedDict[str, CheckoutState]" = field(default_factory=OrderedDict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def save(self, session: CheckoutSession) -> Result[CheckoutId, CheckoutError]:
        key = session.checkout_id.value
        with self._lock:
            self._expire_idle()
            entry = self._store.get(key)
            if entry is not None and entry.session is not session:
                return Failure(ValidationError(message="checkout_id already exists"))
            self._store[key] = _Entry(session=session, last_seen=self.clock())
        return Success(session.checkout_id)

    def get(self, checkout_id: CheckoutId) -> Result[CheckoutSession, CheckoutError]:
        with self._lock:
            self._expire_idle()
            entry = self._store.get(checkout_id.value)
            if entry is None:
                return Failure(_not_found(checkout_id))
            entry.last_seen = self.clock()
            return Success(entry.session)

    def remove(self, checkout_id: CheckoutId) -> Result[None, CheckoutError]:
        with self._lock:
            self._store.pop(checkout_id.value, None)
        return Success(None)

    def retire(self, session: CheckoutSession) -> Result[None, CheckoutError]:
        key = session.checkout_id.value
        with self._lock:
            self._store.pop(key, None)
            if self.finished_limit <= 0:
                return Success(None)
            self._finished[key] = session.engine.state
            self._finished.move_to_end(key)
            while len(self._finished) > self.finished_limit:
                self._finished.popitem(last=False)
        return Success(None)

    def finished(self, checkout_id: CheckoutId) -> Result[CheckoutState, CheckoutError]:
        with self._lock:
            state = self._finished.get(checkout_id.value)
        if state is None:
            return Failure(_not_found(checkout_id))
        return Success(state)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _expire_idle(self) -> None:
        if self.idle_timeout_seconds is None:
            return
        cutoff = self.clock() - self.idle_timeout_seconds
        expired = [key for key, entry in self._store.items() if entry.last_seen < cutoff]
        for key in expired:
            session = self._store.pop(key).session
            if session.debouncer is not None:
                session.debouncer.cancel()
            logger.info("checkout expired id=%s phase=%s", key, session.engine.state.phase.value)


def _not_found(checkout_id: CheckoutId) -> SessionNotFound:
    return SessionNotFound(message="checkout not found", checkout_id=checkout_id.value)
