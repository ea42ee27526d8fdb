from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from returns.result import Result

from storefront_checkout.core.domain.model.checkout import CheckoutId, CheckoutState
from storefront_checkout.core.domain.model.errors import CheckoutError
from storefront_checkout.core.domain.service.quote_debouncer import QuoteRefreshDebouncer
from storefront_checkout.core.domain.service.readiness_engine import CheckoutReadinessEngine


@dataclass(frozen=True)
class CheckoutSession:
    """One shopper's checkout attempt: its engine and its pending auto-refresh."""

    engine: CheckoutReadinessEngine
    debouncer: QuoteRefreshDebouncer | None = None

    @property
    def checkout_id(self) -> CheckoutId:
        return self.engine.state.checkout_id


class CheckoutSessionRepository(Protocol):
    def save(self, session: CheckoutSession) -> Result[CheckoutId, CheckoutError]: ...

    def get(self, checkout_id: CheckoutId) -> Result[CheckoutSession, CheckoutError]: ...

    def remove(self, checkout_id: CheckoutId) -> Result[None, CheckoutError]: ...

    def retire(self, session: CheckoutSession) -> Result[None, CheckoutError]:
        """Drop a settled session, keeping its final state for `finished`."""
        ...

    def finished(self, checkout_id: CheckoutId) -> Result[CheckoutState, CheckoutError]: ...
