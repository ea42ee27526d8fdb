from __future__ import annotations

from typing import Protocol

from returns.result import Result

from storefront_checkout.core.domain.model.checkout import CheckoutPhaseChanged
from storefront_checkout.core.domain.model.errors import CheckoutError


class CheckoutEventPublisher(Protocol):
    def publish(self, event: CheckoutPhaseChanged) -> Result[None, CheckoutError]: ...
