from __future__ import annotations

from typing import Protocol, Sequence

from returns.result import Result

from storefront_checkout.core.domain.model.cart import CartLineItem
from storefront_checkout.core.domain.model.errors import CheckoutError
from storefront_checkout.core.domain.model.points import ShopPointsEligibility


class EligibilityGateway(Protocol):
    def check_eligibility(
        self, user_id: str, lines: Sequence[CartLineItem]
    ) -> Result[Sequence[ShopPointsEligibility], CheckoutError]: ...
