from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from returns.result import Result

from storefront_checkout.core.domain.model.address import DeliveryAddress
from storefront_checkout.core.domain.model.cart import CartLineItem, FulfillmentType
from storefront_checkout.core.domain.model.errors import CheckoutError
from storefront_checkout.core.domain.model.money import Money
from storefront_checkout.core.domain.model.quote import ShopPriceSummary


@dataclass(frozen=True)
class QuoteRequest:
    address: DeliveryAddress
    lines: Sequence[CartLineItem]
    order_value: Money
    preferences: Sequence[tuple[str, FulfillmentType]] = ()
    user_id: str | None = None


@dataclass(frozen=True)
class PaymentSummary:
    shop_summaries: Sequence[ShopPriceSummary]
    subtotal: Money
    discount: Money
    shipping: Money
    tax: Money
    total: Money
    reward_points: int
    currency: str


class PricingGateway(Protocol):
    def payment_summary(self, request: QuoteRequest) -> Result[PaymentSummary, CheckoutError]:
        """Failures are raw `CollaboratorFailure`s; interpretation is the caller's job."""
        ...
