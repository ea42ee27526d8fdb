from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from returns.result import Result

from storefront_checkout.core.domain.model.address import DeliveryAddress
from storefront_checkout.core.domain.model.cart import CartLineItem, FulfillmentType
from storefront_checkout.core.domain.model.checkout import Buyer
from storefront_checkout.core.domain.model.errors import CheckoutError
from storefront_checkout.core.domain.model.money import Money


@dataclass(frozen=True)
class CardSessionRequest:
    buyer: Buyer
    address: DeliveryAddress
    lines: Sequence[CartLineItem]
    currency: str
    preferences: Sequence[tuple[str, FulfillmentType]] = ()
    platform: str = "web"


@dataclass(frozen=True)
class PointsPaymentRequest:
    user_id: str
    address: DeliveryAddress
    lines: Sequence[CartLineItem]
    points_to_use: int
    preferences: Sequence[tuple[str, FulfillmentType]] = ()
    use_all_available_points: bool = True


@dataclass(frozen=True)
class PointsPaymentReceipt:
    success: bool
    points_used: int
    points_value: Money
    hybrid_payment: bool
    message: str = ""
    order_id: str | None = None
    order_number: str | None = None
    remaining_amount: Money | None = None
    session_handle: str | None = None


@dataclass(frozen=True)
class CardSessionStatus:
    session_id: str
    paid: bool
    order_id: str | None = None
    order_number: str | None = None


class SettlementGateway(Protocol):
    def create_card_session(self, request: CardSessionRequest) -> Result[str, CheckoutError]:
        """Authenticated variant; returns the session handle (redirect target)."""
        ...

    def create_guest_card_session(self, request: CardSessionRequest) -> Result[str, CheckoutError]: ...

    def process_points_payment(
        self, request: PointsPaymentRequest
    ) -> Result[PointsPaymentReceipt, CheckoutError]: ...

    def complete_hybrid_payment(
        self, user_id: str, order_id: str, session_handle: str
    ) -> Result[PointsPaymentReceipt, CheckoutError]: ...

    def verify_card_session(self, session_id: str) -> Result[CardSessionStatus, CheckoutError]: ...

    def cancel_card_session(self, session_id: str) -> Result[None, CheckoutError]: ...
