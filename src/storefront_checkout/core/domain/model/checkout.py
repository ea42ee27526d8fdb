from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Tuple
from uuid import uuid4

from storefront_checkout.core.domain.model.address import DeliveryAddress
from storefront_checkout.core.domain.model.cart import ShopGroup
from storefront_checkout.core.domain.model.errors import CheckoutError
from storefront_checkout.core.domain.model.quote import PriceQuote
from storefront_checkout.core.domain.model.settlement import SettlementResult


class CheckoutPhase(str, Enum):
    ADDRESS_INCOMPLETE = "ADDRESS_INCOMPLETE"
    AWAITING_FULFILLMENT_CHOICE = "AWAITING_FULFILLMENT_CHOICE"
    QUOTE_PENDING = "QUOTE_PENDING"
    QUOTE_STALE = "QUOTE_STALE"
    READY = "READY"
    SUBMITTING = "SUBMITTING"
    SETTLED = "SETTLED"
    FAILED = "FAILED"
    ABANDONED = "ABANDONED"

    def is_terminal(self) -> bool:
        return self in (CheckoutPhase.SETTLED, CheckoutPhase.FAILED, CheckoutPhase.ABANDONED)


@dataclass(frozen=True)
class CheckoutId:
    value: str

    @staticmethod
    def new() -> "CheckoutId":
        return CheckoutId(str(uuid4()))


@dataclass(frozen=True)
class GuestContact:
    first_name: str
    last_name: str
    email: str
    phone: str = ""


@dataclass(frozen=True)
class Buyer:
    user_id: str | None = None
    guest: GuestContact | None = None

    def is_authenticated(self) -> bool:
        return bool(self.user_id)


@dataclass(frozen=True)
class CheckoutState:
    checkout_id: CheckoutId
    buyer: Buyer
    address: DeliveryAddress
    groups: Tuple[ShopGroup, ...]
    phase: CheckoutPhase
    quote: PriceQuote | None = None
    required_choices: Tuple[str, ...] = ()
    blocking_reason: str | None = None
    error: CheckoutError | None = None
    settlement: SettlementResult | None = None

    def group(self, shop_id: str) -> ShopGroup | None:
        for g in self.groups:
            if g.shop_id == shop_id:
                return g
        return None

    def fresh_quote(self) -> PriceQuote | None:
        if self.quote is None or self.quote.is_stale(self.address, self.groups):
            return None
        return self.quote


@dataclass(frozen=True)
class CheckoutPhaseChanged:
    checkout_id: CheckoutId
    previous: CheckoutPhase | None
    current: CheckoutPhase
    reason: str | None
    at: datetime
