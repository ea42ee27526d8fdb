from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Protocol, Sequence

from returns.result import Result

from storefront_checkout.core.domain.model.address import DeliveryAddress
from storefront_checkout.core.domain.model.cart import CartLineItem, FulfillmentType
from storefront_checkout.core.domain.model.checkout import CheckoutState, GuestContact
from storefront_checkout.core.domain.model.errors import CheckoutError
from storefront_checkout.core.domain.model.settlement import SettlementMode, SettlementResult
from storefront_checkout.core.ports.outbound.coverage import CountryCoverage, CoveragePage


@dataclass(frozen=True)
class StartCheckoutCommand:
    items: Sequence[CartLineItem]
    user_id: str | None = None
    guest: GuestContact | None = None
    address: DeliveryAddress | None = None
    preferences: Mapping[str, FulfillmentType] = field(default_factory=dict)


@dataclass(frozen=True)
class UpdateAddressCommand:
    checkout_id: str
    address: DeliveryAddress


@dataclass(frozen=True)
class ChooseFulfillmentCommand:
    checkout_id: str
    shop_id: str
    fulfillment: FulfillmentType


@dataclass(frozen=True)
class ReplaceCartCommand:
    checkout_id: str
    items: Sequence[CartLineItem]


@dataclass(frozen=True)
class SubmitCommand:
    checkout_id: str
    mode: SettlementMode = SettlementMode.CARD


class CheckoutUseCase(Protocol):
    def start_checkout(self, command: StartCheckoutCommand) -> Result[CheckoutState, CheckoutError]: ...

    def get_checkout(self, checkout_id: str) -> Result[CheckoutState, CheckoutError]: ...

    def update_address(self, command: UpdateAddressCommand) -> Result[CheckoutState, CheckoutError]: ...

    def choose_fulfillment(
        self, command: ChooseFulfillmentCommand
    ) -> Result[CheckoutState, CheckoutError]: ...

    def replace_cart(self, command: ReplaceCartCommand) -> Result[CheckoutState, CheckoutError]: ...

    def refresh_quote(self, checkout_id: str) -> Result[CheckoutState, CheckoutError]: ...

    def submit(self, command: SubmitCommand) -> Result[SettlementResult, CheckoutError]: ...

    def complete_hybrid_payment(
        self, checkout_id: str, session_handle: str | None = None
    ) -> Result[SettlementResult, CheckoutError]: ...

    def confirm_card_payment(
        self, checkout_id: str, session_id: str
    ) -> Result[SettlementResult, CheckoutError]: ...

    def cancel_card_payment(
        self, checkout_id: str, session_id: str
    ) -> Result[CheckoutState, CheckoutError]: ...

    def restart(self, checkout_id: str) -> Result[CheckoutState, CheckoutError]: ...

    def abandon(self, checkout_id: str) -> Result[CheckoutState, CheckoutError]: ...

    def delivery_countries(self) -> Result[Sequence[CountryCoverage], CheckoutError]: ...

    def shops_delivering_to(
        self, country: str, page: int = 0, size: int = 10, search: str | None = None
    ) -> Result[CoveragePage, CheckoutError]: ...
