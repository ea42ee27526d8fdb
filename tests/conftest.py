from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, List

import pytest
from returns.result import Result, Success

from storefront_checkout.adapters.outbound.dummy_pricing import DummyPricingGateway
from storefront_checkout.adapters.outbound.dummy_settlement import DummySettlementGateway
from storefront_checkout.adapters.outbound.in_memory_points import InMemoryPointsLedger
from storefront_checkout.core.domain.model.address import DeliveryAddress
from storefront_checkout.core.domain.model.cart import CartLineItem, ShopCapability
from storefront_checkout.core.domain.model.checkout import Buyer, CheckoutPhaseChanged
from storefront_checkout.core.domain.model.errors import CheckoutError
from storefront_checkout.core.domain.model.money import Money
from storefront_checkout.core.domain.model.quote import ShopPriceSummary
from storefront_checkout.core.domain.service.eligibility_client import PointsEligibilityClient
from storefront_checkout.core.domain.service.pricing_client import PricingClient
from storefront_checkout.core.domain.service.readiness_engine import CheckoutReadinessEngine
from storefront_checkout.core.domain.service.settlement_dispatcher import SettlementDispatcher
from storefront_checkout.core.ports.outbound.pricing import PaymentSummary, QuoteRequest


def line(
    shop_id: str = "shop-1",
    product_id: str = "p-1",
    quantity: int = 1,
    unit_price: str = "10.00",
    capability: ShopCapability = ShopCapability.FULL_ECOMMERCE,
    shop_name: str = "",
    name: str = "",
) -> CartLineItem:
    return CartLineItem(
        product_id=product_id,
        shop_id=shop_id,
        quantity=quantity,
        unit_price=Decimal(unit_price),
        capability=capability,
        shop_name=shop_name or shop_id.replace("-", " ").title(),
        name=name,
    )


def full_address(country: str = "United States") -> DeliveryAddress:
    return DeliveryAddress(
        street_address="12 Main St",
        city="Springfield",
        country=country,
        state="IL",
        latitude=39.78,
        longitude=-89.65,
    )


def start_engine(items, address=None, preferences=None, events=None, user_id="u-1"):
    started = CheckoutReadinessEngine.start(
        buyer=Buyer(user_id=user_id),
        items=items,
        address=address,
        preferences=preferences,
        events=events,
    )
    return started.unwrap()


def shop_summary(
    shop_id: str = "shop-1",
    total: str = "42.00",
    shipping: str = "5.00",
    requires_choice: bool = False,
    fulfillment=None,
) -> ShopPriceSummary:
    total_m = Money.of(total)
    shipping_m = Money.of(shipping)
    return ShopPriceSummary(
        shop_id=shop_id,
        shop_name=shop_id,
        subtotal=total_m - shipping_m,
        discount_amount=Money.zero(),
        shipping_cost=shipping_m,
        tax_amount=Money.zero(),
        total_amount=total_m,
        fulfillment_type=fulfillment,
        requires_fulfillment_choice=requires_choice,
    )


def payment_summary(*shops: ShopPriceSummary) -> PaymentSummary:
    total = Money.zero()
    shipping = Money.zero()
    for s in shops:
        total = total + s.total_amount
        shipping = shipping + s.shipping_cost
    return PaymentSummary(
        shop_summaries=shops,
        subtotal=total - shipping,
        discount=Money.zero(),
        shipping=shipping,
        tax=Money.zero(),
        total=total,
        reward_points=0,
        currency="USD",
    )


@dataclass
class ScriptedPricingGateway:
    """Answers every request with `respond(request)`; records what it was asked."""

    respond: Callable[[QuoteRequest], Result[PaymentSummary, CheckoutError]]
    requests: List[QuoteRequest] = field(default_factory=list)

    def payment_summary(self, request: QuoteRequest) -> Result[PaymentSummary, CheckoutError]:
        self.requests.append(request)
        return self.respond(request)


def fixed_pricing(*shops: ShopPriceSummary) -> ScriptedPricingGateway:
    return ScriptedPricingGateway(respond=lambda _: Success(payment_summary(*shops)))


@dataclass
class RecordingPublisher:
    events: List[CheckoutPhaseChanged] = field(default_factory=list)

    def publish(self, event: CheckoutPhaseChanged):
        self.events.append(event)
        return Success(None)

    def phases(self):
        return [e.current for e in self.events]


class _ManualTimer:
    def __init__(self, due: float, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic clock: timers only fire on `advance`."""

    def __init__(self):
        self.now = 0.0
        self.timers: list[_ManualTimer] = []

    def call_later(self, delay: float, callback) -> _ManualTimer:
        timer = _ManualTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = [t for t in self.timers if not t.cancelled and t.due <= self.now]
        self.timers = [t for t in self.timers if t not in due and not t.cancelled]
        for t in sorted(due, key=lambda t: t.due):
            t.callback()

    @property
    def armed(self) -> int:
        return sum(1 for t in self.timers if not t.cancelled)


@pytest.fixture
def pricing_gateway() -> DummyPricingGateway:
    return DummyPricingGateway(
        unserved_countries={"Antarctica"}, stock_by_product={"p-limited": 1}
    )


@pytest.fixture
def pricing(pricing_gateway) -> PricingClient:
    return PricingClient(pricing_gateway)


@pytest.fixture
def ledger() -> InMemoryPointsLedger:
    return InMemoryPointsLedger(balances={"u-1": {"shop-1": 5_000, "shop-2": 400}})


@pytest.fixture
def settlement_gateway(pricing_gateway, ledger) -> DummySettlementGateway:
    return DummySettlementGateway(pricing=pricing_gateway, ledger=ledger)


@pytest.fixture
def dispatcher(settlement_gateway, ledger) -> SettlementDispatcher:
    return SettlementDispatcher(
        settlement=settlement_gateway, eligibility=PointsEligibilityClient(ledger)
    )
