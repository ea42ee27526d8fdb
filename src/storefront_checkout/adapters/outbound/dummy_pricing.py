from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Sequence

from returns.result import Failure, Result, Success

from storefront_checkout.core.domain.model.cart import (
    CartLineItem,
    FulfillmentType,
    ShopCapability,
)
from storefront_checkout.core.domain.model.errors import CheckoutError, CollaboratorFailure
from storefront_checkout.core.domain.model.money import DEFAULT_CURRENCY, Money, fold_money
from storefront_checkout.core.domain.model.quote import ShopPriceSummary
from storefront_checkout.core.ports.outbound.pricing import (
    PaymentSummary,
    PricingGateway,
    QuoteRequest,
)


@dataclass
class DummyPricingGateway(PricingGateway):
    """Flat-rate pricing that answers with the same error shapes as the real service."""

    shipping_fee: Decimal = Decimal("5.00")
    packaging_fee: Decimal = Decimal("1.00")
    tax_rate: Decimal = Decimal("0")
    unserved_countries: set[str] = field(default_factory=set)
    stock_by_product: Dict[str, int] = field(default_factory=dict)
    currency: str = DEFAULT_CURRENCY
    calls: int = 0

    def payment_summary(self, request: QuoteRequest) -> Result[PaymentSummary, CheckoutError]:
        self.calls += 1
        country = request.address.country.strip()
        if country.upper() in {c.upper() for c in self.unserved_countries}:
            return Failure(
                CollaboratorFailure(
                    message=f"Sorry, we don't deliver to {country} yet.",
                    code="VALIDATION_ERROR",
                    status=400,
                )
            )

        for item in request.lines:
            if item.capability == ShopCapability.VISUALIZATION_ONLY:
                return Failure(
                    CollaboratorFailure(
                        message=f"{item.shop_name or item.shop_id} is a VISUALIZATION_ONLY shop",
                        code="CAPABILITY_REJECTED",
                        status=400,
                    )
                )

        shortages = self._shortages(request.lines)
        if shortages:
            return Failure(
                CollaboratorFailure(
                    message="Some items are not available in the requested quantity.",
                    code="INSUFFICIENT_STOCK",
                    details="; ".join(shortages),
                    status=409,
                )
            )

        return Success(self.price(request.lines, dict(request.preferences)))

    def price(
        self, lines: Sequence[CartLineItem], preferences: Dict[str, FulfillmentType]
    ) -> PaymentSummary:
        order: list[str] = []
        by_shop: dict[str, list[CartLineItem]] = {}
        for item in lines:
            shop_id = item.shop_id or ""
            if shop_id not in by_shop:
                order.append(shop_id)
                by_shop[shop_id] = []
            by_shop[shop_id].append(item)

        shops = tuple(self._shop_summary(by_shop[s], preferences.get(s)) for s in order)
        c = self.currency
        return PaymentSummary(
            shop_summaries=shops,
            subtotal=fold_money((s.subtotal for s in shops), c),
            discount=fold_money((s.discount_amount for s in shops), c),
            shipping=fold_money((s.fee() for s in shops), c),
            tax=fold_money((s.tax_amount for s in shops), c),
            total=fold_money((s.total_amount for s in shops), c),
            reward_points=sum(s.reward_points for s in shops),
            currency=c,
        )

    def _shop_summary(
        self, items: Sequence[CartLineItem], preference: FulfillmentType | None
    ) -> ShopPriceSummary:
        first = items[0]
        c = self.currency
        fulfillment = _fulfillment_for(first.capability, preference)
        subtotal = fold_money((it.subtotal(c) for it in items), c)
        shipping = Money.of(self.shipping_fee, c) if fulfillment == FulfillmentType.DELIVERY else Money.zero(c)
        packaging = Money.of(self.packaging_fee, c) if fulfillment == FulfillmentType.PICKUP else None
        fee = packaging if packaging is not None else shipping
        tax = Money.of(subtotal.amount * self.tax_rate, c)
        total = subtotal + fee + tax
        return ShopPriceSummary(
            shop_id=first.shop_id or "",
            shop_name=first.shop_name or first.shop_id or "",
            subtotal=subtotal,
            discount_amount=Money.zero(c),
            shipping_cost=shipping,
            tax_amount=tax,
            total_amount=total,
            reward_points=math.floor(subtotal.amount),
            packaging_fee=packaging,
            capability=first.capability,
            fulfillment_type=fulfillment,
            requires_fulfillment_choice=(
                first.capability == ShopCapability.HYBRID and fulfillment is None
            ),
            product_count=sum(it.quantity for it in items),
        )

    def _shortages(self, lines: Sequence[CartLineItem]) -> list[str]:
        out = []
        for item in lines:
            if item.product_id is None or item.product_id not in self.stock_by_product:
                continue
            available = self.stock_by_product[item.product_id]
            if item.quantity > available:
                out.append(
                    f"Product '{item.name or item.product_id}' is not available. "
                    f"Available: {available}"
                )
        return out


def _fulfillment_for(
    capability: ShopCapability, preference: FulfillmentType | None
) -> FulfillmentType | None:
    if capability == ShopCapability.PICKUP_ORDERS:
        return FulfillmentType.PICKUP
    if capability == ShopCapability.FULL_ECOMMERCE:
        return FulfillmentType.DELIVERY
    if capability == ShopCapability.HYBRID:
        return preference
    return None
