from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Tuple

from storefront_checkout.core.domain.model.money import DEFAULT_CURRENCY, Money, fold_money


class ShopCapability(str, Enum):
    VISUALIZATION_ONLY = "VISUALIZATION_ONLY"
    PICKUP_ORDERS = "PICKUP_ORDERS"
    FULL_ECOMMERCE = "FULL_ECOMMERCE"
    HYBRID = "HYBRID"


class FulfillmentType(str, Enum):
    PICKUP = "PICKUP"
    DELIVERY = "DELIVERY"


@dataclass(frozen=True)
class CartLineItem:
    product_id: str | None
    shop_id: str | None
    quantity: int
    unit_price: Decimal
    variant_id: int | None = None
    weight: Decimal = Decimal("0")
    name: str = ""
    shop_name: str = ""
    capability: ShopCapability = ShopCapability.FULL_ECOMMERCE

    def subtotal(self, currency: str = DEFAULT_CURRENCY) -> Money:
        return Money.of(self.unit_price, currency) * self.quantity


@dataclass(frozen=True)
class ShopGroup:
    shop_id: str
    shop_name: str
    capability: ShopCapability
    items: Tuple[CartLineItem, ...]
    fulfillment_preference: FulfillmentType | None = None

    def subtotal(self, currency: str = DEFAULT_CURRENCY) -> Money:
        return fold_money((it.subtotal(currency) for it in self.items), currency=currency)

    def effective_fulfillment(self) -> FulfillmentType | None:
        if self.capability == ShopCapability.PICKUP_ORDERS:
            return FulfillmentType.PICKUP
        if self.capability == ShopCapability.FULL_ECOMMERCE:
            return FulfillmentType.DELIVERY
        if self.capability == ShopCapability.HYBRID:
            return self.fulfillment_preference
        return None

    def with_preference(self, preference: FulfillmentType | None) -> "ShopGroup":
        return replace(self, fulfillment_preference=preference)


def cart_fingerprint(groups: Tuple[ShopGroup, ...]) -> Tuple[Tuple[str, str, int, str], ...]:
    """Identity of cart contents, independent of fulfillment choices."""
    return tuple(
        (g.shop_id, it.product_id or f"variant:{it.variant_id}", it.quantity, str(it.unit_price))
        for g in groups
        for it in g.items
    )


def preferences_of(groups: Tuple[ShopGroup, ...]) -> dict[str, FulfillmentType]:
    return {
        g.shop_id: g.fulfillment_preference
        for g in groups
        if g.fulfillment_preference is not None
    }
