from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Tuple

from storefront_checkout.core.domain.model.address import DeliveryAddress
from storefront_checkout.core.domain.model.cart import (
    FulfillmentType,
    ShopCapability,
    ShopGroup,
    cart_fingerprint,
    preferences_of,
)
from storefront_checkout.core.domain.model.money import DEFAULT_CURRENCY, Money


@dataclass(frozen=True)
class PreferencesSnapshot:
    """The inputs a quote was requested with."""

    address: DeliveryAddress
    cart: Tuple[Tuple[str, str, int, str], ...]
    preferences: Tuple[Tuple[str, FulfillmentType], ...]

    @staticmethod
    def capture(address: DeliveryAddress, groups: Tuple[ShopGroup, ...]) -> "PreferencesSnapshot":
        prefs = preferences_of(groups)
        return PreferencesSnapshot(
            address=address,
            cart=cart_fingerprint(groups),
            preferences=tuple(sorted(prefs.items())),
        )

    def preference_map(self) -> Mapping[str, FulfillmentType]:
        return dict(self.preferences)


@dataclass(frozen=True)
class ShopPriceSummary:
    shop_id: str
    shop_name: str
    subtotal: Money
    discount_amount: Money
    shipping_cost: Money
    tax_amount: Money
    total_amount: Money
    reward_points: int = 0
    reward_points_value: Money = field(default_factory=Money.zero)
    packaging_fee: Money | None = None
    capability: ShopCapability | None = None
    fulfillment_type: FulfillmentType | None = None
    requires_fulfillment_choice: bool = False
    product_count: int = 0
    distance_km: float | None = None
    warehouse_name: str | None = None
    is_international_shipping: bool = False

    def fee(self) -> Money:
        """Shipping for deliveries, packaging for pickups."""
        if self.fulfillment_type == FulfillmentType.PICKUP and self.packaging_fee is not None:
            return self.packaging_fee
        return self.shipping_cost


@dataclass(frozen=True)
class PriceQuote:
    shop_summaries: Tuple[ShopPriceSummary, ...]
    subtotal: Money
    discount: Money
    shipping: Money
    tax: Money
    total: Money
    reward_points: int
    fetched_at: datetime
    snapshot: PreferencesSnapshot
    currency: str = DEFAULT_CURRENCY

    def summary_for(self, shop_id: str) -> ShopPriceSummary | None:
        for s in self.shop_summaries:
            if s.shop_id == shop_id:
                return s
        return None

    def is_stale(self, address: DeliveryAddress, groups: Tuple[ShopGroup, ...]) -> bool:
        return self.snapshot != PreferencesSnapshot.capture(address, groups)
