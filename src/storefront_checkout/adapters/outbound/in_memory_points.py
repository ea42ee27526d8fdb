from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Sequence

from returns.result import Result, Success

from storefront_checkout.core.domain.model.cart import CartLineItem
from storefront_checkout.core.domain.model.errors import CheckoutError
from storefront_checkout.core.domain.model.money import DEFAULT_CURRENCY, Money, fold_money
from storefront_checkout.core.domain.model.points import ShopPointsEligibility
from storefront_checkout.core.ports.outbound.eligibility import EligibilityGateway


@dataclass
class InMemoryPointsLedger(EligibilityGateway):
    """Per-user, per-shop point balances. Shared with the dummy settlement gateway."""

    balances: Dict[str, Dict[str, int]] = field(default_factory=dict)
    point_value: Decimal = Decimal("0.01")
    non_rewarding_shops: set[str] = field(default_factory=set)
    currency: str = DEFAULT_CURRENCY

    def check_eligibility(
        self, user_id: str, lines: Sequence[CartLineItem]
    ) -> Result[Sequence[ShopPointsEligibility], CheckoutError]:
        shops: dict[str, list[CartLineItem]] = {}
        for item in lines:
            shops.setdefault(item.shop_id or "", []).append(item)

        out = []
        for shop_id, items in shops.items():
            balance = self.balance(user_id, shop_id)
            value = self.value_of(balance)
            total = fold_money((it.subtotal(self.currency) for it in items), self.currency)
            rewarding = shop_id not in self.non_rewarding_shops
            out.append(
                ShopPointsEligibility(
                    shop_id=shop_id,
                    shop_name=items[0].shop_name or shop_id,
                    current_points_balance=balance,
                    current_points_value=value,
                    max_points_payable_amount=value.min(total),
                    can_pay_with_points=rewarding and balance > 0,
                    rewarding_enabled=rewarding,
                    total_amount=total,
                )
            )
        return Success(tuple(out))

    def balance(self, user_id: str, shop_id: str) -> int:
        return self.balances.get(user_id, {}).get(shop_id, 0)

    def value_of(self, points: int) -> Money:
        return Money.of(Decimal(points) * self.point_value, self.currency)

    def deduct(self, user_id: str, shop_id: str, points: int) -> None:
        user = self.balances.setdefault(user_id, {})
        user[shop_id] = max(0, user.get(shop_id, 0) - points)
