from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Tuple

from storefront_checkout.core.domain.model.money import Money


@dataclass(frozen=True)
class ShopPointsEligibility:
    shop_id: str
    current_points_balance: int
    current_points_value: Money
    max_points_payable_amount: Money
    can_pay_with_points: bool
    shop_name: str = ""
    rewarding_enabled: bool = True
    potential_earned_points: int = 0
    total_amount: Money | None = None
    message: str = ""

    def point_unit_value(self, default: Decimal) -> Decimal:
        """Cash value of a single point at this shop."""
        if self.current_points_balance > 0 and self.current_points_value.amount > 0:
            return self.current_points_value.amount / Decimal(self.current_points_balance)
        return default


@dataclass(frozen=True)
class ShopPointsAllocation:
    shop_id: str
    shop_total: Money
    usable_value: Money
    points_to_use: int

    def remaining(self) -> Money:
        return (self.shop_total - self.usable_value).clamp_zero()


@dataclass(frozen=True)
class PointsPlan:
    allocations: Tuple[ShopPointsAllocation, ...]
    order_total: Money
    total_points_value: Money
    total_points: int
    remaining_to_pay: Money
    epsilon: Decimal

    def covers_order(self) -> bool:
        return self.remaining_to_pay.amount <= self.epsilon

    def has_eligible_shop(self) -> bool:
        return any(a.points_to_use > 0 for a in self.allocations)
