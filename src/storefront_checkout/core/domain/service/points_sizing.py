from __future__ import annotations

import math
from decimal import Decimal
from typing import Sequence

from storefront_checkout.core.domain.model.money import Money, fold_money
from storefront_checkout.core.domain.model.points import (
    PointsPlan,
    ShopPointsAllocation,
    ShopPointsEligibility,
)
from storefront_checkout.core.domain.model.quote import PriceQuote

DEFAULT_EPSILON = Decimal("0.01")


def plan_points_payment(
    quote: PriceQuote,
    eligibilities: Sequence[ShopPointsEligibility],
    point_unit_value: Decimal,
    epsilon: Decimal = DEFAULT_EPSILON,
) -> PointsPlan:
    """Size the points leg shop by shop.

    usable = min(points value held, shop total); points = ceil(usable / unit);
    whatever the points do not cover is left for the card.
    """
    by_shop = {e.shop_id: e for e in eligibilities}
    currency = quote.currency
    allocations = []
    for summary in quote.shop_summaries:
        eligibility = by_shop.get(summary.shop_id)
        allocations.append(
            _allocate(summary.shop_id, summary.total_amount, eligibility, point_unit_value, currency)
        )

    total_value = fold_money((a.usable_value for a in allocations), currency=currency)
    return PointsPlan(
        allocations=tuple(allocations),
        order_total=quote.total,
        total_points_value=total_value,
        total_points=sum(a.points_to_use for a in allocations),
        remaining_to_pay=(quote.total - total_value).clamp_zero(),
        epsilon=epsilon,
    )


def _allocate(
    shop_id: str,
    shop_total: Money,
    eligibility: ShopPointsEligibility | None,
    default_unit: Decimal,
    currency: str,
) -> ShopPointsAllocation:
    if eligibility is None or not eligibility.can_pay_with_points:
        return ShopPointsAllocation(
            shop_id=shop_id,
            shop_total=shop_total,
            usable_value=Money.zero(currency),
            points_to_use=0,
        )

    held = Money.of(eligibility.current_points_value.amount, currency)
    usable = held.min(shop_total).clamp_zero()
    unit = eligibility.point_unit_value(default_unit)
    points = math.ceil(usable.amount / unit) if unit > 0 else 0
    if eligibility.current_points_balance > 0:
        points = min(points, eligibility.current_points_balance)
    return ShopPointsAllocation(
        shop_id=shop_id,
        shop_total=shop_total,
        usable_value=usable,
        points_to_use=points,
    )
