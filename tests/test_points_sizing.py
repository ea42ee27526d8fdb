from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from conftest import full_address, payment_summary, shop_summary
from storefront_checkout.core.domain.model.money import Money
from storefront_checkout.core.domain.model.points import ShopPointsEligibility
from storefront_checkout.core.domain.model.quote import PreferencesSnapshot, PriceQuote
from storefront_checkout.core.domain.service.points_sizing import plan_points_payment


def _quote(*shops):
    summary = payment_summary(*shops)
    return PriceQuote(
        shop_summaries=tuple(summary.shop_summaries),
        subtotal=summary.subtotal,
        discount=summary.discount,
        shipping=summary.shipping,
        tax=summary.tax,
        total=summary.total,
        reward_points=0,
        fetched_at=datetime.now(timezone.utc),
        snapshot=PreferencesSnapshot.capture(full_address(), ()),
    )


def _eligibility(shop_id, value, balance, can_pay=True):
    return ShopPointsEligibility(
        shop_id=shop_id,
        current_points_balance=balance,
        current_points_value=Money.of(value),
        max_points_payable_amount=Money.of(value),
        can_pay_with_points=can_pay,
    )


def test_points_worth_more_than_the_shop_total_cover_it_exactly():
    quote = _quote(shop_summary("shop-1", total="10.00"))

    plan = plan_points_payment(quote, [_eligibility("shop-1", "12.50", 1250)], Decimal("0.01"))

    (alloc,) = plan.allocations
    assert alloc.usable_value == Money.of("10.00")
    assert alloc.points_to_use == 1000
    assert alloc.remaining() == Money.of("0")
    assert plan.covers_order()


def test_points_worth_less_than_the_shop_total_leave_the_rest_for_the_card():
    quote = _quote(shop_summary("shop-1", total="10.00"))

    plan = plan_points_payment(quote, [_eligibility("shop-1", "4.00", 400)], Decimal("0.01"))

    (alloc,) = plan.allocations
    assert alloc.usable_value == Money.of("4.00")
    assert alloc.remaining() == Money.of("6.00")
    assert plan.remaining_to_pay == Money.of("6.00")
    assert not plan.covers_order()


def test_shops_are_sized_independently_and_summed():
    quote = _quote(
        shop_summary("shop-1", total="10.00"),
        shop_summary("shop-2", total="10.00"),
    )

    plan = plan_points_payment(
        quote,
        [_eligibility("shop-1", "12.50", 1250), _eligibility("shop-2", "4.00", 400)],
        Decimal("0.01"),
    )

    assert plan.total_points_value == Money.of("14.00")
    assert plan.total_points == 1400
    assert plan.remaining_to_pay == Money.of("6.00")


def test_ineligible_and_unknown_shops_contribute_nothing():
    quote = _quote(
        shop_summary("shop-1", total="10.00"),
        shop_summary("shop-2", total="8.00"),
    )

    plan = plan_points_payment(
        quote, [_eligibility("shop-1", "50.00", 5000, can_pay=False)], Decimal("0.01")
    )

    assert not plan.has_eligible_shop()
    assert plan.remaining_to_pay == Money.of("18.00")


def test_point_unit_falls_back_to_the_default_without_a_balance():
    quote = _quote(shop_summary("shop-1", total="3.00"))

    plan = plan_points_payment(quote, [_eligibility("shop-1", "5.00", 0)], Decimal("0.02"))

    assert plan.allocations[0].points_to_use == 150


def test_remainder_within_epsilon_counts_as_covered():
    quote = _quote(shop_summary("shop-1", total="10.01"))

    plan = plan_points_payment(quote, [_eligibility("shop-1", "10.00", 1000)], Decimal("0.01"))

    assert plan.remaining_to_pay == Money.of("0.01")
    assert plan.covers_order()
