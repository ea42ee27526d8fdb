from __future__ import annotations

from decimal import Decimal

from returns.result import Failure, Success

from conftest import line
from storefront_checkout.core.domain.model.cart import CartLineItem, FulfillmentType, ShopCapability
from storefront_checkout.core.domain.model.errors import InvalidCartError
from storefront_checkout.core.domain.service.grouping import display_only_shops, group_cart


def test_groups_by_shop_in_order_of_first_appearance():
    items = [
        line("shop-b", "p-1"),
        line("shop-a", "p-2"),
        line("shop-b", "p-3", quantity=2),
    ]

    groups = group_cart(items).unwrap()

    assert [g.shop_id for g in groups] == ["shop-b", "shop-a"]
    assert [it.product_id for it in groups[0].items] == ["p-1", "p-3"]
    assert groups[0].subtotal().amount == Decimal("30.00")


def test_preference_is_kept_only_for_hybrid_shops():
    items = [
        line("shop-h", capability=ShopCapability.HYBRID),
        line("shop-f", "p-2"),
    ]

    groups = group_cart(
        items, {"shop-h": FulfillmentType.PICKUP, "shop-f": FulfillmentType.PICKUP}
    ).unwrap()

    assert groups[0].fulfillment_preference == FulfillmentType.PICKUP
    assert groups[1].fulfillment_preference is None
    assert groups[1].effective_fulfillment() == FulfillmentType.DELIVERY


def test_empty_cart_is_rejected():
    result = group_cart([])

    assert isinstance(result, Failure)
    assert isinstance(result.failure(), InvalidCartError)


def test_line_without_shop_is_rejected_with_its_index():
    items = [line(), CartLineItem(product_id="p-9", shop_id=" ", quantity=1, unit_price=Decimal("1"))]

    result = group_cart(items)

    assert isinstance(result, Failure)
    assert result.failure().index == 1


def test_line_needs_product_or_variant():
    bad = CartLineItem(product_id=None, shop_id="shop-1", quantity=1, unit_price=Decimal("1"))
    by_variant = CartLineItem(
        product_id=None, variant_id=7, shop_id="shop-1", quantity=1, unit_price=Decimal("1")
    )

    assert isinstance(group_cart([bad]), Failure)
    assert isinstance(group_cart([by_variant]), Success)


def test_display_only_shops_are_reported():
    groups = group_cart(
        [line("shop-1"), line("shop-v", "p-2", capability=ShopCapability.VISUALIZATION_ONLY)]
    ).unwrap()

    assert display_only_shops(groups) == ("shop-v",)
