from __future__ import annotations

from decimal import Decimal
from typing import Mapping, Sequence, Tuple

from returns.result import Failure, Result, Success

from storefront_checkout.core.domain.model.cart import (
    CartLineItem,
    FulfillmentType,
    ShopCapability,
    ShopGroup,
)
from storefront_checkout.core.domain.model.errors import CheckoutError, InvalidCartError


def validate_line(index: int, item: CartLineItem) -> Result[CartLineItem, CheckoutError]:
    if not (item.product_id or "").strip() and item.variant_id is None:
        return Failure(InvalidCartError("must have either product_id or variant_id", index=index))
    if item.variant_id is not None and item.variant_id <= 0:
        return Failure(InvalidCartError("variant_id must be a positive number", index=index))
    if not (item.shop_id or "").strip():
        return Failure(InvalidCartError("shop_id is required", index=index))
    if item.quantity <= 0:
        return Failure(InvalidCartError("quantity must be > 0", index=index))
    if Decimal(str(item.unit_price)) < 0:
        return Failure(InvalidCartError("unit_price must be >= 0", index=index))
    if Decimal(str(item.weight)) < 0:
        return Failure(InvalidCartError("weight must be >= 0", index=index))
    return Success(item)


def validate_cart(items: Sequence[CartLineItem]) -> Result[Sequence[CartLineItem], CheckoutError]:
    if not items:
        return Failure(InvalidCartError("cart is empty"))
    for i, item in enumerate(items):
        checked = validate_line(i, item)
        if isinstance(checked, Failure):
            return checked
    return Success(items)


def group_cart(
    items: Sequence[CartLineItem],
    preferences: Mapping[str, FulfillmentType] | None = None,
) -> Result[Tuple[ShopGroup, ...], CheckoutError]:
    """Partition cart lines by shop, in order of first appearance."""
    return validate_cart(items).map(lambda valid: _partition(valid, preferences or {}))


def _partition(
    items: Sequence[CartLineItem], preferences: Mapping[str, FulfillmentType]
) -> Tuple[ShopGroup, ...]:
    order: list[str] = []
    lines_by_shop: dict[str, list[CartLineItem]] = {}
    for item in items:
        shop_id = (item.shop_id or "").strip()
        if shop_id not in lines_by_shop:
            order.append(shop_id)
            lines_by_shop[shop_id] = []
        lines_by_shop[shop_id].append(item)

    groups = []
    for shop_id in order:
        lines = lines_by_shop[shop_id]
        first = lines[0]
        preference = None
        if first.capability == ShopCapability.HYBRID:
            preference = preferences.get(shop_id)
        groups.append(
            ShopGroup(
                shop_id=shop_id,
                shop_name=first.shop_name or shop_id,
                capability=first.capability,
                items=tuple(lines),
                fulfillment_preference=preference,
            )
        )
    return tuple(groups)


def display_only_shops(groups: Sequence[ShopGroup]) -> Tuple[str, ...]:
    return tuple(
        g.shop_id for g in groups if g.capability == ShopCapability.VISUALIZATION_ONLY
    )
