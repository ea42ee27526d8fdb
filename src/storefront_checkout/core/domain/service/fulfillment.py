from __future__ import annotations

from typing import Sequence, Tuple

from storefront_checkout.core.domain.model.cart import ShopCapability, ShopGroup
from storefront_checkout.core.domain.model.quote import PriceQuote


def resolve_required_shops(
    groups: Sequence[ShopGroup], quote: PriceQuote | None = None
) -> Tuple[str, ...]:
    """HYBRID shops that still need an explicit pickup/delivery choice.

    A recorded preference removes the shop right away, before any quote has
    confirmed it; `rejected_preferences` catches the server disagreeing.
    """
    required = []
    for group in groups:
        if group.capability != ShopCapability.HYBRID:
            continue
        if group.fulfillment_preference is not None:
            continue
        if _summary_needs_choice(group.shop_id, quote):
            required.append(group.shop_id)
    return tuple(required)


def rejected_preferences(groups: Sequence[ShopGroup], quote: PriceQuote) -> Tuple[str, ...]:
    """Shops whose preference was sent but the server still asks for a choice."""
    sent = quote.snapshot.preference_map()
    rejected = []
    for group in groups:
        if group.capability != ShopCapability.HYBRID or group.shop_id not in sent:
            continue
        summary = quote.summary_for(group.shop_id)
        if summary is not None and summary.requires_fulfillment_choice:
            rejected.append(group.shop_id)
    return tuple(rejected)


def _summary_needs_choice(shop_id: str, quote: PriceQuote | None) -> bool:
    if quote is None:
        return True
    summary = quote.summary_for(shop_id)
    if summary is None:
        return True
    return summary.requires_fulfillment_choice or summary.fulfillment_type is None
