from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import httpx
from returns.result import Result

from storefront_checkout.adapters.outbound.http_support import (
    address_to_wire,
    call_json,
    enum_or_none,
    line_to_wire,
    money,
)
from storefront_checkout.core.domain.model.cart import FulfillmentType, ShopCapability
from storefront_checkout.core.domain.model.errors import CheckoutError
from storefront_checkout.core.domain.model.money import DEFAULT_CURRENCY
from storefront_checkout.core.domain.model.quote import ShopPriceSummary
from storefront_checkout.core.ports.outbound.pricing import (
    PaymentSummary,
    PricingGateway,
    QuoteRequest,
)


@dataclass(frozen=True)
class HttpPricingGateway(PricingGateway):
    client: httpx.Client
    path: str = "/checkout/payment-summary"

    def payment_summary(self, request: QuoteRequest) -> Result[PaymentSummary, CheckoutError]:
        payload: dict[str, Any] = {
            "deliveryAddress": address_to_wire(request.address),
            "items": [line_to_wire(item, with_price=False) for item in request.lines],
            "orderValue": float(request.order_value.amount),
        }
        if request.user_id:
            payload["userId"] = request.user_id
        if request.preferences:
            payload["shopFulfillmentPreferences"] = [
                {"shopId": shop_id, "fulfillmentType": fulfillment.value}
                for shop_id, fulfillment in request.preferences
            ]
        return call_json(self.client, "POST", self.path, payload=payload).map(_summary_from_wire)


def _summary_from_wire(body: Mapping[str, Any] | None) -> PaymentSummary:
    body = body or {}
    currency = str(body.get("currency") or DEFAULT_CURRENCY).upper()
    shops = tuple(_shop_from_wire(s, currency) for s in body.get("shopSummaries") or ())
    return PaymentSummary(
        shop_summaries=shops,
        subtotal=money(body.get("subtotal"), currency),
        discount=money(body.get("discountAmount"), currency),
        shipping=money(body.get("shippingCost"), currency),
        tax=money(body.get("taxAmount"), currency),
        total=money(body.get("totalAmount"), currency),
        reward_points=int(body.get("rewardPoints") or 0),
        currency=currency,
    )


def _shop_from_wire(raw: Mapping[str, Any], currency: str) -> ShopPriceSummary:
    capability = raw.get("shopCapability")
    fulfillment = raw.get("fulfillmentType")
    packaging = raw.get("packagingFee")
    return ShopPriceSummary(
        shop_id=str(raw.get("shopId") or ""),
        shop_name=str(raw.get("shopName") or ""),
        subtotal=money(raw.get("subtotal"), currency),
        discount_amount=money(raw.get("discountAmount"), currency),
        shipping_cost=money(raw.get("shippingCost"), currency),
        tax_amount=money(raw.get("taxAmount"), currency),
        total_amount=money(raw.get("totalAmount"), currency),
        reward_points=int(raw.get("rewardPoints") or 0),
        reward_points_value=money(raw.get("rewardPointsValue"), currency),
        packaging_fee=money(packaging, currency) if packaging is not None else None,
        capability=enum_or_none(ShopCapability, capability),
        fulfillment_type=enum_or_none(FulfillmentType, fulfillment),
        requires_fulfillment_choice=bool(raw.get("requiresFulfillmentChoice")),
        product_count=int(raw.get("productCount") or 0),
        distance_km=raw.get("distanceKm"),
        warehouse_name=raw.get("selectedWarehouseName"),
        is_international_shipping=bool(raw.get("isInternationalShipping")),
    )
