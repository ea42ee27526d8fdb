from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import httpx
from returns.result import Result

from storefront_checkout.adapters.outbound.http_support import call_json, line_to_wire, money
from storefront_checkout.core.domain.model.cart import CartLineItem
from storefront_checkout.core.domain.model.errors import CheckoutError
from storefront_checkout.core.domain.model.money import DEFAULT_CURRENCY
from storefront_checkout.core.domain.model.points import ShopPointsEligibility
from storefront_checkout.core.ports.outbound.eligibility import EligibilityGateway


@dataclass(frozen=True)
class HttpEligibilityGateway(EligibilityGateway):
    client: httpx.Client
    currency: str = DEFAULT_CURRENCY
    path: str = "/points-payment/eligibility"

    def check_eligibility(
        self, user_id: str, lines: Sequence[CartLineItem]
    ) -> Result[Sequence[ShopPointsEligibility], CheckoutError]:
        payload = {
            "userId": user_id,
            "items": [line_to_wire(item, with_price=False) for item in lines],
        }
        return call_json(self.client, "POST", self.path, payload=payload).map(
            lambda body: tuple(
                _eligibility_from_wire(e, self.currency)
                for e in (body or {}).get("shopEligibilities") or ()
            )
        )


def _eligibility_from_wire(raw: Mapping[str, Any], currency: str) -> ShopPointsEligibility:
    total = raw.get("totalAmount")
    return ShopPointsEligibility(
        shop_id=str(raw.get("shopId") or ""),
        shop_name=str(raw.get("shopName") or ""),
        current_points_balance=int(raw.get("currentPointsBalance") or 0),
        current_points_value=money(raw.get("currentPointsValue"), currency),
        max_points_payable_amount=money(raw.get("maxPointsPayableAmount"), currency),
        can_pay_with_points=bool(raw.get("canPayWithPoints")),
        rewarding_enabled=bool(raw.get("isRewardingEnabled", True)),
        potential_earned_points=int(raw.get("potentialEarnedPoints") or 0),
        total_amount=money(total, currency) if total is not None else None,
        message=str(raw.get("message") or ""),
    )
