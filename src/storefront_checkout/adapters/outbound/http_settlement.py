from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import httpx
from returns.result import Failure, Result, Success

from storefront_checkout.adapters.outbound.http_support import (
    address_to_wire,
    call_json,
    line_to_wire,
    money,
)
from storefront_checkout.core.domain.model.errors import CheckoutError, CollaboratorFailure
from storefront_checkout.core.domain.model.money import DEFAULT_CURRENCY
from storefront_checkout.core.ports.outbound.settlement import (
    CardSessionRequest,
    CardSessionStatus,
    PointsPaymentReceipt,
    PointsPaymentRequest,
    SettlementGateway,
)

PAID_STATUSES = frozenset({"paid", "complete", "completed", "succeeded", "success"})


@dataclass(frozen=True)
class HttpSettlementGateway(SettlementGateway):
    client: httpx.Client
    currency: str = DEFAULT_CURRENCY

    # ---- card ----------------------------------------------------------------

    def create_card_session(self, request: CardSessionRequest) -> Result[str, CheckoutError]:
        payload = {
            "items": [line_to_wire(item) for item in request.lines],
            "shippingAddress": address_to_wire(request.address),
            "currency": request.currency.lower(),
            "userId": request.buyer.user_id,
            "platform": request.platform,
        }
        _add_preferences(payload, request.preferences)
        return call_json(
            self.client, "POST", "/checkout/create-user-session", payload=payload
        ).bind(_session_url)

    def create_guest_card_session(self, request: CardSessionRequest) -> Result[str, CheckoutError]:
        guest = request.buyer.guest
        payload = {
            "guestName": guest.first_name if guest else "",
            "guestLastName": guest.last_name if guest else "",
            "guestEmail": guest.email if guest else "",
            "guestPhone": guest.phone if guest else "",
            "address": address_to_wire(request.address),
            "items": [line_to_wire(item) for item in request.lines],
            "platform": request.platform,
        }
        _add_preferences(payload, request.preferences)
        return call_json(
            self.client, "POST", "/checkout/guest/create-session", payload=payload
        ).bind(_session_url)

    def verify_card_session(self, session_id: str) -> Result[CardSessionStatus, CheckoutError]:
        return call_json(self.client, "GET", f"/checkout/verify/{session_id}").map(
            lambda body: _status_from_wire(session_id, body)
        )

    def cancel_card_session(self, session_id: str) -> Result[None, CheckoutError]:
        return call_json(
            self.client, "POST", "/checkout/webhook/cancel", params={"session_id": session_id}
        ).map(lambda _: None)

    # ---- points --------------------------------------------------------------

    def process_points_payment(
        self, request: PointsPaymentRequest
    ) -> Result[PointsPaymentReceipt, CheckoutError]:
        payload = {
            "userId": request.user_id,
            "items": [line_to_wire(item) for item in request.lines],
            "shippingAddress": address_to_wire(request.address),
            "useAllAvailablePoints": request.use_all_available_points,
            "pointsToUse": request.points_to_use,
        }
        _add_preferences(payload, request.preferences)
        return call_json(self.client, "POST", "/points-payment/process", payload=payload).map(
            lambda body: _receipt_from_wire(body, self.currency)
        )

    def complete_hybrid_payment(
        self, user_id: str, order_id: str, session_handle: str
    ) -> Result[PointsPaymentReceipt, CheckoutError]:
        return call_json(
            self.client,
            "POST",
            f"/points-payment/complete-hybrid/{user_id}/{order_id}",
            params={"stripeSessionId": session_handle},
        ).map(lambda body: _receipt_from_wire(body, self.currency))


def _add_preferences(payload: dict[str, Any], preferences) -> None:
    if preferences:
        payload["shopFulfillmentPreferences"] = [
            {"shopId": shop_id, "fulfillmentType": fulfillment.value}
            for shop_id, fulfillment in preferences
        ]


def _session_url(body: Mapping[str, Any] | None) -> Result[str, CheckoutError]:
    url = (body or {}).get("sessionUrl")
    if not url:
        return Failure(
            CollaboratorFailure(
                message="payment session was not created", code="INVALID_RESPONSE"
            )
        )
    return Success(str(url))


def _receipt_from_wire(body: Mapping[str, Any] | None, currency: str) -> PointsPaymentReceipt:
    body = body or {}
    order_id = body.get("orderId")
    remaining = body.get("remainingAmount")
    return PointsPaymentReceipt(
        success=bool(body.get("success")),
        message=str(body.get("message") or ""),
        order_id=str(order_id) if order_id is not None else None,
        order_number=body.get("orderNumber"),
        points_used=int(body.get("pointsUsed") or 0),
        points_value=money(body.get("pointsValue"), currency),
        remaining_amount=money(remaining, currency) if remaining is not None else None,
        session_handle=body.get("stripeSessionId"),
        hybrid_payment=bool(body.get("hybridPayment")),
    )


def _status_from_wire(session_id: str, body: Mapping[str, Any] | None) -> CardSessionStatus:
    data = (body or {}).get("data") or body or {}
    order = data.get("order") or {}
    order_id = order.get("id") or order.get("orderId")
    return CardSessionStatus(
        session_id=session_id,
        paid=str(data.get("status") or "").lower() in PAID_STATUSES,
        order_id=str(order_id) if order_id is not None else None,
        order_number=order.get("orderNumber"),
    )
