from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict
from uuid import uuid4

from returns.result import Failure, Result, Success

from storefront_checkout.adapters.outbound.dummy_pricing import DummyPricingGateway
from storefront_checkout.adapters.outbound.in_memory_points import InMemoryPointsLedger
from storefront_checkout.core.domain.model.errors import CheckoutError, CollaboratorFailure
from storefront_checkout.core.domain.model.money import Money, fold_money
from storefront_checkout.core.ports.outbound.settlement import (
    CardSessionRequest,
    CardSessionStatus,
    PointsPaymentReceipt,
    PointsPaymentRequest,
    SettlementGateway,
)

EPSILON = Decimal("0.01")


@dataclass
class _HybridOrder:
    user_id: str
    session_id: str
    points_used: int
    points_value: Money


@dataclass
class DummySettlementGateway(SettlementGateway):
    """Mock payment provider. Session handles are local paths, as in the mock checkout."""

    pricing: DummyPricingGateway = field(default_factory=DummyPricingGateway)
    ledger: InMemoryPointsLedger = field(default_factory=InMemoryPointsLedger)
    decline_users: set[str] = field(default_factory=set)
    unpaid_sessions: set[str] = field(default_factory=set)
    fail_hybrid_completion: bool = False
    card_sessions: Dict[str, str] = field(default_factory=dict)
    hybrid_orders: Dict[str, _HybridOrder] = field(default_factory=dict)
    calls: int = 0

    # ---- card ----------------------------------------------------------------

    def create_card_session(self, request: CardSessionRequest) -> Result[str, CheckoutError]:
        return self._open_session(request.buyer.user_id)

    def create_guest_card_session(self, request: CardSessionRequest) -> Result[str, CheckoutError]:
        guest_email = request.buyer.guest.email if request.buyer.guest else None
        return self._open_session(guest_email)

    def verify_card_session(self, session_id: str) -> Result[CardSessionStatus, CheckoutError]:
        if session_id not in self.card_sessions:
            return Failure(
                CollaboratorFailure(message="checkout session not found", status=404)
            )
        paid = session_id not in self.unpaid_sessions and self.card_sessions[session_id] != "cancelled"
        if paid:
            self.card_sessions[session_id] = "paid"
        return Success(
            CardSessionStatus(
                session_id=session_id,
                paid=paid,
                order_id=f"ord-{session_id[-8:]}" if paid else None,
                order_number=f"ORD-{session_id[-6:].upper()}" if paid else None,
            )
        )

    def cancel_card_session(self, session_id: str) -> Result[None, CheckoutError]:
        if session_id not in self.card_sessions:
            return Failure(
                CollaboratorFailure(message="checkout session not found", status=404)
            )
        self.card_sessions[session_id] = "cancelled"
        return Success(None)

    def _open_session(self, owner: str | None) -> Result[str, CheckoutError]:
        self.calls += 1
        if owner in self.decline_users:
            return Failure(
                CollaboratorFailure(
                    message="Payment could not be started for this account.",
                    code="PAYMENT_DECLINED",
                    status=402,
                )
            )
        session_id = f"cs_mock_{uuid4().hex}"
        self.card_sessions[session_id] = "open"
        return Success(f"/payment-success?session_id={session_id}")

    # ---- points --------------------------------------------------------------

    def process_points_payment(
        self, request: PointsPaymentRequest
    ) -> Result[PointsPaymentReceipt, CheckoutError]:
        self.calls += 1
        summary = self.pricing.price(request.lines, dict(request.preferences))
        currency = summary.currency

        used_points = 0
        used_values = []
        for shop in summary.shop_summaries:
            balance = self.ledger.balance(request.user_id, shop.shop_id)
            if balance <= 0 or shop.shop_id in self.ledger.non_rewarding_shops:
                continue
            usable = self.ledger.value_of(balance).min(shop.total_amount)
            points = min(balance, math.ceil(usable.amount / self.ledger.point_value))
            self.ledger.deduct(request.user_id, shop.shop_id, points)
            used_points += points
            used_values.append(usable)

        points_value = fold_money(used_values, currency)
        if used_points == 0:
            return Failure(
                CollaboratorFailure(message="Insufficient points.", status=402)
            )

        remaining = (summary.total - points_value).clamp_zero()
        order_id = uuid4().hex[:12]
        if remaining.amount <= EPSILON:
            return Success(
                PointsPaymentReceipt(
                    success=True,
                    message="Order paid with points.",
                    order_id=order_id,
                    order_number=f"ORD-{order_id[:6].upper()}",
                    points_used=used_points,
                    points_value=points_value,
                    remaining_amount=Money.zero(currency),
                    hybrid_payment=False,
                )
            )

        session_id = f"cs_mock_{uuid4().hex}"
        self.card_sessions[session_id] = "open"
        self.hybrid_orders[order_id] = _HybridOrder(
            user_id=request.user_id,
            session_id=session_id,
            points_used=used_points,
            points_value=points_value,
        )
        return Success(
            PointsPaymentReceipt(
                success=True,
                message="Points applied; pay the remainder by card.",
                order_id=order_id,
                points_used=used_points,
                points_value=points_value,
                remaining_amount=remaining,
                session_handle=f"/payment-success?session_id={session_id}&order_id={order_id}",
                hybrid_payment=True,
            )
        )

    def complete_hybrid_payment(
        self, user_id: str, order_id: str, session_handle: str
    ) -> Result[PointsPaymentReceipt, CheckoutError]:
        self.calls += 1
        order = self.hybrid_orders.get(order_id)
        if order is None or order.user_id != user_id or order.session_id not in session_handle:
            return Failure(
                CollaboratorFailure(message="Order not found or already completed.", status=404)
            )
        if self.fail_hybrid_completion:
            return Failure(
                CollaboratorFailure(
                    message="order finalization failed", code="INTERNAL_ERROR", status=500
                )
            )
        del self.hybrid_orders[order_id]
        self.card_sessions[order.session_id] = "paid"
        return Success(
            PointsPaymentReceipt(
                success=True,
                message="Hybrid payment completed.",
                order_id=order_id,
                order_number=f"ORD-{order_id[:6].upper()}",
                points_used=order.points_used,
                points_value=order.points_value,
                hybrid_payment=True,
            )
        )
