from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from returns.result import Failure, Result, Success

from storefront_checkout.core.domain.model.checkout import CheckoutPhase, CheckoutState
from storefront_checkout.core.domain.model.errors import (
    AuthRequired,
    CheckoutError,
    HybridCompletionFailed,
    InsufficientPoints,
    NotReadyError,
    SettlementFailed,
    SubmissionInProgress,
    ValidationError,
)
from storefront_checkout.core.domain.model.money import DEFAULT_CURRENCY, Money
from storefront_checkout.core.domain.model.points import PointsPlan, ShopPointsEligibility
from storefront_checkout.core.domain.model.settlement import (
    CardRedirect,
    CardVerified,
    HybridCompleted,
    HybridRedirect,
    PointsSettled,
    SettlementMode,
    SettlementResult,
    session_id_of,
)
from storefront_checkout.core.domain.service.eligibility_client import PointsEligibilityClient
from storefront_checkout.core.domain.service.error_classifier import classify
from storefront_checkout.core.domain.service.points_sizing import (
    DEFAULT_EPSILON,
    plan_points_payment,
)
from storefront_checkout.core.domain.service.readiness_engine import CheckoutReadinessEngine
from storefront_checkout.core.ports.outbound.settlement import (
    CardSessionRequest,
    PointsPaymentReceipt,
    PointsPaymentRequest,
    SettlementGateway,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementDispatcher:
    """Picks card, points or hybrid settlement for a READY checkout and runs it.

    CARD and hybrid settlements leave the checkout SUBMITTING until the card
    leg is confirmed (`confirm_card_payment` / `complete_hybrid_payment`).
    """

    settlement: SettlementGateway
    eligibility: PointsEligibilityClient
    point_unit_value: Decimal = Decimal("0.01")
    epsilon: Decimal = DEFAULT_EPSILON
    platform: str = "web"

    def submit(
        self, engine: CheckoutReadinessEngine, mode: SettlementMode
    ) -> Result[SettlementResult, CheckoutError]:
        if mode == SettlementMode.CARD:
            return self._pay_by_card(engine)
        return self._pay_with_points(engine, mode)

    # ---- card ----------------------------------------------------------------

    def _pay_by_card(self, engine: CheckoutReadinessEngine) -> Result[SettlementResult, CheckoutError]:
        buyer = engine.state.buyer
        if not buyer.is_authenticated() and buyer.guest is None:
            return Failure(ValidationError(message="guest checkout needs contact details"))

        began = engine.begin_submission()
        if isinstance(began, Failure):
            return began
        state = began.unwrap()

        request = CardSessionRequest(
            buyer=state.buyer,
            address=state.address,
            lines=_lines(state),
            currency=state.quote.currency if state.quote else DEFAULT_CURRENCY,
            preferences=tuple(sorted(_preferences(state))),
            platform=self.platform,
        )
        if buyer.is_authenticated():
            created = self.settlement.create_card_session(request)
        else:
            created = self.settlement.create_guest_card_session(request)

        if isinstance(created, Failure):
            return self._fail(engine, created.failure(), leg="card")

        redirect = CardRedirect(session_handle=created.unwrap())
        logger.info("card session created checkout=%s", state.checkout_id.value)
        engine.record_redirect(redirect)
        return Success(redirect)

    def confirm_card_payment(
        self, engine: CheckoutReadinessEngine, session_id: str
    ) -> Result[SettlementResult, CheckoutError]:
        """Out-of-band confirmation that the shopper paid the card session."""
        state = engine.state
        if state.phase != CheckoutPhase.SUBMITTING or not isinstance(state.settlement, CardRedirect):
            return Failure(
                NotReadyError(message="no card payment is awaiting confirmation", phase=state.phase.value)
            )
        if not state.settlement.belongs_to(session_id):
            return Failure(_foreign_session(session_id))

        verified = self.settlement.verify_card_session(session_id)
        if isinstance(verified, Failure):
            # nothing is known about the card leg yet; leave it open for another try
            logger.warning("card session %s could not be verified: %s", session_id, verified.failure())
            return verified

        status = verified.unwrap()
        if not status.paid:
            return self._fail(
                engine,
                SettlementFailed(message="Card payment was not completed.", leg="card"),
                leg="card",
            )
        result = CardVerified(
            session_id=status.session_id,
            order_id=status.order_id,
            order_number=status.order_number,
        )
        engine.mark_settled(result)
        return Success(result)

    def cancel_card_payment(
        self, engine: CheckoutReadinessEngine, session_id: str
    ) -> Result[CheckoutState, CheckoutError]:
        state = engine.state
        if state.phase != CheckoutPhase.SUBMITTING:
            return Failure(
                NotReadyError(message="no card payment is in progress", phase=state.phase.value)
            )
        pending = state.settlement
        if not isinstance(pending, (CardRedirect, HybridRedirect)) or not session_id or (
            session_id != session_id_of(pending.session_handle)
        ):
            return Failure(_foreign_session(session_id))
        cancelled = self.settlement.cancel_card_session(session_id)
        if isinstance(cancelled, Failure):
            return cancelled
        return engine.mark_failed(
            SettlementFailed(message="Payment cancelled.", leg="card"), leg="card"
        )

    # ---- points / hybrid -----------------------------------------------------

    def _pay_with_points(
        self, engine: CheckoutReadinessEngine, mode: SettlementMode
    ) -> Result[SettlementResult, CheckoutError]:
        state = engine.state
        user_id = state.buyer.user_id
        if not user_id:
            return Failure(AuthRequired(message="Please log in to use points payment."))
        ready = _ready(state)
        if ready is not None:
            return Failure(ready)

        # balances are read fresh for every attempt and never cached
        checked = self.eligibility.check(user_id, state.groups)
        if isinstance(checked, Failure):
            return Failure(classify(checked.failure()))
        eligibilities = checked.unwrap()

        sized = self._size(state, eligibilities, mode)
        if isinstance(sized, Failure):
            return sized

        began = engine.begin_submission()
        if isinstance(began, Failure):
            return began
        state = began.unwrap()
        plan = self._plan(state, eligibilities)

        logger.info(
            "points settlement checkout=%s points=%s value=%s remaining=%s",
            state.checkout_id.value,
            plan.total_points,
            plan.total_points_value.amount,
            plan.remaining_to_pay.amount,
        )
        processed = self.settlement.process_points_payment(
            PointsPaymentRequest(
                user_id=user_id,
                address=state.address,
                lines=_lines(state),
                points_to_use=plan.total_points,
                preferences=tuple(sorted(_preferences(state))),
                use_all_available_points=True,
            )
        )
        if isinstance(processed, Failure):
            return self._fail(engine, processed.failure(), leg="points")

        receipt = processed.unwrap()
        if not receipt.success:
            return self._fail(
                engine,
                InsufficientPoints(message=receipt.message or "Points payment was declined."),
                leg="points",
            )
        return self._settle_receipt(engine, receipt, plan)

    def _size(
        self,
        state: CheckoutState,
        eligibilities: Sequence[ShopPointsEligibility],
        mode: SettlementMode,
    ) -> Result[PointsPlan, CheckoutError]:
        plan = self._plan(state, eligibilities)
        if not plan.has_eligible_shop():
            return Failure(
                InsufficientPoints(message="None of the shops in your cart accept your points.")
            )
        if mode == SettlementMode.POINTS and not plan.covers_order():
            return Failure(
                InsufficientPoints(
                    message=f"Your points cover {plan.total_points_value.amount} of "
                    f"{plan.order_total.amount}; choose points and card to pay the rest."
                )
            )
        return Success(plan)

    def _plan(
        self, state: CheckoutState, eligibilities: Sequence[ShopPointsEligibility]
    ) -> PointsPlan:
        return plan_points_payment(
            state.quote, eligibilities, point_unit_value=self.point_unit_value, epsilon=self.epsilon
        )

    def _settle_receipt(
        self, engine: CheckoutReadinessEngine, receipt: PointsPaymentReceipt, plan: PointsPlan
    ) -> Result[SettlementResult, CheckoutError]:
        if receipt.hybrid_payment and plan.covers_order():
            # points cover the order, so only a full-points settlement is accepted
            return self._fail(
                engine,
                SettlementFailed(
                    message="Points cover this order but the payment was split with a card.",
                    leg="points",
                ),
                leg="points",
            )
        if receipt.hybrid_payment:
            if not receipt.order_id or not receipt.session_handle:
                return self._fail(
                    engine,
                    SettlementFailed(
                        message="Points were applied but no card session was returned.",
                        leg="points",
                    ),
                    leg="points",
                )
            redirect = HybridRedirect(
                order_id=receipt.order_id,
                session_handle=receipt.session_handle,
                points_used=receipt.points_used,
                points_value=receipt.points_value,
                remaining_to_pay=receipt.remaining_amount or plan.remaining_to_pay,
            )
            engine.record_redirect(redirect)
            return Success(redirect)

        settled = PointsSettled(
            order_id=receipt.order_id or "",
            order_number=receipt.order_number,
            points_used=receipt.points_used,
            points_value=receipt.points_value,
        )
        engine.mark_settled(settled)
        return Success(settled)

    def complete_hybrid_payment(
        self, engine: CheckoutReadinessEngine, session_handle: str | None = None
    ) -> Result[SettlementResult, CheckoutError]:
        """Finalize a hybrid order once its card leg has been paid."""
        state = engine.state
        pending = state.settlement
        if state.phase != CheckoutPhase.SUBMITTING or not isinstance(pending, HybridRedirect):
            return Failure(
                NotReadyError(message="no hybrid payment is awaiting completion", phase=state.phase.value)
            )
        user_id = state.buyer.user_id
        if not user_id:
            return Failure(AuthRequired(message="Please log in to complete payment."))

        handle = session_handle or pending.session_handle
        completed = self.settlement.complete_hybrid_payment(user_id, pending.order_id, handle)
        if isinstance(completed, Failure) or not completed.unwrap().success:
            cause = (
                completed.failure()
                if isinstance(completed, Failure)
                else SettlementFailed(message=completed.unwrap().message, leg="hybrid_completion")
            )
            # card leg already charged: this is not the same as a declined payment
            logger.error(
                "hybrid completion failed after card payment order=%s: %s", pending.order_id, cause
            )
            return self._fail(
                engine,
                HybridCompletionFailed(
                    message="Your card was charged but the order could not be finalized. "
                    "Please contact support with your order number.",
                    leg="hybrid_completion",
                    cause=cause,
                    order_id=pending.order_id,
                    session_handle=handle,
                ),
                leg="hybrid_completion",
            )

        receipt = completed.unwrap()
        result = HybridCompleted(
            order_id=receipt.order_id or pending.order_id,
            order_number=receipt.order_number,
            points_used=receipt.points_used or pending.points_used,
            points_value=_or_money(receipt.points_value, pending.points_value),
        )
        engine.mark_settled(result)
        return Success(result)

    # ---- helpers -------------------------------------------------------------

    def _fail(
        self, engine: CheckoutReadinessEngine, error: CheckoutError, leg: str
    ) -> Result[SettlementResult, CheckoutError]:
        logger.warning("settlement failed leg=%s: %s", leg, error)
        marked = engine.mark_failed(error, leg=leg)
        if isinstance(marked, Failure):
            return marked
        failure = marked.unwrap().error
        return Failure(failure if failure is not None else error)


def _ready(state: CheckoutState) -> CheckoutError | None:
    if state.phase == CheckoutPhase.SUBMITTING:
        return SubmissionInProgress(message="a payment is already being processed")
    if state.phase != CheckoutPhase.READY or state.fresh_quote() is None:
        return NotReadyError(
            message=state.blocking_reason or "checkout is not ready", phase=state.phase.value
        )
    return None


def _foreign_session(session_id: str) -> ValidationError:
    return ValidationError(message=f"payment session {session_id!r} does not belong to this checkout")


def _lines(state: CheckoutState):
    return tuple(item for g in state.groups for item in g.items)


def _preferences(state: CheckoutState):
    return [
        (g.shop_id, g.fulfillment_preference)
        for g in state.groups
        if g.fulfillment_preference is not None
    ]


def _or_money(value: Money | None, fallback: Money) -> Money:
    if value is None or value.amount == 0:
        return fallback
    return value
