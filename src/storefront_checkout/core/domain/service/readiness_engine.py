from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Mapping, Sequence, Tuple

from returns.result import Failure, Result, Success

from storefront_checkout.core.domain.model.address import DeliveryAddress
from storefront_checkout.core.domain.model.cart import (
    CartLineItem,
    FulfillmentType,
    ShopCapability,
    ShopGroup,
    preferences_of,
)
from storefront_checkout.core.domain.model.checkout import (
    Buyer,
    CheckoutId,
    CheckoutPhase,
    CheckoutPhaseChanged,
    CheckoutState,
)
from storefront_checkout.core.domain.model.errors import (
    AddressIncompleteError,
    AddressRejected,
    CapabilityConflict,
    CheckoutError,
    FulfillmentChoiceRequired,
    HybridCompletionFailed,
    NotReadyError,
    SettlementFailed,
    StaleQuoteDropped,
    SubmissionInProgress,
    ValidationError,
)
from storefront_checkout.core.domain.model.money import now_utc
from storefront_checkout.core.domain.model.quote import PreferencesSnapshot, PriceQuote
from storefront_checkout.core.domain.model.settlement import SettlementResult, is_final
from storefront_checkout.core.domain.service.error_classifier import classify
from storefront_checkout.core.domain.service.fulfillment import (
    rejected_preferences,
    resolve_required_shops,
)
from storefront_checkout.core.domain.service.grouping import display_only_shops, group_cart
from storefront_checkout.core.domain.service.pricing_client import PricingClient
from storefront_checkout.core.ports.outbound.events import CheckoutEventPublisher

logger = logging.getLogger(__name__)

Listener = Callable[[CheckoutPhaseChanged], None]

_HELD = (CheckoutPhase.SUBMITTING, CheckoutPhase.SETTLED, CheckoutPhase.ABANDONED)


@dataclass(frozen=True)
class QuoteTicket:
    """Handle for one outstanding quote request and the inputs it was made with."""

    sequence: int
    snapshot: PreferencesSnapshot
    groups: Tuple[ShopGroup, ...]
    user_id: str | None = None


class CheckoutReadinessEngine:
    """Owns one shopper's CheckoutState and decides when it may be submitted.

    Phase precedence, highest first: display-only items in the cart, an
    incomplete address, outstanding pickup/delivery choices, then quote
    freshness. Quote requests are split into `begin_quote` and
    `receive_quote` so edits made while a request is out are never lost; a
    response whose inputs no longer match the state is dropped.
    """

    def __init__(
        self,
        state: CheckoutState,
        events: CheckoutEventPublisher | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._state = state
        self._events = events
        self._clock = clock
        self._lock = threading.RLock()
        self._listeners: list[Listener] = []
        self._sequence = 0
        self._in_flight: dict[int, QuoteTicket] = {}
        self._server_required: set[str] = set()

    @classmethod
    def start(
        cls,
        buyer: Buyer,
        items: Sequence[CartLineItem],
        address: DeliveryAddress | None = None,
        preferences: Mapping[str, FulfillmentType] | None = None,
        events: CheckoutEventPublisher | None = None,
        checkout_id: CheckoutId | None = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> Result["CheckoutReadinessEngine", CheckoutError]:
        grouped = group_cart(items, preferences)
        if isinstance(grouped, Failure):
            return grouped
        groups = grouped.unwrap()

        blocked = display_only_shops(groups)
        if blocked:
            return Failure(_capability_conflict(groups, blocked))

        engine = cls(
            CheckoutState(
                checkout_id=checkout_id or CheckoutId.new(),
                buyer=buyer,
                address=address or DeliveryAddress(),
                groups=groups,
                phase=CheckoutPhase.ADDRESS_INCOMPLETE,
            ),
            events=events,
            clock=clock,
        )
        engine._commit(engine._derive(engine._state), initial=True)
        return Success(engine)

    # ---- observation ---------------------------------------------------------

    @property
    def state(self) -> CheckoutState:
        return self._state

    @property
    def quote_in_flight(self) -> bool:
        with self._lock:
            return bool(self._in_flight)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register for phase changes; returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def evaluate(self) -> CheckoutState:
        with self._lock:
            return self._commit(self._derive(self._state))

    # ---- shopper edits -------------------------------------------------------

    def update_address(self, address: DeliveryAddress) -> Result[CheckoutState, CheckoutError]:
        with self._lock:
            blocked = self._ensure_mutable()
            if blocked is not None:
                return Failure(blocked)
            state = _reopened(self._state)
            if state.address == address and state is self._state:
                return Success(state)
            return Success(
                self._commit(
                    self._derive(replace(state, address=address, error=_sticky(state.error)))
                )
            )

    def set_fulfillment_preference(
        self, shop_id: str, fulfillment: FulfillmentType
    ) -> Result[CheckoutState, CheckoutError]:
        with self._lock:
            blocked = self._ensure_mutable()
            if blocked is not None:
                return Failure(blocked)
            state = _reopened(self._state)
            group = state.group(shop_id)
            if group is None:
                return Failure(ValidationError(message=f"shop {shop_id} is not in the cart"))
            if group.capability != ShopCapability.HYBRID:
                return Failure(
                    ValidationError(
                        message=f"{group.shop_name} does not offer a pickup/delivery choice"
                    )
                )

            self._server_required.discard(shop_id)
            groups = tuple(
                g.with_preference(fulfillment) if g.shop_id == shop_id else g
                for g in state.groups
            )
            return Success(
                self._commit(
                    self._derive(replace(state, groups=groups, error=_sticky(state.error)))
                )
            )

    def replace_cart(self, items: Sequence[CartLineItem]) -> Result[CheckoutState, CheckoutError]:
        """Swap in new cart contents, carrying over recorded preferences.

        An empty cart ends the checkout.
        """
        with self._lock:
            blocked = self._ensure_mutable()
            if blocked is not None:
                return Failure(blocked)
            if not items:
                return self.abandon()

            state = _reopened(self._state)
            grouped = group_cart(items, preferences_of(state.groups))
            if isinstance(grouped, Failure):
                return grouped
            groups = grouped.unwrap()

            self._server_required &= {g.shop_id for g in groups}
            return Success(self._commit(self._derive(replace(state, groups=groups, error=None))))

    # ---- quoting -------------------------------------------------------------

    def begin_quote(self) -> Result[QuoteTicket, CheckoutError]:
        with self._lock:
            state = self._state
            if _held(state) or state.phase == CheckoutPhase.FAILED:
                return Failure(
                    NotReadyError(message="a quote cannot be requested now", phase=state.phase.value)
                )
            missing = state.address.missing_fields()
            if missing:
                return Failure(
                    AddressIncompleteError(message="delivery address is incomplete", missing=missing)
                )
            if state.required_choices:
                return Failure(
                    FulfillmentChoiceRequired(
                        message=_choice_reason(state.groups, state.required_choices),
                        shop_ids=state.required_choices,
                    )
                )

            self._sequence += 1
            ticket = QuoteTicket(
                sequence=self._sequence,
                snapshot=PreferencesSnapshot.capture(state.address, state.groups),
                groups=state.groups,
                user_id=state.buyer.user_id,
            )
            self._in_flight[ticket.sequence] = ticket
            self._commit(self._derive(replace(state, error=None)))
            return Success(ticket)

    def receive_quote(
        self, ticket: QuoteTicket, result: Result[PriceQuote, CheckoutError]
    ) -> Result[CheckoutState, CheckoutError]:
        with self._lock:
            self._in_flight.pop(ticket.sequence, None)
            state = self._state
            if _held(state) or state.phase == CheckoutPhase.FAILED:
                return Failure(StaleQuoteDropped(message=f"checkout is {state.phase.value}"))

            current = PreferencesSnapshot.capture(state.address, state.groups)
            if ticket.snapshot != current:
                logger.debug("dropping quote #%s: inputs changed while in flight", ticket.sequence)
                self._commit(self._derive(state))
                return Failure(StaleQuoteDropped(message="checkout changed while pricing"))

            if isinstance(result, Failure):
                return self._apply_failure(state, result.failure())
            return self._apply_quote(state, result.unwrap())

    def refresh_quote(self, pricing: PricingClient) -> Result[CheckoutState, CheckoutError]:
        """Blocking round-trip: begin, call pricing outside the lock, receive."""
        began = self.begin_quote()
        if isinstance(began, Failure):
            return began
        ticket = began.unwrap()
        result = pricing.quote(ticket.snapshot.address, ticket.groups, user_id=ticket.user_id)
        return self.receive_quote(ticket, result)

    # ---- settlement ----------------------------------------------------------

    def begin_submission(self) -> Result[CheckoutState, CheckoutError]:
        with self._lock:
            state = self._state
            if state.phase == CheckoutPhase.SUBMITTING:
                return Failure(SubmissionInProgress(message="a payment is already being processed"))
            if state.phase != CheckoutPhase.READY or state.fresh_quote() is None:
                return Failure(
                    NotReadyError(
                        message=state.blocking_reason or "checkout is not ready",
                        phase=state.phase.value,
                    )
                )
            return Success(
                self._commit(
                    replace(
                        state,
                        phase=CheckoutPhase.SUBMITTING,
                        blocking_reason="Payment in progress",
                        error=None,
                    )
                )
            )

    def record_redirect(self, result: SettlementResult) -> Result[CheckoutState, CheckoutError]:
        """Remember a leg the shopper still has to finish elsewhere; stays SUBMITTING."""
        with self._lock:
            state = self._state
            if state.phase != CheckoutPhase.SUBMITTING:
                return Failure(
                    NotReadyError(message="no payment is in progress", phase=state.phase.value)
                )
            if is_final(result):
                return self.mark_settled(result)
            return Success(self._commit(replace(state, settlement=result)))

    def mark_settled(self, result: SettlementResult) -> Result[CheckoutState, CheckoutError]:
        with self._lock:
            state = self._state
            if state.phase != CheckoutPhase.SUBMITTING:
                return Failure(
                    NotReadyError(message="no payment is in progress", phase=state.phase.value)
                )
            if not is_final(result):
                return Failure(
                    NotReadyError(
                        message="payment still has an open leg", phase=state.phase.value
                    )
                )
            return Success(
                self._commit(
                    replace(
                        state, phase=CheckoutPhase.SETTLED, settlement=result, blocking_reason=None
                    )
                )
            )

    def mark_failed(
        self, error: CheckoutError, leg: str = "unknown"
    ) -> Result[CheckoutState, CheckoutError]:
        with self._lock:
            state = self._state
            if state.phase != CheckoutPhase.SUBMITTING:
                return Failure(
                    NotReadyError(message="no payment is in progress", phase=state.phase.value)
                )
            failure = (
                error
                if isinstance(error, SettlementFailed)
                else SettlementFailed(message=error.message, leg=leg, cause=error)
            )
            return Success(
                self._commit(
                    replace(
                        state,
                        phase=CheckoutPhase.FAILED,
                        error=failure,
                        blocking_reason=_failure_reason(failure),
                    )
                )
            )

    def restart(self) -> Result[CheckoutState, CheckoutError]:
        """Leave FAILED; the checkout is priced again from scratch."""
        with self._lock:
            state = self._state
            if state.phase != CheckoutPhase.FAILED:
                return Failure(
                    NotReadyError(
                        message="only a failed checkout can be restarted", phase=state.phase.value
                    )
                )
            reopened = replace(
                state,
                phase=CheckoutPhase.QUOTE_PENDING,
                error=None,
                quote=None,
                settlement=None,
            )
            return Success(self._commit(self._derive(reopened)))

    def abandon(self) -> Result[CheckoutState, CheckoutError]:
        with self._lock:
            state = self._state
            if state.phase == CheckoutPhase.SUBMITTING:
                return Failure(
                    NotReadyError(
                        message="a payment is in progress and can no longer be cancelled",
                        phase=state.phase.value,
                    )
                )
            if state.phase == CheckoutPhase.SETTLED:
                return Failure(NotReadyError(message="order is already paid", phase=state.phase.value))
            self._in_flight.clear()
            return Success(
                self._commit(replace(state, phase=CheckoutPhase.ABANDONED, blocking_reason=None))
            )

    # ---- internals -----------------------------------------------------------

    def _apply_quote(self, state: CheckoutState, quote: PriceQuote) -> Result[CheckoutState, CheckoutError]:
        rejected = rejected_preferences(state.groups, quote)
        if rejected:
            logger.info("server rejected fulfillment preference for shops=%s", list(rejected))
            self._server_required.update(rejected)
            groups = tuple(
                g.with_preference(None) if g.shop_id in rejected else g for g in state.groups
            )
            error = FulfillmentChoiceRequired(
                message=_choice_reason(groups, rejected), shop_ids=rejected
            )
            # the quote priced an unresolved choice; it must not become fresh again
            return Success(
                self._commit(self._derive(replace(state, groups=groups, quote=None, error=error)))
            )

        self._server_required.clear()
        return Success(self._commit(self._derive(replace(state, quote=quote, error=None))))

    def _apply_failure(
        self, state: CheckoutState, failure: CheckoutError
    ) -> Result[CheckoutState, CheckoutError]:
        classified = classify(failure)
        if isinstance(classified, AddressRejected):
            address = (
                state.address.without_region()
                if classified.clears_region
                else state.address.without_location()
            )
            new = replace(state, address=address, quote=None, error=classified)
        elif isinstance(classified, FulfillmentChoiceRequired):
            shop_ids = tuple(
                g.shop_id
                for g in state.groups
                if g.capability == ShopCapability.HYBRID
                and (not classified.shop_ids or g.shop_id in classified.shop_ids)
            )
            self._server_required.update(shop_ids)
            groups = tuple(
                g.with_preference(None) if g.shop_id in shop_ids else g for g in state.groups
            )
            classified = replace(classified, shop_ids=shop_ids)
            new = replace(state, groups=groups, quote=None, error=classified)
        else:
            new = replace(state, quote=None, error=classified)

        logger.info("quote rejected: %s (%s)", type(classified).__name__, classified.message)
        self._commit(self._derive(new))
        return Failure(classified)

    def _derive(self, state: CheckoutState) -> CheckoutState:
        if _held(state):
            return state

        blocked = display_only_shops(state.groups)
        if blocked:
            error = _capability_conflict(state.groups, blocked)
            return replace(
                state, phase=CheckoutPhase.FAILED, error=error, blocking_reason=error.message
            )
        if isinstance(state.error, CapabilityConflict):
            return replace(state, phase=CheckoutPhase.FAILED, blocking_reason=state.error.message)

        required = self._required_choices(state)
        missing = state.address.missing_fields()
        if missing:
            reason = (
                state.error.message
                if isinstance(state.error, AddressRejected)
                else _address_reason(missing)
            )
            return replace(
                state,
                phase=CheckoutPhase.ADDRESS_INCOMPLETE,
                required_choices=required,
                blocking_reason=reason,
            )

        if required:
            reason = (
                state.error.message
                if isinstance(state.error, FulfillmentChoiceRequired)
                else _choice_reason(state.groups, required)
            )
            return replace(
                state,
                phase=CheckoutPhase.AWAITING_FULFILLMENT_CHOICE,
                required_choices=required,
                blocking_reason=reason,
            )

        base = replace(state, required_choices=())
        if base.fresh_quote() is not None:
            return replace(base, phase=CheckoutPhase.READY, blocking_reason=None, error=None)
        if self._pending_for(base):
            return replace(
                base,
                phase=CheckoutPhase.QUOTE_PENDING,
                blocking_reason="Calculating shipping and taxes",
            )
        if base.quote is not None:
            return replace(
                base,
                phase=CheckoutPhase.QUOTE_STALE,
                blocking_reason="Your order changed; the total is being recalculated",
            )
        return replace(
            base,
            phase=CheckoutPhase.QUOTE_PENDING,
            blocking_reason=(
                base.error.message if base.error is not None else "Calculating shipping and taxes"
            ),
        )

    def _required_choices(self, state: CheckoutState) -> Tuple[str, ...]:
        required = set(resolve_required_shops(state.groups, state.quote))
        required.update(
            g.shop_id
            for g in state.groups
            if g.shop_id in self._server_required
            and g.capability == ShopCapability.HYBRID
            and g.fulfillment_preference is None
        )
        return tuple(g.shop_id for g in state.groups if g.shop_id in required)

    def _pending_for(self, state: CheckoutState) -> bool:
        current = PreferencesSnapshot.capture(state.address, state.groups)
        return any(t.snapshot == current for t in self._in_flight.values())

    def _ensure_mutable(self) -> CheckoutError | None:
        phase = self._state.phase
        if phase == CheckoutPhase.SUBMITTING:
            return SubmissionInProgress(message="the order cannot change while payment is in progress")
        if phase in (CheckoutPhase.SETTLED, CheckoutPhase.ABANDONED):
            return NotReadyError(message="checkout is closed", phase=phase.value)
        return None

    def _commit(self, new: CheckoutState, initial: bool = False) -> CheckoutState:
        before = None if initial else self._state.phase
        self._state = new
        if before is None or before != new.phase:
            self._publish(
                CheckoutPhaseChanged(
                    checkout_id=new.checkout_id,
                    previous=before,
                    current=new.phase,
                    reason=new.blocking_reason,
                    at=self._clock(),
                )
            )
        return new

    def _publish(self, event: CheckoutPhaseChanged) -> None:
        if self._events is not None:
            published = self._events.publish(event)
            if isinstance(published, Failure):
                logger.warning("phase change not published: %s", published.failure())
        for listener in list(self._listeners):
            listener(event)


def _held(state: CheckoutState) -> bool:
    if state.phase in _HELD:
        return True
    return state.phase == CheckoutPhase.FAILED and isinstance(state.error, SettlementFailed)


def _reopened(state: CheckoutState) -> CheckoutState:
    """A settlement failure is left behind as soon as the shopper edits anything."""
    if state.phase == CheckoutPhase.FAILED and isinstance(state.error, SettlementFailed):
        return replace(
            state, phase=CheckoutPhase.QUOTE_PENDING, error=None, quote=None, settlement=None
        )
    return state


def _sticky(error: CheckoutError | None) -> CheckoutError | None:
    # only a cart change can lift a capability conflict
    return error if isinstance(error, CapabilityConflict) else None


def _capability_conflict(groups: Sequence[ShopGroup], shop_ids: Sequence[str]) -> CapabilityConflict:
    names = ", ".join(g.shop_name for g in groups if g.shop_id in shop_ids)
    return CapabilityConflict(
        message=f"Items from {names} are for display only and cannot be ordered. "
        "Remove them from your cart to continue."
    )


def _address_reason(missing: Sequence[str]) -> str:
    labels = ", ".join(name.replace("_", " ") for name in missing)
    return f"Please complete your delivery address (missing: {labels})"


def _choice_reason(groups: Sequence[ShopGroup], shop_ids: Sequence[str]) -> str:
    names = ", ".join(g.shop_name for g in groups if g.shop_id in shop_ids)
    return f"Choose pickup or delivery for: {names}"


def _failure_reason(failure: SettlementFailed) -> str:
    if isinstance(failure, HybridCompletionFailed):
        return failure.message
    return classify(failure).message or failure.message
