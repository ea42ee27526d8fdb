from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from returns.result import Failure, Result, Success

from storefront_checkout.core.domain.model.checkout import (
    Buyer,
    CheckoutId,
    CheckoutPhase,
    CheckoutState,
)
from storefront_checkout.core.domain.model.errors import (
    CheckoutError,
    SessionNotFound,
    StaleQuoteDropped,
    ValidationError,
)
from storefront_checkout.core.domain.model.settlement import SettlementResult
from storefront_checkout.core.domain.service.pricing_client import PricingClient
from storefront_checkout.core.domain.service.quote_debouncer import QuoteRefreshDebouncer
from storefront_checkout.core.domain.service.readiness_engine import CheckoutReadinessEngine
from storefront_checkout.core.domain.service.settlement_dispatcher import SettlementDispatcher
from storefront_checkout.core.ports.inbound.checkout import (
    CheckoutUseCase,
    ChooseFulfillmentCommand,
    ReplaceCartCommand,
    StartCheckoutCommand,
    SubmitCommand,
    UpdateAddressCommand,
)
from storefront_checkout.core.ports.outbound.coverage import (
    CountryCoverage,
    CoveragePage,
    DeliveryCoverageGateway,
)
from storefront_checkout.core.ports.outbound.events import CheckoutEventPublisher
from storefront_checkout.core.ports.outbound.scheduler import Scheduler
from storefront_checkout.core.ports.outbound.sessions import (
    CheckoutSession,
    CheckoutSessionRepository,
)

logger = logging.getLogger(__name__)

_NEEDS_QUOTE = (CheckoutPhase.QUOTE_PENDING, CheckoutPhase.QUOTE_STALE)


@dataclass(frozen=True)
class CheckoutDeps:
    pricing: PricingClient
    dispatcher: SettlementDispatcher
    sessions: CheckoutSessionRepository
    coverage: DeliveryCoverageGateway
    events: CheckoutEventPublisher | None = None
    scheduler: Scheduler | None = None  # None: quotes are only refreshed on request
    quiet_period_seconds: float = 0.5


@dataclass(frozen=True)
class CheckoutService(CheckoutUseCase):
    deps: CheckoutDeps

    def start_checkout(self, command: StartCheckoutCommand) -> Result[CheckoutState, CheckoutError]:
        user_id = (command.user_id or "").strip() or None
        if user_id is None and command.guest is not None and not command.guest.email.strip():
            return Failure(ValidationError(message="guest email is required"))

        started = CheckoutReadinessEngine.start(
            buyer=Buyer(user_id=user_id, guest=command.guest),
            items=command.items,
            address=command.address,
            preferences=command.preferences,
            events=self.deps.events,
        )
        if isinstance(started, Failure):
            return started
        engine = started.unwrap()

        session = CheckoutSession(engine=engine, debouncer=self._debouncer_for(engine))
        saved = self.deps.sessions.save(session)
        if isinstance(saved, Failure):
            return saved
        logger.info(
            "checkout started id=%s shops=%d phase=%s",
            session.checkout_id.value,
            len(engine.state.groups),
            engine.state.phase.value,
        )
        return Success(self._after_edit(session, engine.state))

    def get_checkout(self, checkout_id: str) -> Result[CheckoutState, CheckoutError]:
        found = self._session(checkout_id)
        if isinstance(found, Failure) and isinstance(found.failure(), SessionNotFound):
            return self.deps.sessions.finished(CheckoutId(checkout_id.strip()))
        return found.map(lambda s: s.engine.state)

    def update_address(self, command: UpdateAddressCommand) -> Result[CheckoutState, CheckoutError]:
        return self._session(command.checkout_id).bind(
            lambda s: s.engine.update_address(command.address).map(
                lambda state: self._after_edit(s, state)
            )
        )

    def choose_fulfillment(
        self, command: ChooseFulfillmentCommand
    ) -> Result[CheckoutState, CheckoutError]:
        return self._session(command.checkout_id).bind(
            lambda s: s.engine.set_fulfillment_preference(
                command.shop_id, command.fulfillment
            ).map(lambda state: self._after_edit(s, state))
        )

    def replace_cart(self, command: ReplaceCartCommand) -> Result[CheckoutState, CheckoutError]:
        if not command.items:
            return self.abandon(command.checkout_id)
        return self._session(command.checkout_id).bind(
            lambda s: s.engine.replace_cart(command.items).map(
                lambda state: self._after_edit(s, state)
            )
        )

    def refresh_quote(self, checkout_id: str) -> Result[CheckoutState, CheckoutError]:
        """Price now. Pricing failures are recorded on the state, not returned."""
        found = self._session(checkout_id)
        if isinstance(found, Failure):
            return found
        session = found.unwrap()
        if session.debouncer is not None:
            session.debouncer.cancel()

        began = session.engine.begin_quote()
        if isinstance(began, Failure):
            return began
        ticket = began.unwrap()
        priced = self.deps.pricing.quote(
            ticket.snapshot.address, ticket.groups, user_id=ticket.user_id
        )
        session.engine.receive_quote(ticket, priced)
        return Success(session.engine.state)

    def submit(self, command: SubmitCommand) -> Result[SettlementResult, CheckoutError]:
        found = self._session(command.checkout_id)
        if isinstance(found, Failure):
            return found
        session = found.unwrap()
        if session.debouncer is not None:
            session.debouncer.cancel()
        submitted = self.deps.dispatcher.submit(session.engine, command.mode)
        return self._retire_if_settled(session, submitted)

    def complete_hybrid_payment(
        self, checkout_id: str, session_handle: str | None = None
    ) -> Result[SettlementResult, CheckoutError]:
        return self._session(checkout_id).bind(
            lambda s: self._retire_if_settled(
                s, self.deps.dispatcher.complete_hybrid_payment(s.engine, session_handle)
            )
        )

    def confirm_card_payment(
        self, checkout_id: str, session_id: str
    ) -> Result[SettlementResult, CheckoutError]:
        return self._session(checkout_id).bind(
            lambda s: self._retire_if_settled(
                s, self.deps.dispatcher.confirm_card_payment(s.engine, session_id)
            )
        )

    def cancel_card_payment(self, checkout_id: str, session_id: str) -> Result[CheckoutState, CheckoutError]:
        return self._session(checkout_id).bind(
            lambda s: self.deps.dispatcher.cancel_card_payment(s.engine, session_id)
        )

    def restart(self, checkout_id: str) -> Result[CheckoutState, CheckoutError]:
        return self._session(checkout_id).bind(
            lambda s: s.engine.restart().map(lambda state: self._after_edit(s, state))
        )

    def abandon(self, checkout_id: str) -> Result[CheckoutState, CheckoutError]:
        found = self._session(checkout_id)
        if isinstance(found, Failure):
            return found
        session = found.unwrap()

        abandoned = session.engine.abandon()
        if isinstance(abandoned, Failure):
            return abandoned
        if session.debouncer is not None:
            session.debouncer.cancel()
        removed = self.deps.sessions.remove(session.checkout_id)
        if isinstance(removed, Failure):
            return removed
        return abandoned

    def delivery_countries(self) -> Result[Sequence[CountryCoverage], CheckoutError]:
        return self.deps.coverage.countries_with_delivery()

    def shops_delivering_to(
        self, country: str, page: int = 0, size: int = 10, search: str | None = None
    ) -> Result[CoveragePage, CheckoutError]:
        if not country.strip():
            return Failure(ValidationError(message="country is required"))
        if page < 0 or size <= 0:
            return Failure(ValidationError(message="page must be >= 0 and size > 0"))
        return self.deps.coverage.shops_delivering_to(country.strip(), page, size, search)

    # ---- internals -----------------------------------------------------------

    def _session(self, checkout_id: str) -> Result[CheckoutSession, CheckoutError]:
        if not checkout_id.strip():
            return Failure(ValidationError(message="checkout_id is required"))
        return self.deps.sessions.get(CheckoutId(checkout_id.strip()))

    def _debouncer_for(self, engine: CheckoutReadinessEngine) -> QuoteRefreshDebouncer | None:
        if self.deps.scheduler is None:
            return None
        return QuoteRefreshDebouncer(
            self.deps.scheduler,
            self.deps.quiet_period_seconds,
            lambda: self._auto_refresh(engine),
        )

    def _after_edit(self, session: CheckoutSession, state: CheckoutState) -> CheckoutState:
        if session.debouncer is not None and state.phase in _NEEDS_QUOTE:
            session.debouncer.poke()
        return state

    def _retire_if_settled(
        self, session: CheckoutSession, result: Result[SettlementResult, CheckoutError]
    ) -> Result[SettlementResult, CheckoutError]:
        if session.engine.state.phase != CheckoutPhase.SETTLED:
            return result
        if session.debouncer is not None:
            session.debouncer.cancel()
        self.deps.sessions.retire(session)
        logger.info("checkout settled id=%s", session.checkout_id.value)
        return result

    def _auto_refresh(self, engine: CheckoutReadinessEngine) -> None:
        result = engine.refresh_quote(self.deps.pricing)
        if isinstance(result, Failure) and not isinstance(result.failure(), StaleQuoteDropped):
            logger.debug(
                "background quote for %s ended in %s",
                engine.state.checkout_id.value,
                type(result.failure()).__name__,
            )
