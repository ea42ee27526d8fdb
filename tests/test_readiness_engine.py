from __future__ import annotations

from dataclasses import replace

from returns.result import Failure, Success

from conftest import (
    RecordingPublisher,
    ScriptedPricingGateway,
    full_address,
    line,
    payment_summary,
    shop_summary,
    start_engine,
)
from storefront_checkout.adapters.outbound.logging_events import LoggingEventPublisher
from storefront_checkout.core.domain.model.address import DeliveryAddress
from storefront_checkout.core.domain.model.cart import FulfillmentType, ShopCapability
from storefront_checkout.core.domain.model.checkout import Buyer, CheckoutPhase
from storefront_checkout.core.domain.model.errors import (
    AddressIncompleteError,
    AddressRejected,
    CapabilityConflict,
    CollaboratorFailure,
    FulfillmentChoiceRequired,
    NotReadyError,
    SettlementFailed,
    StaleQuoteDropped,
    StockConflict,
    SubmissionInProgress,
    ValidationError,
)
from storefront_checkout.core.domain.model.money import Money
from storefront_checkout.core.domain.service.pricing_client import PricingClient
from storefront_checkout.core.domain.service.readiness_engine import CheckoutReadinessEngine


def _hybrid_pricing(still_requires_choice):
    """HYBRID shop-h; the server keeps asking for a choice while `still_requires_choice()`."""

    def respond(request):
        prefs = dict(request.preferences)
        chosen = prefs.get("shop-h")
        needs = chosen is None or still_requires_choice()
        return Success(
            payment_summary(
                shop_summary(
                    "shop-h",
                    total="20.00",
                    requires_choice=needs,
                    fulfillment=None if needs else chosen,
                )
            )
        )

    return PricingClient(ScriptedPricingGateway(respond=respond))


# ---- address -----------------------------------------------------------------


def test_missing_address_blocks_with_the_missing_fields():
    engine = start_engine([line()])

    state = engine.state
    assert state.phase == CheckoutPhase.ADDRESS_INCOMPLETE
    assert "street address" in state.blocking_reason

    began = engine.begin_quote()
    assert isinstance(began, Failure)
    assert isinstance(began.failure(), AddressIncompleteError)
    assert began.failure().missing == ("street_address", "city", "country")


def test_complete_address_and_fresh_quote_make_the_checkout_ready(pricing):
    engine = start_engine([line()], address=full_address())
    assert engine.state.phase == CheckoutPhase.QUOTE_PENDING

    result = engine.refresh_quote(pricing)

    assert isinstance(result, Success)
    state = engine.state
    assert state.phase == CheckoutPhase.READY
    assert state.blocking_reason is None
    assert state.quote.total == Money.of("15.00")


# ---- display-only items --------------------------------------------------------


def test_display_only_item_prevents_starting_a_checkout():
    started = CheckoutReadinessEngine.start(
        buyer=Buyer(user_id="u-1"),
        items=[line(), line("shop-v", "p-2", capability=ShopCapability.VISUALIZATION_ONLY)],
        address=full_address(),
    )

    assert isinstance(started, Failure)
    assert isinstance(started.failure(), CapabilityConflict)


def test_display_only_item_added_later_fails_until_removed(pricing):
    engine = start_engine([line()], address=full_address())
    engine.refresh_quote(pricing)

    swapped = engine.replace_cart(
        [line(), line("shop-v", "p-2", capability=ShopCapability.VISUALIZATION_ONLY)]
    )

    assert swapped.unwrap().phase == CheckoutPhase.FAILED
    assert isinstance(engine.state.error, CapabilityConflict)
    assert isinstance(engine.begin_quote(), Failure)
    assert isinstance(engine.begin_submission(), Failure)
    # an address edit does not lift the conflict
    engine.update_address(replace(full_address(), city="Chicago"))
    assert engine.state.phase == CheckoutPhase.FAILED

    engine.replace_cart([line()])
    assert engine.state.phase in (CheckoutPhase.QUOTE_PENDING, CheckoutPhase.QUOTE_STALE)
    engine.refresh_quote(pricing)
    assert engine.state.phase == CheckoutPhase.READY


def test_pricing_capability_rejection_fails_the_checkout():
    def respond(_):
        return Failure(CollaboratorFailure(message="no", code="CAPABILITY_REJECTED", status=400))

    engine = start_engine([line()], address=full_address())

    result = engine.refresh_quote(PricingClient(ScriptedPricingGateway(respond=respond)))

    assert isinstance(result.failure(), CapabilityConflict)
    assert engine.state.phase == CheckoutPhase.FAILED


# ---- fulfillment choices -------------------------------------------------------


def test_hybrid_shop_waits_for_a_choice_then_quotes():
    engine = start_engine(
        [line("shop-h", capability=ShopCapability.HYBRID)], address=full_address()
    )
    assert engine.state.phase == CheckoutPhase.AWAITING_FULFILLMENT_CHOICE
    assert engine.state.required_choices == ("shop-h",)

    began = engine.begin_quote()
    assert isinstance(began.failure(), FulfillmentChoiceRequired)

    engine.set_fulfillment_preference("shop-h", FulfillmentType.PICKUP)
    assert engine.state.phase == CheckoutPhase.QUOTE_PENDING

    engine.refresh_quote(_hybrid_pricing(lambda: False))
    assert engine.state.phase == CheckoutPhase.READY
    assert engine.state.required_choices == ()


def test_preference_the_server_rejects_sends_the_shopper_back_to_choose():
    rejecting = {"on": True}
    pricing = _hybrid_pricing(lambda: rejecting["on"])
    engine = start_engine(
        [line("shop-h", capability=ShopCapability.HYBRID)], address=full_address()
    )
    assert engine.state.required_choices == ("shop-h",)

    engine.set_fulfillment_preference("shop-h", FulfillmentType.DELIVERY)
    result = engine.refresh_quote(pricing)

    assert isinstance(result, Success)
    state = engine.state
    assert state.phase == CheckoutPhase.AWAITING_FULFILLMENT_CHOICE
    assert isinstance(state.error, FulfillmentChoiceRequired)
    assert state.error.shop_ids == ("shop-h",)
    assert state.required_choices == ("shop-h",)
    assert state.group("shop-h").fulfillment_preference is None

    rejecting["on"] = False
    engine.set_fulfillment_preference("shop-h", FulfillmentType.DELIVERY)
    engine.refresh_quote(pricing)
    assert engine.state.phase == CheckoutPhase.READY


def test_every_flagged_hybrid_shop_needs_a_choice():
    engine = start_engine(
        [
            line("shop-h", capability=ShopCapability.HYBRID),
            line("shop-k", "p-2", capability=ShopCapability.HYBRID),
        ],
        address=full_address(),
    )

    engine.set_fulfillment_preference("shop-h", FulfillmentType.PICKUP)

    assert engine.state.phase == CheckoutPhase.AWAITING_FULFILLMENT_CHOICE
    assert engine.state.required_choices == ("shop-k",)
    assert "Shop K" in engine.state.blocking_reason


def test_preference_for_non_hybrid_shop_is_rejected():
    engine = start_engine([line()], address=full_address())

    result = engine.set_fulfillment_preference("shop-1", FulfillmentType.PICKUP)
    missing = engine.set_fulfillment_preference("nope", FulfillmentType.PICKUP)

    assert isinstance(result.failure(), ValidationError)
    assert isinstance(missing.failure(), ValidationError)


def test_pricing_choice_error_clears_preferences_of_the_named_shops():
    def respond(_):
        return Failure(
            CollaboratorFailure(
                message="choose", code="HYBRID_CHOICE_REQUIRED", details="shops: shop-h"
            )
        )

    engine = start_engine(
        [line("shop-h", capability=ShopCapability.HYBRID)],
        address=full_address(),
        preferences={"shop-h": FulfillmentType.PICKUP},
    )

    result = engine.refresh_quote(PricingClient(ScriptedPricingGateway(respond=respond)))

    assert isinstance(result.failure(), FulfillmentChoiceRequired)
    assert engine.state.phase == CheckoutPhase.AWAITING_FULFILLMENT_CHOICE
    assert engine.state.group("shop-h").fulfillment_preference is None


# ---- staleness -----------------------------------------------------------------


def test_any_edit_while_ready_makes_the_quote_stale(pricing):
    engine = start_engine(
        [line(), line("shop-h", "p-2", capability=ShopCapability.HYBRID)],
        address=full_address(),
        preferences={"shop-h": FulfillmentType.PICKUP},
    )

    edits = [
        lambda: engine.update_address(replace(full_address(), street_address="14 Main St")),
        lambda: engine.replace_cart(
            [line(quantity=2), line("shop-h", "p-2", capability=ShopCapability.HYBRID)]
        ),
        lambda: engine.set_fulfillment_preference("shop-h", FulfillmentType.DELIVERY),
    ]
    for edit in edits:
        engine.refresh_quote(pricing)
        assert engine.state.phase == CheckoutPhase.READY

        edit()

        assert engine.state.phase == CheckoutPhase.QUOTE_STALE
        assert engine.state.fresh_quote() is None
        assert isinstance(engine.begin_submission().failure(), NotReadyError)

    engine.refresh_quote(pricing)
    assert engine.state.phase == CheckoutPhase.READY


def test_quote_for_outdated_inputs_is_dropped(pricing):
    engine = start_engine([line()], address=full_address())
    ticket = engine.begin_quote().unwrap()
    assert engine.quote_in_flight

    engine.update_address(replace(full_address(), city="Chicago"))
    late = pricing.quote(ticket.snapshot.address, ticket.groups)
    result = engine.receive_quote(ticket, late)

    assert isinstance(result.failure(), StaleQuoteDropped)
    assert engine.state.quote is None
    assert engine.state.phase == CheckoutPhase.QUOTE_PENDING
    assert not engine.quote_in_flight


def test_newer_quote_wins_over_an_older_one_in_flight(pricing):
    engine = start_engine([line()], address=full_address())
    first = engine.begin_quote().unwrap()
    engine.replace_cart([line(quantity=3)])
    second = engine.begin_quote().unwrap()

    engine.receive_quote(second, pricing.quote(second.snapshot.address, second.groups))
    dropped = engine.receive_quote(first, pricing.quote(first.snapshot.address, first.groups))

    assert isinstance(dropped.failure(), StaleQuoteDropped)
    assert engine.state.phase == CheckoutPhase.READY
    assert engine.state.quote.total == Money.of("35.00")


# ---- pricing failures ------------------------------------------------------------


def test_unserved_country_sends_the_shopper_back_to_the_address(pricing):
    engine = start_engine([line()], address=full_address("Antarctica"))

    result = engine.refresh_quote(pricing)

    assert isinstance(result.failure(), AddressRejected)
    state = engine.state
    assert state.phase == CheckoutPhase.ADDRESS_INCOMPLETE
    assert state.address == DeliveryAddress()
    assert "don't deliver to Antarctica" in state.blocking_reason


def test_road_rejection_keeps_city_and_country():
    def respond(_):
        return Failure(
            CollaboratorFailure(
                message="Please select a pickup point on or near a road.", code="VALIDATION_ERROR"
            )
        )

    engine = start_engine([line()], address=full_address())

    engine.refresh_quote(PricingClient(ScriptedPricingGateway(respond=respond)))

    address = engine.state.address
    assert engine.state.phase == CheckoutPhase.ADDRESS_INCOMPLETE
    assert (address.city, address.country) == ("Springfield", "United States")
    assert address.street_address == "" and address.latitude is None


def test_stock_failure_is_recorded_until_the_cart_changes(pricing):
    engine = start_engine([line(product_id="p-limited", quantity=2, name="Sourdough")], address=full_address())

    result = engine.refresh_quote(pricing)

    assert isinstance(result.failure(), StockConflict)
    state = engine.state
    assert state.phase == CheckoutPhase.QUOTE_PENDING
    assert isinstance(state.error, StockConflict)
    assert state.error.shortages[0].item_name == "Sourdough"

    engine.replace_cart([line(product_id="p-limited", quantity=1, name="Sourdough")])
    assert engine.state.error is None
    engine.refresh_quote(pricing)
    assert engine.state.phase == CheckoutPhase.READY


# ---- submission lifecycle ----------------------------------------------------------


def test_second_submission_is_refused_while_the_first_is_running(pricing):
    engine = start_engine([line()], address=full_address())
    engine.refresh_quote(pricing)

    assert isinstance(engine.begin_submission(), Success)
    second = engine.begin_submission()

    assert isinstance(second.failure(), SubmissionInProgress)
    assert isinstance(engine.update_address(DeliveryAddress()).failure(), SubmissionInProgress)
    assert isinstance(engine.abandon(), Failure)


def test_settlement_failure_holds_until_restart(pricing):
    engine = start_engine([line()], address=full_address())
    engine.refresh_quote(pricing)
    engine.begin_submission()

    engine.mark_failed(CollaboratorFailure(message="Insufficient points.", status=402), leg="points")

    state = engine.state
    assert state.phase == CheckoutPhase.FAILED
    assert isinstance(state.error, SettlementFailed)
    assert state.error.leg == "points"
    assert state.blocking_reason == "Insufficient points."
    assert isinstance(engine.begin_quote().failure(), NotReadyError)

    engine.restart()
    assert engine.state.phase == CheckoutPhase.QUOTE_PENDING
    assert engine.state.quote is None
    engine.refresh_quote(pricing)
    assert engine.state.phase == CheckoutPhase.READY


def test_editing_after_a_settlement_failure_reopens_the_checkout(pricing):
    engine = start_engine([line()], address=full_address())
    engine.refresh_quote(pricing)
    engine.begin_submission()
    engine.mark_failed(CollaboratorFailure(message="declined", status=402))

    engine.update_address(replace(full_address(), city="Chicago"))

    assert engine.state.phase == CheckoutPhase.QUOTE_PENDING
    assert engine.state.error is None


def test_restart_is_only_for_failed_checkouts():
    engine = start_engine([line()], address=full_address())

    assert isinstance(engine.restart().failure(), NotReadyError)


def test_abandoned_checkout_accepts_no_more_edits(pricing):
    engine = start_engine([line()], address=full_address())
    engine.begin_quote()

    engine.abandon()

    assert engine.state.phase == CheckoutPhase.ABANDONED
    assert not engine.quote_in_flight
    assert isinstance(engine.update_address(full_address()).failure(), NotReadyError)
    assert isinstance(engine.begin_quote().failure(), NotReadyError)


def test_emptying_the_cart_abandons_the_checkout():
    engine = start_engine([line()], address=full_address())

    engine.replace_cart([])

    assert engine.state.phase == CheckoutPhase.ABANDONED


# ---- phase change notifications ------------------------------------------------------


def test_phase_changes_are_published_and_sent_to_listeners(pricing):
    publisher = RecordingPublisher()
    engine = start_engine([line()], address=full_address(), events=publisher)
    seen = []
    unsubscribe = engine.subscribe(seen.append)

    engine.refresh_quote(pricing)
    unsubscribe()
    engine.update_address(replace(full_address(), city="Chicago"))

    assert publisher.events[0].previous is None
    assert publisher.phases() == [
        CheckoutPhase.QUOTE_PENDING,
        CheckoutPhase.READY,
        CheckoutPhase.QUOTE_STALE,
    ]
    assert [e.current for e in seen] == [CheckoutPhase.READY]
    assert seen[0].previous == CheckoutPhase.QUOTE_PENDING


def test_unchanged_phase_is_not_republished():
    publisher = RecordingPublisher()
    engine = start_engine([line()], events=publisher)

    engine.update_address(DeliveryAddress(city="Springfield"))

    assert publisher.phases() == [CheckoutPhase.ADDRESS_INCOMPLETE]


def test_failing_publisher_does_not_block_transitions(pricing):
    engine = start_engine([line()], address=full_address(), events=LoggingEventPublisher(fail=True))

    engine.refresh_quote(pricing)

    assert engine.state.phase == CheckoutPhase.READY
