from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from conftest import full_address, line
from storefront_checkout.adapters.outbound.http_coverage import HttpDeliveryCoverageGateway
from storefront_checkout.adapters.outbound.http_eligibility import HttpEligibilityGateway
from storefront_checkout.adapters.outbound.http_pricing import HttpPricingGateway
from storefront_checkout.adapters.outbound.http_settlement import HttpSettlementGateway
from storefront_checkout.adapters.outbound.http_support import build_client
from storefront_checkout.core.domain.model.cart import FulfillmentType, ShopCapability
from storefront_checkout.core.domain.model.checkout import Buyer, GuestContact
from storefront_checkout.core.domain.model.errors import (
    AddressUnservedCountry,
    CollaboratorFailure,
)
from storefront_checkout.core.domain.model.money import Money
from storefront_checkout.core.domain.service.pricing_client import PricingClient
from storefront_checkout.core.ports.outbound.pricing import QuoteRequest
from storefront_checkout.core.ports.outbound.settlement import (
    CardSessionRequest,
    PointsPaymentRequest,
)


class Recorder:
    """MockTransport handler that remembers requests and replays one response."""

    def __init__(self, status=200, body=None, raw=None, raises=None):
        self.status = status
        self.body = body
        self.raw = raw
        self.raises = raises
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raises is not None:
            raise self.raises(request)
        if self.raw is not None:
            return httpx.Response(self.status, content=self.raw)
        return httpx.Response(self.status, json=self.body)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last.content)


def _client(recorder: Recorder) -> httpx.Client:
    return build_client(
        "http://store.test/api", api_token="secret", transport=httpx.MockTransport(recorder)
    )


def _quote_request(**kwargs) -> QuoteRequest:
    defaults = dict(
        address=full_address(),
        lines=(line("shop-h", capability=ShopCapability.HYBRID, name="Sourdough"),),
        order_value=Money.of("10.00"),
        preferences=(("shop-h", FulfillmentType.PICKUP),),
        user_id="u-1",
    )
    defaults.update(kwargs)
    return QuoteRequest(**defaults)


# ---- pricing -------------------------------------------------------------------------


def test_payment_summary_request_and_response():
    recorder = Recorder(
        body={
            "subtotal": 10.0,
            "shippingCost": 0,
            "taxAmount": "0.80",
            "totalAmount": 11.8,
            "currency": "usd",
            "shopSummaries": [
                {
                    "shopId": "shop-h",
                    "shopName": "Green Grocer",
                    "subtotal": 10.0,
                    "packagingFee": 1.0,
                    "taxAmount": 0.8,
                    "totalAmount": 11.8,
                    "shopCapability": "HYBRID",
                    "fulfillmentType": "PICKUP",
                    "requiresFulfillmentChoice": False,
                    "rewardPoints": 10,
                }
            ],
        }
    )
    gateway = HttpPricingGateway(_client(recorder))

    summary = gateway.payment_summary(_quote_request()).unwrap()

    sent = recorder.last_json()
    assert recorder.last.url.path == "/api/checkout/payment-summary"
    assert recorder.last.headers["Authorization"] == "Bearer secret"
    assert sent["deliveryAddress"]["streetAddress"] == "12 Main St"
    assert sent["items"] == [{"quantity": 1, "productId": "p-1", "productName": "Sourdough"}]
    assert sent["orderValue"] == 10.0
    assert sent["userId"] == "u-1"
    assert sent["shopFulfillmentPreferences"] == [{"shopId": "shop-h", "fulfillmentType": "PICKUP"}]

    assert summary.currency == "USD"
    assert summary.total == Money.of("11.80")
    shop = summary.shop_summaries[0]
    assert shop.fulfillment_type == FulfillmentType.PICKUP
    assert shop.fee() == Money.of("1.00")
    assert shop.capability == ShopCapability.HYBRID


def test_unknown_capability_and_fulfillment_values_read_as_unset():
    recorder = Recorder(
        body={
            "totalAmount": 10.0,
            "shopSummaries": [
                {
                    "shopId": "shop-h",
                    "totalAmount": 10.0,
                    "shopCapability": "MARKETPLACE",
                    "fulfillmentType": "DRONE",
                }
            ],
        }
    )

    summary = HttpPricingGateway(_client(recorder)).payment_summary(_quote_request()).unwrap()

    shop = summary.shop_summaries[0]
    assert shop.capability is None
    assert shop.fulfillment_type is None


def test_error_body_becomes_a_collaborator_failure_and_is_interpreted():
    recorder = Recorder(
        status=400,
        body={"errorCode": "VALIDATION_ERROR", "message": "Sorry, we don't deliver to Mars yet."},
    )
    gateway = HttpPricingGateway(_client(recorder))

    raw = gateway.payment_summary(_quote_request()).failure()
    interpreted = PricingClient(gateway).quote(full_address(), ()).failure()

    assert isinstance(raw, CollaboratorFailure)
    assert (raw.code, raw.status) == ("VALIDATION_ERROR", 400)
    assert isinstance(interpreted, AddressUnservedCountry)


def test_list_details_are_joined():
    recorder = Recorder(
        status=409,
        body={
            "code": "INSUFFICIENT_STOCK",
            "message": "stock",
            "details": ["Product 'A' is not available. Available: 1", "Product 'B' is not available. Available: 0"],
        },
    )

    raw = HttpPricingGateway(_client(recorder)).payment_summary(_quote_request()).failure()

    assert raw.details == (
        "Product 'A' is not available. Available: 1; Product 'B' is not available. Available: 0"
    )


def test_transport_error_is_a_network_failure():
    recorder = Recorder(raises=lambda request: httpx.ConnectError("refused", request=request))

    raw = HttpPricingGateway(_client(recorder)).payment_summary(_quote_request()).failure()

    assert raw.code == "NETWORK_ERROR"
    assert "refused" in raw.details


def test_non_json_success_is_an_invalid_response():
    recorder = Recorder(raw=b"<html>oops</html>")

    raw = HttpPricingGateway(_client(recorder)).payment_summary(_quote_request()).failure()

    assert raw.code == "INVALID_RESPONSE"


# ---- settlement ------------------------------------------------------------------------


def _card_request(buyer: Buyer) -> CardSessionRequest:
    return CardSessionRequest(
        buyer=buyer,
        address=full_address(),
        lines=(line(unit_price="18.50"),),
        currency="USD",
    )


def test_user_card_session():
    recorder = Recorder(body={"sessionUrl": "https://pay.test/cs_1"})
    gateway = HttpSettlementGateway(_client(recorder))

    handle = gateway.create_card_session(_card_request(Buyer(user_id="u-1"))).unwrap()

    sent = recorder.last_json()
    assert handle == "https://pay.test/cs_1"
    assert recorder.last.url.path == "/api/checkout/create-user-session"
    assert sent["currency"] == "usd"
    assert sent["userId"] == "u-1"
    assert sent["items"][0]["price"] == 18.5
    assert sent["platform"] == "web"


def test_guest_card_session_sends_contact_details():
    recorder = Recorder(body={"sessionUrl": "https://pay.test/cs_2"})
    gateway = HttpSettlementGateway(_client(recorder))
    buyer = Buyer(guest=GuestContact("Ada", "Lovelace", "ada@example.com", "555"))

    gateway.create_guest_card_session(_card_request(buyer)).unwrap()

    sent = recorder.last_json()
    assert recorder.last.url.path == "/api/checkout/guest/create-session"
    assert (sent["guestName"], sent["guestLastName"], sent["guestEmail"], sent["guestPhone"]) == (
        "Ada",
        "Lovelace",
        "ada@example.com",
        "555",
    )
    assert sent["address"]["city"] == "Springfield"


def test_card_session_without_url_is_a_failure():
    recorder = Recorder(body={})

    failure = HttpSettlementGateway(_client(recorder)).create_card_session(
        _card_request(Buyer(user_id="u-1"))
    ).failure()

    assert failure.code == "INVALID_RESPONSE"


@pytest.mark.parametrize("status, paid", [("paid", True), ("COMPLETE", True), ("open", False)])
def test_verify_card_session(status, paid):
    recorder = Recorder(body={"data": {"status": status, "order": {"id": 12, "orderNumber": "ORD-12"}}})

    result = HttpSettlementGateway(_client(recorder)).verify_card_session("cs_1").unwrap()

    assert recorder.last.url.path == "/api/checkout/verify/cs_1"
    assert result.paid is paid
    assert result.order_id == "12"
    assert result.order_number == "ORD-12"


def test_cancel_card_session_passes_the_id_as_a_query_parameter():
    recorder = Recorder(body={"ok": True})

    HttpSettlementGateway(_client(recorder)).cancel_card_session("cs_1").unwrap()

    assert recorder.last.url.path == "/api/checkout/webhook/cancel"
    assert recorder.last.url.params["session_id"] == "cs_1"


def test_points_payment_receipt():
    recorder = Recorder(
        body={
            "success": True,
            "message": "Points applied",
            "orderId": 77,
            "pointsUsed": 400,
            "pointsValue": 4.0,
            "remainingAmount": 11.0,
            "stripeSessionId": "cs_77",
            "hybridPayment": True,
        }
    )
    gateway = HttpSettlementGateway(_client(recorder))

    receipt = gateway.process_points_payment(
        PointsPaymentRequest(
            user_id="u-1", address=full_address(), lines=(line(),), points_to_use=400
        )
    ).unwrap()

    sent = recorder.last_json()
    assert sent["pointsToUse"] == 400
    assert sent["useAllAvailablePoints"] is True
    assert receipt.hybrid_payment
    assert receipt.order_id == "77"
    assert receipt.points_value == Money.of("4.00")
    assert receipt.remaining_amount == Money.of("11.00")
    assert receipt.session_handle == "cs_77"


def test_complete_hybrid_payment_path():
    recorder = Recorder(body={"success": True, "orderId": "77", "orderNumber": "ORD-77"})

    receipt = HttpSettlementGateway(_client(recorder)).complete_hybrid_payment(
        "u-1", "77", "cs_77"
    ).unwrap()

    assert recorder.last.url.path == "/api/points-payment/complete-hybrid/u-1/77"
    assert recorder.last.url.params["stripeSessionId"] == "cs_77"
    assert receipt.order_number == "ORD-77"


# ---- eligibility and coverage ------------------------------------------------------------


def test_eligibility_parsing():
    recorder = Recorder(
        body={
            "shopEligibilities": [
                {
                    "shopId": "shop-1",
                    "currentPointsBalance": 1250,
                    "currentPointsValue": 12.5,
                    "maxPointsPayableAmount": 10,
                    "canPayWithPoints": True,
                }
            ]
        }
    )

    (eligibility,) = HttpEligibilityGateway(_client(recorder)).check_eligibility(
        "u-1", (line(),)
    ).unwrap()

    assert recorder.last_json()["items"] == [{"quantity": 1, "productId": "p-1"}]
    assert eligibility.can_pay_with_points
    assert eligibility.point_unit_value(Decimal("1")) == Decimal("0.01")


def test_coverage_endpoints():
    recorder = Recorder(
        body={
            "content": [{"shopId": "shop-2", "shopName": "Green Grocer", "capability": "HYBRID"}],
            "number": 1,
            "size": 5,
            "totalElements": 6,
        }
    )
    gateway = HttpDeliveryCoverageGateway(_client(recorder))

    page = gateway.shops_delivering_to("Canada", page=1, size=5, search="green").unwrap()

    assert recorder.last.url.path == "/api/shops/delivery/countries/Canada/shops"
    assert recorder.last.url.params["search"] == "green"
    assert page.shops[0].capability == ShopCapability.HYBRID
    assert (page.page, page.size, page.total) == (1, 5, 6)

    recorder.body = [{"country": "Canada", "shopCount": 1}]
    (country,) = gateway.countries_with_delivery().unwrap()
    assert (country.country, country.shop_count) == ("Canada", 1)
