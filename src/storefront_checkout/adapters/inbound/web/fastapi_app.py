from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable

from fastapi import FastAPI, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from returns.result import Success

from storefront_checkout.adapters.inbound.web.request_logging import RequestLoggingMiddleware
from storefront_checkout.core.domain.model.address import DeliveryAddress
from storefront_checkout.core.domain.model.cart import (
    CartLineItem,
    FulfillmentType,
    ShopCapability,
)
from storefront_checkout.core.domain.model.checkout import (
    CheckoutPhase,
    CheckoutState,
    GuestContact,
)
from storefront_checkout.core.domain.model.errors import (
    AddressIncompleteError,
    AddressRejected,
    AuthRequired,
    CapabilityConflict,
    CheckoutError,
    FulfillmentChoiceRequired,
    HybridCompletionFailed,
    InsufficientPoints,
    ItemsChangedConcurrently,
    NotReadyError,
    SessionNotFound,
    StockConflict,
    SubmissionInProgress,
    ValidationError,
)
from storefront_checkout.core.domain.model.quote import PriceQuote
from storefront_checkout.core.domain.model.settlement import (
    CardRedirect,
    CardVerified,
    HybridCompleted,
    HybridRedirect,
    PointsSettled,
    SettlementMode,
    SettlementResult,
)
from storefront_checkout.core.domain.service.error_classifier import classify
from storefront_checkout.core.ports.inbound.checkout import (
    CheckoutUseCase,
    ChooseFulfillmentCommand,
    ReplaceCartCommand,
    StartCheckoutCommand,
    SubmitCommand,
    UpdateAddressCommand,
)

# ---- HTTP DTOs (adapter layer) ---------------------------------------------


class AddressIn(BaseModel):
    street_address: str = Field(default="", examples=["12 Main St"])
    city: str = Field(default="", examples=["Springfield"])
    state: str = ""
    country: str = Field(default="", examples=["United States"])
    latitude: float | None = None
    longitude: float | None = None


class CartLineIn(BaseModel):
    product_id: str | None = Field(default=None, examples=["p-1"])
    variant_id: int | None = None
    shop_id: str = Field(min_length=1, examples=["shop-1"])
    shop_name: str = ""
    capability: ShopCapability = ShopCapability.FULL_ECOMMERCE
    quantity: int = Field(gt=0, examples=[2])
    unit_price: Decimal = Field(ge=0, examples=["18.50"])
    weight: Decimal = Field(default=Decimal("0"), ge=0)
    name: str = ""


class GuestIn(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str = ""


class StartCheckoutRequest(BaseModel):
    items: list[CartLineIn] = Field(min_length=1)
    user_id: str | None = None
    guest: GuestIn | None = None
    address: AddressIn | None = None
    preferences: dict[str, FulfillmentType] = Field(default_factory=dict)


class FulfillmentIn(BaseModel):
    fulfillment: FulfillmentType


class CartIn(BaseModel):
    items: list[CartLineIn]


class SubmitRequest(BaseModel):
    mode: SettlementMode = SettlementMode.CARD


class HybridCompletionRequest(BaseModel):
    session_handle: str | None = None


class CardSessionIn(BaseModel):
    session_id: str = Field(min_length=1)


class ShopOut(BaseModel):
    shop_id: str
    shop_name: str
    capability: str
    fulfillment_preference: str | None
    item_count: int
    subtotal: str


class ShopQuoteOut(BaseModel):
    shop_id: str
    shop_name: str
    subtotal: str
    discount: str
    fee: str
    tax: str
    total: str
    fulfillment_type: str | None
    requires_fulfillment_choice: bool
    reward_points: int


class QuoteOut(BaseModel):
    subtotal: str
    discount: str
    shipping: str
    tax: str
    total: str
    currency: str
    reward_points: int
    fetched_at: str
    stale: bool
    shops: list[ShopQuoteOut]


class ErrorOut(BaseModel):
    type: str
    message: str
    next_step: str | None = None


class SettlementOut(BaseModel):
    kind: str
    session_handle: str | None = None
    redirect_is_local: bool | None = None
    order_id: str | None = None
    order_number: str | None = None
    points_used: int | None = None
    points_value: str | None = None
    remaining_to_pay: str | None = None


class CheckoutResponse(BaseModel):
    checkout_id: str
    phase: str
    ready: bool
    blocking_reason: str | None
    required_choices: list[str]
    address: AddressIn
    shops: list[ShopOut]
    quote: QuoteOut | None
    error: ErrorOut | None
    settlement: SettlementOut | None


class CoverageShopOut(BaseModel):
    shop_id: str
    shop_name: str
    capability: str
    shop_slug: str


class CountryOut(BaseModel):
    country: str
    shop_count: int
    shops: list[CoverageShopOut]


class CoveragePageOut(BaseModel):
    shops: list[CoverageShopOut]
    page: int
    size: int
    total: int


class ErrorResponse(BaseModel):
    type: str
    message: str
    next_step: str | None = None
    classification: str | None = None
    details: list[dict[str, Any]] | dict[str, Any] | None = None


_CLASSIFIED_STATUS = {
    AddressRejected: 422,
    CapabilityConflict: 409,
    FulfillmentChoiceRequired: 409,
    StockConflict: 409,
    AuthRequired: 401,
    InsufficientPoints: 402,
    ItemsChangedConcurrently: 409,
}


def _map_error_to_http(err: CheckoutError) -> tuple[int, ErrorResponse]:
    name = type(err).__name__
    if isinstance(err, SessionNotFound):
        return 404, ErrorResponse(type=name, message=str(err))

    if isinstance(err, AddressIncompleteError):
        return 409, ErrorResponse(
            type=name,
            message=err.message,
            next_step="fix_address",
            details={"missing": list(err.missing)},
        )

    if isinstance(err, ValidationError):
        return 400, ErrorResponse(type=name, message=err.message)

    if isinstance(err, (SubmissionInProgress, NotReadyError)):
        return 409, ErrorResponse(type=name, message=err.message)

    if isinstance(err, HybridCompletionFailed):
        # money has moved: the client must not offer a plain retry
        return 502, ErrorResponse(
            type=name,
            message=err.message,
            next_step="contact_support",
            details={"order_id": err.order_id, "session_handle": err.session_handle},
        )

    classified = classify(err)
    body = ErrorResponse(
        type=name,
        message=err.message or classified.message or name,
        next_step=classified.next_step.value,
        classification=type(classified).__name__,
    )
    if isinstance(classified, FulfillmentChoiceRequired):
        body.details = {"shop_ids": list(classified.shop_ids)}
    elif isinstance(classified, StockConflict):
        body.details = [
            {"item_name": s.item_name, "available": s.available} for s in classified.shortages
        ]
    return _CLASSIFIED_STATUS.get(type(classified), 502), body


def _error(err: CheckoutError) -> JSONResponse:
    status, body = _map_error_to_http(err)
    return JSONResponse(status_code=status, content=body.model_dump())


# ---- DTO mapping -----------------------------------------------------------


def _address_in(a: AddressIn | None) -> DeliveryAddress | None:
    if a is None:
        return None
    return DeliveryAddress(
        street_address=a.street_address.strip(),
        city=a.city.strip(),
        state=a.state.strip(),
        country=a.country.strip(),
        latitude=a.latitude,
        longitude=a.longitude,
    )


def _lines_in(items: list[CartLineIn]) -> tuple[CartLineItem, ...]:
    return tuple(
        CartLineItem(
            product_id=ln.product_id,
            variant_id=ln.variant_id,
            shop_id=ln.shop_id,
            shop_name=ln.shop_name,
            capability=ln.capability,
            quantity=ln.quantity,
            unit_price=ln.unit_price,
            weight=ln.weight,
            name=ln.name,
        )
        for ln in items
    )


def _quote_out(quote: PriceQuote, state: CheckoutState) -> QuoteOut:
    return QuoteOut(
        subtotal=str(quote.subtotal.amount),
        discount=str(quote.discount.amount),
        shipping=str(quote.shipping.amount),
        tax=str(quote.tax.amount),
        total=str(quote.total.amount),
        currency=quote.currency,
        reward_points=quote.reward_points,
        fetched_at=quote.fetched_at.isoformat(),
        stale=quote.is_stale(state.address, state.groups),
        shops=[
            ShopQuoteOut(
                shop_id=s.shop_id,
                shop_name=s.shop_name,
                subtotal=str(s.subtotal.amount),
                discount=str(s.discount_amount.amount),
                fee=str(s.fee().amount),
                tax=str(s.tax_amount.amount),
                total=str(s.total_amount.amount),
                fulfillment_type=s.fulfillment_type.value if s.fulfillment_type else None,
                requires_fulfillment_choice=s.requires_fulfillment_choice,
                reward_points=s.reward_points,
            )
            for s in quote.shop_summaries
        ],
    )


def _settlement_out(result: SettlementResult) -> SettlementOut:
    if isinstance(result, CardRedirect):
        return SettlementOut(
            kind="card_redirect",
            session_handle=result.session_handle,
            redirect_is_local=result.is_local(),
        )
    if isinstance(result, HybridRedirect):
        return SettlementOut(
            kind="hybrid_redirect",
            session_handle=result.session_handle,
            redirect_is_local=result.session_handle.startswith("/"),
            order_id=result.order_id,
            points_used=result.points_used,
            points_value=str(result.points_value.amount),
            remaining_to_pay=str(result.remaining_to_pay.amount),
        )
    if isinstance(result, (PointsSettled, HybridCompleted)):
        return SettlementOut(
            kind="points_settled" if isinstance(result, PointsSettled) else "hybrid_completed",
            order_id=result.order_id,
            order_number=result.order_number,
            points_used=result.points_used,
            points_value=str(result.points_value.amount),
        )
    if isinstance(result, CardVerified):
        return SettlementOut(
            kind="card_verified", order_id=result.order_id, order_number=result.order_number
        )
    raise TypeError(f"unknown settlement result: {type(result).__name__}")


def _checkout_out(state: CheckoutState) -> CheckoutResponse:
    error = None
    if state.error is not None:
        classified = classify(state.error)
        error = ErrorOut(
            type=type(classified).__name__,
            message=state.error.message or classified.message,
            next_step=classified.next_step.value,
        )
    a = state.address
    return CheckoutResponse(
        checkout_id=state.checkout_id.value,
        phase=state.phase.value,
        ready=state.phase == CheckoutPhase.READY,
        blocking_reason=state.blocking_reason,
        required_choices=list(state.required_choices),
        address=AddressIn(
            street_address=a.street_address,
            city=a.city,
            state=a.state,
            country=a.country,
            latitude=a.latitude,
            longitude=a.longitude,
        ),
        shops=[
            ShopOut(
                shop_id=g.shop_id,
                shop_name=g.shop_name,
                capability=g.capability.value,
                fulfillment_preference=(
                    g.fulfillment_preference.value if g.fulfillment_preference else None
                ),
                item_count=sum(it.quantity for it in g.items),
                subtotal=str(g.subtotal().amount),
            )
            for g in state.groups
        ],
        quote=_quote_out(state.quote, state) if state.quote is not None else None,
        error=error,
        settlement=_settlement_out(state.settlement) if state.settlement is not None else None,
    )


_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def create_app(checkout_uc: CheckoutUseCase, lifespan: Callable[..., Any] | None = None) -> FastAPI:
    app = FastAPI(title="storefront_checkout", lifespan=lifespan)
    app.add_middleware(RequestLoggingMiddleware)

    # --- exception handlers ---------------------------------------------------

    @app.exception_handler(CheckoutError)
    async def handle_domain_error(_: Request, exc: CheckoutError) -> JSONResponse:
        return _error(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
        body = ErrorResponse(
            type="RequestValidationError",
            message="invalid request",
            details=list(exc.errors()),
        )
        return JSONResponse(status_code=400, content=jsonable_encoder(body))

    @app.exception_handler(Exception)
    async def handle_unexpected(_: Request, exc: Exception) -> JSONResponse:
        body = ErrorResponse(type=type(exc).__name__, message="internal server error")
        return JSONResponse(status_code=500, content=body.model_dump())

    # --- routes ---------------------------------------------------------------

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/checkouts", response_model=CheckoutResponse, status_code=201, responses=_ERRORS)
    def start_checkout(req: StartCheckoutRequest, response: Response) -> Any:
        result = checkout_uc.start_checkout(
            StartCheckoutCommand(
                items=_lines_in(req.items),
                user_id=req.user_id,
                guest=(
                    GuestContact(
                        first_name=req.guest.first_name,
                        last_name=req.guest.last_name,
                        email=req.guest.email,
                        phone=req.guest.phone,
                    )
                    if req.guest
                    else None
                ),
                address=_address_in(req.address),
                preferences=dict(req.preferences),
            )
        )
        if isinstance(result, Success):
            state = result.unwrap()
            response.headers["Location"] = f"/checkouts/{state.checkout_id.value}"
            return _checkout_out(state)
        return _error(result.failure())

    @app.get("/checkouts/{checkout_id}", response_model=CheckoutResponse, responses=_ERRORS)
    def get_checkout(checkout_id: str) -> Any:
        return _respond(checkout_uc.get_checkout(checkout_id))

    @app.put("/checkouts/{checkout_id}/address", response_model=CheckoutResponse, responses=_ERRORS)
    def update_address(checkout_id: str, req: AddressIn) -> Any:
        return _respond(
            checkout_uc.update_address(
                UpdateAddressCommand(checkout_id=checkout_id, address=_address_in(req))
            )
        )

    @app.put(
        "/checkouts/{checkout_id}/fulfillment/{shop_id}",
        response_model=CheckoutResponse,
        responses=_ERRORS,
    )
    def choose_fulfillment(checkout_id: str, shop_id: str, req: FulfillmentIn) -> Any:
        return _respond(
            checkout_uc.choose_fulfillment(
                ChooseFulfillmentCommand(
                    checkout_id=checkout_id, shop_id=shop_id, fulfillment=req.fulfillment
                )
            )
        )

    @app.put("/checkouts/{checkout_id}/cart", response_model=CheckoutResponse, responses=_ERRORS)
    def replace_cart(checkout_id: str, req: CartIn) -> Any:
        return _respond(
            checkout_uc.replace_cart(
                ReplaceCartCommand(checkout_id=checkout_id, items=_lines_in(req.items))
            )
        )

    @app.post("/checkouts/{checkout_id}/quote", response_model=CheckoutResponse, responses=_ERRORS)
    def refresh_quote(checkout_id: str) -> Any:
        return _respond(checkout_uc.refresh_quote(checkout_id))

    @app.post(
        "/checkouts/{checkout_id}/submit",
        response_model=SettlementOut,
        responses={**_ERRORS, 401: {"model": ErrorResponse}, 402: {"model": ErrorResponse}},
    )
    def submit(checkout_id: str, req: SubmitRequest) -> Any:
        result = checkout_uc.submit(SubmitCommand(checkout_id=checkout_id, mode=req.mode))
        if isinstance(result, Success):
            return _settlement_out(result.unwrap())
        return _error(result.failure())

    @app.post(
        "/checkouts/{checkout_id}/hybrid-completion",
        response_model=SettlementOut,
        responses={**_ERRORS, 502: {"model": ErrorResponse}},
    )
    def complete_hybrid(checkout_id: str, req: HybridCompletionRequest) -> Any:
        result = checkout_uc.complete_hybrid_payment(checkout_id, req.session_handle)
        if isinstance(result, Success):
            return _settlement_out(result.unwrap())
        return _error(result.failure())

    @app.post(
        "/checkouts/{checkout_id}/card-confirmation",
        response_model=SettlementOut,
        responses=_ERRORS,
    )
    def confirm_card(checkout_id: str, req: CardSessionIn) -> Any:
        result = checkout_uc.confirm_card_payment(checkout_id, req.session_id)
        if isinstance(result, Success):
            return _settlement_out(result.unwrap())
        return _error(result.failure())

    @app.post(
        "/checkouts/{checkout_id}/card-cancellation",
        response_model=CheckoutResponse,
        responses=_ERRORS,
    )
    def cancel_card(checkout_id: str, req: CardSessionIn) -> Any:
        return _respond(checkout_uc.cancel_card_payment(checkout_id, req.session_id))

    @app.post("/checkouts/{checkout_id}/restart", response_model=CheckoutResponse, responses=_ERRORS)
    def restart(checkout_id: str) -> Any:
        return _respond(checkout_uc.restart(checkout_id))

    @app.delete("/checkouts/{checkout_id}", response_model=CheckoutResponse, responses=_ERRORS)
    def abandon(checkout_id: str) -> Any:
        return _respond(checkout_uc.abandon(checkout_id))

    @app.get("/delivery/countries", response_model=list[CountryOut], responses=_ERRORS)
    def delivery_countries() -> Any:
        result = checkout_uc.delivery_countries()
        if isinstance(result, Success):
            return [
                CountryOut(
                    country=c.country,
                    shop_count=c.shop_count,
                    shops=[_coverage_shop_out(s) for s in c.shops],
                )
                for c in result.unwrap()
            ]
        return _error(result.failure())

    @app.get(
        "/delivery/countries/{country}/shops",
        response_model=CoveragePageOut,
        responses=_ERRORS,
    )
    def shops_delivering_to(
        country: str,
        page: int = Query(0, ge=0),
        size: int = Query(10, ge=1, le=100),
        search: str | None = Query(None, min_length=1),
    ) -> Any:
        result = checkout_uc.shops_delivering_to(country, page=page, size=size, search=search)
        if isinstance(result, Success):
            p = result.unwrap()
            return CoveragePageOut(
                shops=[_coverage_shop_out(s) for s in p.shops],
                page=p.page,
                size=p.size,
                total=p.total,
            )
        return _error(result.failure())

    return app


def _respond(result) -> Any:
    if isinstance(result, Success):
        return _checkout_out(result.unwrap())
    return _error(result.failure())


def _coverage_shop_out(s) -> CoverageShopOut:
    return CoverageShopOut(
        shop_id=s.shop_id, shop_name=s.shop_name, capability=s.capability.value, shop_slug=s.shop_slug
    )
