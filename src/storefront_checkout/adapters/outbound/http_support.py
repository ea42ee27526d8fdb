from __future__ import annotations

import json
import logging
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping, Type, TypeVar

import httpx
from returns.result import Failure, Result, Success

from storefront_checkout.core.domain.model.address import DeliveryAddress
from storefront_checkout.core.domain.model.cart import CartLineItem
from storefront_checkout.core.domain.model.errors import CheckoutError, CollaboratorFailure
from storefront_checkout.core.domain.model.money import DEFAULT_CURRENCY, Money

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


def build_client(
    base_url: str,
    timeout: float = 8.0,
    connect_timeout: float = 5.0,
    api_token: str | None = None,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    headers = {"Accept": "application/json"}
    if api_token:
        headers["Authorization"] = f"Bearer {api_token}"
    return httpx.Client(
        base_url=base_url,
        timeout=httpx.Timeout(timeout, connect=connect_timeout),
        headers=headers,
        transport=transport,
    )


def call_json(
    client: httpx.Client,
    method: str,
    path: str,
    *,
    payload: Any = None,
    params: Mapping[str, Any] | None = None,
) -> Result[Any, CheckoutError]:
    """One request, decoded. Transport problems and error statuses come back as Failure."""
    try:
        response = client.request(method, path, json=payload, params=params)
    except httpx.HTTPError as exc:
        logger.warning("%s %s failed: %s", method, path, exc)
        return Failure(
            CollaboratorFailure(
                message="Could not reach the store service. Please try again.",
                code="NETWORK_ERROR",
                details=str(exc),
            )
        )

    if response.is_error:
        failure = failure_from_response(response)
        logger.warning(
            "%s %s -> %s code=%s", method, path, response.status_code, failure.code
        )
        return Failure(failure)

    if not response.content:
        return Success(None)
    try:
        return Success(response.json())
    except ValueError:
        return Failure(
            CollaboratorFailure(
                message="unexpected response from the store service",
                code="INVALID_RESPONSE",
                details=response.text[:200],
                status=response.status_code,
            )
        )


def failure_from_response(response: httpx.Response) -> CollaboratorFailure:
    body: dict[str, Any] = {}
    try:
        parsed = response.json()
        if isinstance(parsed, dict):
            body = parsed
    except ValueError:
        pass

    code = body.get("errorCode") or body.get("code") or body.get("error")
    message = body.get("message") or (response.text if not body else "") or ""
    return CollaboratorFailure(
        message=str(message) or f"HTTP {response.status_code}",
        code=str(code) if code else None,
        details=_details_text(body.get("details")),
        status=response.status_code,
    )


def _details_text(details: Any) -> str | None:
    if details is None:
        return None
    if isinstance(details, str):
        return details
    if isinstance(details, list):
        return "; ".join(str(d) for d in details)
    return json.dumps(details, default=str)


# ---- wire <-> domain helpers -------------------------------------------------


def money(value: Any, currency: str = DEFAULT_CURRENCY) -> Money:
    if value is None or value == "":
        return Money.zero(currency)
    try:
        return Money.of(Decimal(str(value)), currency)
    except InvalidOperation:
        return Money.zero(currency)


def enum_or_none(enum_cls: Type[E], value: Any) -> E | None:
    """Values this client does not know read as None instead of failing the parse."""
    if value is None or value == "":
        return None
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        logger.warning("unknown %s from backend: %r", enum_cls.__name__, value)
        return None


def address_to_wire(address: DeliveryAddress) -> dict[str, Any]:
    out: dict[str, Any] = {
        "streetAddress": address.street_address,
        "city": address.city,
        "state": address.state,
        "country": address.country,
    }
    if address.latitude is not None and address.longitude is not None:
        out["latitude"] = address.latitude
        out["longitude"] = address.longitude
    return out


def line_to_wire(item: CartLineItem, with_price: bool = True) -> dict[str, Any]:
    out: dict[str, Any] = {"quantity": item.quantity}
    if item.product_id:
        out["productId"] = item.product_id
    if item.variant_id is not None:
        out["variantId"] = item.variant_id
    if with_price:
        out["price"] = float(item.unit_price)
    if item.weight:
        out["weight"] = float(item.weight)
    if item.name:
        out["productName"] = item.name
    return out
