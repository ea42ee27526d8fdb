from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

from returns.result import Failure, Success

from storefront_checkout.core.domain.model.address import DeliveryAddress
from storefront_checkout.core.domain.model.cart import (
    CartLineItem,
    FulfillmentType,
    ShopCapability,
)
from storefront_checkout.core.domain.model.checkout import GuestContact
from storefront_checkout.core.domain.model.settlement import SettlementMode
from storefront_checkout.core.ports.inbound.checkout import (
    CheckoutUseCase,
    StartCheckoutCommand,
    SubmitCommand,
)


def run_cli(usecase: CheckoutUseCase, raw: str) -> int:
    """
    raw: JSON string.
    Example:
      {"user_id":"u-1","mode":"AUTO",
       "address":{"street_address":"12 Main St","city":"Springfield","country":"United States"},
       "items":[{"product_id":"p-1","shop_id":"shop-1","unit_price":"18.50","quantity":2}]}
    """
    try:
        payload = json.loads(raw)
        cmd = _parse_command(payload)
        mode = SettlementMode(str(payload.get("mode", "CARD")).upper())
    except Exception as e:  # noqa: BLE001
        print(f"invalid_input: {e}")
        return 2

    started = usecase.start_checkout(cmd)
    if isinstance(started, Failure):
        print("[ng]", str(started.failure()))
        return 1
    checkout_id = started.unwrap().checkout_id.value

    quoted = usecase.refresh_quote(checkout_id)
    if isinstance(quoted, Failure):
        print("[ng]", str(quoted.failure()))
        return 1
    state = quoted.unwrap()
    if state.quote is None or state.error is not None:
        print("[ng]", state.phase.value, state.blocking_reason)
        return 1

    result = usecase.submit(SubmitCommand(checkout_id=checkout_id, mode=mode))

    if isinstance(result, Success):
        settlement = result.unwrap()
        print(
            "[ok]",
            {
                "checkout_id": checkout_id,
                "total": str(state.quote.total.amount),
                "currency": state.quote.currency,
                "settlement": type(settlement).__name__,
                **{k: _plain(v) for k, v in vars(settlement).items()},
            },
        )
        return 0

    err = result.failure()
    print("[ng]", str(err))
    return 1


def _plain(value: Any) -> Any:
    amount = getattr(value, "amount", None)
    return str(amount) if amount is not None else value


def _parse_command(payload: dict[str, Any]) -> StartCheckoutCommand:
    items = [
        CartLineItem(
            product_id=x.get("product_id"),
            variant_id=int(x["variant_id"]) if x.get("variant_id") is not None else None,
            shop_id=x.get("shop_id"),
            shop_name=str(x.get("shop_name", "")),
            capability=ShopCapability(x.get("capability", ShopCapability.FULL_ECOMMERCE.value)),
            quantity=int(x["quantity"]),
            unit_price=Decimal(str(x["unit_price"])),
            weight=Decimal(str(x.get("weight", "0"))),
            name=str(x.get("name", "")),
        )
        for x in payload.get("items", [])
    ]
    address = payload.get("address")
    guest = payload.get("guest")
    return StartCheckoutCommand(
        items=items,
        user_id=payload.get("user_id"),
        guest=GuestContact(**guest) if guest else None,
        address=DeliveryAddress(**address) if address else None,
        preferences={
            shop_id: FulfillmentType(choice)
            for shop_id, choice in payload.get("preferences", {}).items()
        },
    )
