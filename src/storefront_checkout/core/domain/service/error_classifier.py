"""Interpretation of collaborator failures.

Two steps: `pricing_failure_from` turns a raw pricing failure into one of the
pricing failure types, and `classify` folds any failure into the closed set the
presentation layer renders (each carrying the next step to offer the shopper).
Explicit error codes win; message sniffing is only a fallback for responses
that do not carry a specific code.
"""
from __future__ import annotations

import re
from typing import Tuple

from storefront_checkout.core.domain.model.errors import (
    AddressIncompleteError,
    AddressRejected,
    AddressUnservedCountry,
    AuthRequired,
    CapabilityConflict,
    CapabilityRejected,
    CheckoutError,
    ClassifiedError,
    CollaboratorFailure,
    FulfillmentChoiceRequired,
    GeoValidationFailed,
    HybridChoiceRequired,
    InsufficientPoints,
    InvalidCartError,
    ItemsChangedConcurrently,
    PricingFailure,
    PricingUnknown,
    SettlementFailed,
    StockConflict,
    StockShortage,
    StockUnavailable,
    Unknown,
)

STOCK_CODES = frozenset(
    {
        "INSUFFICIENT_STOCK",
        "PRODUCT_NOT_AVAILABLE",
        "VARIANT_NOT_AVAILABLE",
        "PRODUCT_INACTIVE",
        "VARIANT_INACTIVE",
    }
)
ITEMS_CHANGED_CODES = frozenset(
    {"PRODUCT_NOT_FOUND", "VARIANT_NOT_FOUND", "CART_CHANGED", "ITEMS_CHANGED"}
)
CAPABILITY_CODES = frozenset({"CAPABILITY_REJECTED", "SHOP_CAPABILITY_NOT_SUPPORTED"})
CHOICE_CODES = frozenset({"HYBRID_CHOICE_REQUIRED", "FULFILLMENT_CHOICE_REQUIRED"})

_UNSERVED_MARKERS = ("don't deliver to", "do not deliver to")
_GEO_MARKERS = ("road", "pickup point")
_STOCK_MARKERS = ("not available", "out of stock", "insufficient stock")
_CAPABILITY_MARKERS = ("visualization_only", "visualization only", "display-only")

_NAME_RE = re.compile(r"(?:product|item)\s+['\"]([^'\"]+)['\"]", re.IGNORECASE)
_BARE_NAME_RE = re.compile(r"(?:product|item)\s+([\w\- ]+?)(?:\s+is\b|\.|:|,|$)", re.IGNORECASE)
_AVAILABLE_RE = re.compile(r"available(?:\s+stock)?\s*[:=]?\s*(\d+)", re.IGNORECASE)
_SHOP_IDS_RE = re.compile(r"shops?\s*[:=]\s*([\w\-, ]+)", re.IGNORECASE)


def pricing_failure_from(error: CheckoutError) -> PricingFailure:
    if isinstance(error, PricingFailure):
        return error
    if not isinstance(error, CollaboratorFailure):
        return PricingUnknown(message=error.message)

    code = (error.code or "").upper()
    text = _text_of(error)
    message = error.message or error.details or ""

    if code in CHOICE_CODES:
        return HybridChoiceRequired(message=message, shop_ids=_shop_ids_in(error.details))
    if code in CAPABILITY_CODES or _mentions(text, _CAPABILITY_MARKERS):
        return CapabilityRejected(message=message or "cart contains a display-only item")
    if code == "VALIDATION_ERROR":
        if _mentions(text, _UNSERVED_MARKERS):
            return AddressUnservedCountry(message=message or "We don't deliver to this country.")
        if _mentions(text, _GEO_MARKERS):
            return GeoValidationFailed(
                message=message or "Please select a pickup point on or near a road."
            )
        return PricingUnknown(message=message, code=code)
    if code in STOCK_CODES:
        return StockUnavailable(message=message, details=error.details or error.message)
    if code in ITEMS_CHANGED_CODES:
        return PricingUnknown(message=message, code=code)

    # INTERNAL_ERROR and code-less responses may still describe a stock shortage
    if _mentions(text, _STOCK_MARKERS):
        return StockUnavailable(message=message, details=error.details or error.message)
    return PricingUnknown(message=message, code=code or None)


def classify(error: CheckoutError) -> ClassifiedError:
    if isinstance(error, ClassifiedError):
        return error

    if isinstance(error, SettlementFailed):
        if error.cause is not None:
            return classify(error.cause)
        return Unknown(message=error.message)

    if isinstance(error, AddressUnservedCountry):
        return AddressRejected(message=error.message, clears_region=True)
    if isinstance(error, GeoValidationFailed):
        return AddressRejected(message=error.message, clears_region=False)
    if isinstance(error, AddressIncompleteError):
        return AddressRejected(message=error.message, clears_region=False)
    if isinstance(error, CapabilityRejected):
        return CapabilityConflict(message=error.message)
    if isinstance(error, HybridChoiceRequired):
        return FulfillmentChoiceRequired(message=error.message, shop_ids=error.shop_ids)
    if isinstance(error, StockUnavailable):
        return StockConflict(
            message=error.message or "Some items are no longer available.",
            shortages=parse_stock_details(error.details or error.message),
        )
    if isinstance(error, PricingUnknown):
        if error.code in ITEMS_CHANGED_CODES:
            return ItemsChangedConcurrently(message=error.message)
        return Unknown(message=error.message)
    if isinstance(error, InvalidCartError):
        return ItemsChangedConcurrently(message=str(error))

    if isinstance(error, CollaboratorFailure):
        return _classify_by_status(error)

    return Unknown(message=error.message)


def parse_stock_details(details: str | None) -> Tuple[StockShortage, ...]:
    """Best-effort split of "Product 'X' is not available. Available: 2; ..." text."""
    if not details:
        return ()
    shortages = []
    for fragment in re.split(r"[;\n]|\.\s+(?=(?:product|item)\b)", details, flags=re.IGNORECASE):
        fragment = fragment.strip()
        if not fragment:
            continue
        name_match = _NAME_RE.search(fragment) or _BARE_NAME_RE.search(fragment)
        if name_match is None:
            continue
        available_match = _AVAILABLE_RE.search(fragment)
        shortages.append(
            StockShortage(
                item_name=name_match.group(1).strip(),
                available=int(available_match.group(1)) if available_match else None,
            )
        )
    return tuple(shortages)


def _classify_by_status(error: CollaboratorFailure) -> ClassifiedError:
    code = (error.code or "").upper()
    if error.status == 401 or code in {"UNAUTHORIZED", "AUTH_REQUIRED"}:
        return AuthRequired(message=error.message or "Please log in to use points payment.")
    if error.status == 402 or code in {"INSUFFICIENT_POINTS"}:
        return InsufficientPoints(message=error.message or "Insufficient points.")
    if error.status == 409 and not code:
        return StockConflict(
            message=error.message or "Some items in your cart are no longer available.",
            shortages=parse_stock_details(error.details),
        )
    return classify(pricing_failure_from(error))


def _text_of(error: CollaboratorFailure) -> str:
    return f"{error.message or ''} {error.details or ''}".lower()


def _mentions(text: str, markers: Tuple[str, ...]) -> bool:
    return any(m in text for m in markers)


def _shop_ids_in(details: str | None) -> Tuple[str, ...]:
    if not details:
        return ()
    match = _SHOP_IDS_RE.search(details)
    if match is None:
        return ()
    return tuple(s.strip() for s in match.group(1).split(",") if s.strip())
