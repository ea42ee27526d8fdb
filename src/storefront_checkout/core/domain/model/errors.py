from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class CheckoutError(Exception):
    message: str

    def __str__(self) -> str:  # pragma: no cover
        return self.message


# ---- precondition / usage errors ---------------------------------------------


@dataclass(frozen=True)
class ValidationError(CheckoutError):
    pass


@dataclass(frozen=True)
class InvalidCartError(ValidationError):
    index: int | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.index is None:
            return f"invalid_cart: {self.message}"
        return f"invalid_cart: item[{self.index}] {self.message}"


@dataclass(frozen=True)
class AddressIncompleteError(ValidationError):
    missing: tuple[str, ...] = ()

    def __str__(self) -> str:  # pragma: no cover
        return f"address_incomplete: {', '.join(self.missing)} ({self.message})"


@dataclass(frozen=True)
class NotReadyError(CheckoutError):
    phase: str = ""

    def __str__(self) -> str:  # pragma: no cover
        return f"not_ready: phase={self.phase} ({self.message})"


@dataclass(frozen=True)
class SubmissionInProgress(CheckoutError):
    pass


@dataclass(frozen=True)
class StaleQuoteDropped(CheckoutError):
    """A quote response arrived for inputs that have since changed."""


@dataclass(frozen=True)
class SessionNotFound(CheckoutError):
    checkout_id: str = ""

    def __str__(self) -> str:  # pragma: no cover
        return f"checkout_not_found: {self.checkout_id} ({self.message})"


# ---- raw collaborator failure ------------------------------------------------


@dataclass(frozen=True)
class CollaboratorFailure(CheckoutError):
    """What a collaborator said, before any interpretation."""

    code: str | None = None
    details: str | None = None
    status: int | None = None

    def __str__(self) -> str:  # pragma: no cover
        return f"collaborator_failure: code={self.code} status={self.status} ({self.message})"


# ---- pricing failures --------------------------------------------------------


@dataclass(frozen=True)
class PricingFailure(CheckoutError):
    pass


@dataclass(frozen=True)
class AddressUnservedCountry(PricingFailure):
    pass


@dataclass(frozen=True)
class GeoValidationFailed(PricingFailure):
    pass


@dataclass(frozen=True)
class CapabilityRejected(PricingFailure):
    pass


@dataclass(frozen=True)
class HybridChoiceRequired(PricingFailure):
    shop_ids: tuple[str, ...] = ()

    def __str__(self) -> str:  # pragma: no cover
        return f"hybrid_choice_required: {', '.join(self.shop_ids)} ({self.message})"


@dataclass(frozen=True)
class StockUnavailable(PricingFailure):
    details: str = ""


@dataclass(frozen=True)
class PricingUnknown(PricingFailure):
    code: str | None = None


# ---- settlement failures -----------------------------------------------------


@dataclass(frozen=True)
class SettlementFailed(CheckoutError):
    leg: str = "unknown"
    cause: CheckoutError | None = None

    def __str__(self) -> str:  # pragma: no cover
        return f"settlement_failed: leg={self.leg} ({self.message})"


@dataclass(frozen=True)
class HybridCompletionFailed(SettlementFailed):
    """Card leg was paid but the order could not be finalized."""

    order_id: str = ""
    session_handle: str = ""

    def __str__(self) -> str:  # pragma: no cover
        return f"hybrid_completion_failed: order={self.order_id} ({self.message})"


# ---- classified taxonomy (consumed by the presentation layer) ----------------


class NextStep(str, Enum):
    FIX_ADDRESS = "fix_address"
    BACK_TO_CART = "back_to_cart"
    PICK_FULFILLMENT = "pick_fulfillment"
    REMOVE_ITEM = "remove_item"
    LOG_IN = "log_in"
    RETRY = "retry"


@dataclass(frozen=True)
class StockShortage:
    item_name: str
    available: int | None = None


@dataclass(frozen=True)
class ClassifiedError(CheckoutError):
    next_step: NextStep = NextStep.RETRY


@dataclass(frozen=True)
class AddressRejected(ClassifiedError):
    next_step: NextStep = NextStep.FIX_ADDRESS
    clears_region: bool = True


@dataclass(frozen=True)
class CapabilityConflict(ClassifiedError):
    next_step: NextStep = NextStep.BACK_TO_CART


@dataclass(frozen=True)
class FulfillmentChoiceRequired(ClassifiedError):
    next_step: NextStep = NextStep.PICK_FULFILLMENT
    shop_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class StockConflict(ClassifiedError):
    next_step: NextStep = NextStep.REMOVE_ITEM
    shortages: tuple[StockShortage, ...] = ()


@dataclass(frozen=True)
class AuthRequired(ClassifiedError):
    next_step: NextStep = NextStep.LOG_IN


@dataclass(frozen=True)
class InsufficientPoints(ClassifiedError):
    next_step: NextStep = NextStep.RETRY


@dataclass(frozen=True)
class ItemsChangedConcurrently(ClassifiedError):
    next_step: NextStep = NextStep.BACK_TO_CART


@dataclass(frozen=True)
class Unknown(ClassifiedError):
    next_step: NextStep = NextStep.RETRY
