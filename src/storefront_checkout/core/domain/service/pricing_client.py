from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

from returns.result import Result

from storefront_checkout.core.domain.model.address import DeliveryAddress
from storefront_checkout.core.domain.model.cart import ShopGroup
from storefront_checkout.core.domain.model.errors import CheckoutError
from storefront_checkout.core.domain.model.money import DEFAULT_CURRENCY, fold_money, now_utc
from storefront_checkout.core.domain.model.quote import PreferencesSnapshot, PriceQuote
from storefront_checkout.core.domain.service.error_classifier import pricing_failure_from
from storefront_checkout.core.ports.outbound.pricing import (
    PaymentSummary,
    PricingGateway,
    QuoteRequest,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricingClient:
    gateway: PricingGateway
    currency: str = DEFAULT_CURRENCY
    clock: Callable[[], datetime] = field(default=now_utc)

    def quote(
        self,
        address: DeliveryAddress,
        groups: Sequence[ShopGroup],
        user_id: str | None = None,
    ) -> Result[PriceQuote, CheckoutError]:
        """Price the cart for `address` with the preferences recorded on `groups`.

        Stateless and free of side effects, so safe to retry. Failures come
        back as one of the pricing failure types.
        """
        groups = tuple(groups)
        snapshot = PreferencesSnapshot.capture(address, groups)
        request = QuoteRequest(
            address=address,
            lines=tuple(item for g in groups for item in g.items),
            order_value=fold_money((g.subtotal(self.currency) for g in groups), self.currency),
            preferences=snapshot.preferences,
            user_id=user_id,
        )
        logger.debug(
            "requesting quote shops=%s preferences=%s",
            [g.shop_id for g in groups],
            dict(snapshot.preferences),
        )
        result = self.gateway.payment_summary(request)
        return result.map(lambda summary: self._to_quote(summary, snapshot)).alt(
            _log_and_interpret
        )

    def _to_quote(self, summary: PaymentSummary, snapshot: PreferencesSnapshot) -> PriceQuote:
        return PriceQuote(
            shop_summaries=tuple(summary.shop_summaries),
            subtotal=summary.subtotal,
            discount=summary.discount,
            shipping=summary.shipping,
            tax=summary.tax,
            total=summary.total,
            reward_points=summary.reward_points,
            fetched_at=self.clock(),
            snapshot=snapshot,
            currency=summary.currency,
        )


def _log_and_interpret(error: CheckoutError) -> CheckoutError:
    failure = pricing_failure_from(error)
    logger.warning("quote failed: %s -> %s", error, type(failure).__name__)
    return failure
