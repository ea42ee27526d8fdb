from __future__ import annotations

import logging
from dataclasses import dataclass

from returns.result import Failure, Result, Success

from storefront_checkout.core.domain.model.checkout import CheckoutPhaseChanged
from storefront_checkout.core.domain.model.errors import CheckoutError, CollaboratorFailure
from storefront_checkout.core.ports.outbound.events import CheckoutEventPublisher

logger = logging.getLogger("storefront_checkout.events")


@dataclass
class LoggingEventPublisher(CheckoutEventPublisher):
    fail: bool = False

    def publish(self, event: CheckoutPhaseChanged) -> Result[None, CheckoutError]:
        if self.fail:
            return Failure(CollaboratorFailure(message="publisher is down", code="PUBLISH_ERROR"))
        logger.info(
            "checkout_phase_changed id=%s %s -> %s reason=%s",
            event.checkout_id.value,
            event.previous.value if event.previous else "-",
            event.current.value,
            event.reason or "",
        )
        return Success(None)
