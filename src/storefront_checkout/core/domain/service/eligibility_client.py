from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

from returns.result import Result

from storefront_checkout.core.domain.model.cart import ShopGroup
from storefront_checkout.core.domain.model.errors import CheckoutError
from storefront_checkout.core.domain.model.points import ShopPointsEligibility
from storefront_checkout.core.ports.outbound.eligibility import EligibilityGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PointsEligibilityClient:
    """Read-only snapshot of the buyer's points, taken right before settlement.

    Nothing is cached: balances move between checkout attempts.
    """

    gateway: EligibilityGateway

    def check(
        self, user_id: str, groups: Sequence[ShopGroup]
    ) -> Result[Tuple[ShopPointsEligibility, ...], CheckoutError]:
        lines = tuple(item for g in groups for item in g.items)
        result = self.gateway.check_eligibility(user_id, lines).map(tuple)
        return result.alt(_log_failure)


def _log_failure(error: CheckoutError) -> CheckoutError:
    logger.warning("points eligibility check failed: %s", error)
    return error
