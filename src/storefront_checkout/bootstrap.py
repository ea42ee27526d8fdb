from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from storefront_checkout.adapters.outbound.dummy_pricing import DummyPricingGateway
from storefront_checkout.adapters.outbound.dummy_settlement import DummySettlementGateway
from storefront_checkout.adapters.outbound.http_coverage import HttpDeliveryCoverageGateway
from storefront_checkout.adapters.outbound.http_eligibility import HttpEligibilityGateway
from storefront_checkout.adapters.outbound.http_pricing import HttpPricingGateway
from storefront_checkout.adapters.outbound.http_settlement import HttpSettlementGateway
from storefront_checkout.adapters.outbound.http_support import build_client
from storefront_checkout.adapters.outbound.in_memory_coverage import InMemoryDeliveryCoverage
from storefront_checkout.adapters.outbound.in_memory_points import InMemoryPointsLedger
from storefront_checkout.adapters.outbound.in_memory_sessions import (
    InMemoryCheckoutSessionRepository,
)
from storefront_checkout.adapters.outbound.logging_events import LoggingEventPublisher
from storefront_checkout.config import Settings, get_settings
from storefront_checkout.core.domain.model.cart import ShopCapability
from storefront_checkout.core.domain.service.checkout_service import (
    CheckoutDeps,
    CheckoutService,
)
from storefront_checkout.core.domain.service.eligibility_client import PointsEligibilityClient
from storefront_checkout.core.domain.service.pricing_client import PricingClient
from storefront_checkout.core.domain.service.settlement_dispatcher import SettlementDispatcher
from storefront_checkout.core.ports.outbound.coverage import CoverageShop, DeliveryCoverageGateway
from storefront_checkout.core.ports.outbound.eligibility import EligibilityGateway
from storefront_checkout.core.ports.outbound.pricing import PricingGateway
from storefront_checkout.core.ports.outbound.scheduler import Scheduler
from storefront_checkout.core.ports.outbound.settlement import SettlementGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UseCases:
    checkout: CheckoutService


@dataclass(frozen=True)
class _Collaborators:
    pricing: PricingGateway
    eligibility: EligibilityGateway
    settlement: SettlementGateway
    coverage: DeliveryCoverageGateway


def build_usecases(
    settings: Settings | None = None,
    scheduler: Scheduler | None = None,
    transport: httpx.BaseTransport | None = None,
) -> UseCases:
    settings = settings or get_settings()
    if settings.use_dummy_collaborators:
        collaborators = _dummy_collaborators(settings)
    else:
        collaborators = _http_collaborators(settings, transport)
    logger.info(
        "checkout wired (collaborators=%s, auto_quote=%s)",
        "dummy" if settings.use_dummy_collaborators else settings.api_base_url,
        scheduler is not None,
    )

    dispatcher = SettlementDispatcher(
        settlement=collaborators.settlement,
        eligibility=PointsEligibilityClient(collaborators.eligibility),
        point_unit_value=settings.default_point_unit_value,
        epsilon=settings.points_epsilon,
    )
    checkout = CheckoutService(
        CheckoutDeps(
            pricing=PricingClient(collaborators.pricing, currency=settings.currency),
            dispatcher=dispatcher,
            sessions=InMemoryCheckoutSessionRepository(
                idle_timeout_seconds=settings.session_idle_timeout_seconds,
                finished_limit=settings.finished_checkouts_kept,
            ),
            coverage=collaborators.coverage,
            events=LoggingEventPublisher(),
            scheduler=scheduler,
            quiet_period_seconds=settings.quote_quiet_period_seconds,
        )
    )
    return UseCases(checkout=checkout)


def build_checkout_usecase() -> CheckoutService:
    # CLI: no scheduler, quotes are refreshed explicitly
    return build_usecases().checkout


def _dummy_collaborators(settings: Settings) -> _Collaborators:
    pricing = DummyPricingGateway(
        unserved_countries={"Antarctica"},
        stock_by_product={"p-limited": 1},
        currency=settings.currency,
    )
    ledger = InMemoryPointsLedger(
        balances={"u-1": {"shop-1": 5_000, "shop-2": 500}},
        point_value=settings.default_point_unit_value,
        currency=settings.currency,
    )
    settlement = DummySettlementGateway(pricing=pricing, ledger=ledger, decline_users={"u-declined"})
    coverage = InMemoryDeliveryCoverage(
        shops_by_country={
            "United States": (
                CoverageShop("shop-1", "Corner Bakery", ShopCapability.FULL_ECOMMERCE, "corner-bakery"),
                CoverageShop("shop-2", "Green Grocer", ShopCapability.HYBRID, "green-grocer"),
            ),
            "Canada": (
                CoverageShop("shop-2", "Green Grocer", ShopCapability.HYBRID, "green-grocer"),
            ),
        }
    )
    return _Collaborators(pricing=pricing, eligibility=ledger, settlement=settlement, coverage=coverage)


def _http_collaborators(
    settings: Settings, transport: httpx.BaseTransport | None
) -> _Collaborators:
    client = build_client(
        settings.api_base_url,
        timeout=settings.http_timeout_seconds,
        connect_timeout=settings.http_connect_timeout_seconds,
        api_token=settings.api_token,
        transport=transport,
    )
    return _Collaborators(
        pricing=HttpPricingGateway(client),
        eligibility=HttpEligibilityGateway(client, currency=settings.currency),
        settlement=HttpSettlementGateway(client, currency=settings.currency),
        coverage=HttpDeliveryCoverageGateway(client),
    )
