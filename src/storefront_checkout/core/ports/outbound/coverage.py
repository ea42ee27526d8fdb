from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from returns.result import Result

from storefront_checkout.core.domain.model.cart import ShopCapability
from storefront_checkout.core.domain.model.errors import CheckoutError


@dataclass(frozen=True)
class CoverageShop:
    shop_id: str
    shop_name: str
    capability: ShopCapability
    shop_slug: str = ""


@dataclass(frozen=True)
class CountryCoverage:
    country: str
    shop_count: int
    shops: Sequence[CoverageShop] = ()


@dataclass(frozen=True)
class CoveragePage:
    shops: Sequence[CoverageShop]
    page: int
    size: int
    total: int


class DeliveryCoverageGateway(Protocol):
    def countries_with_delivery(self) -> Result[Sequence[CountryCoverage], CheckoutError]: ...

    def shops_delivering_to(
        self, country: str, page: int = 0, size: int = 10, search: str | None = None
    ) -> Result[CoveragePage, CheckoutError]: ...
