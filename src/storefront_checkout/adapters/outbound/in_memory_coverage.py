from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Sequence

from returns.result import Result, Success

from storefront_checkout.core.domain.model.errors import CheckoutError
from storefront_checkout.core.ports.outbound.coverage import (
    CountryCoverage,
    CoveragePage,
    CoverageShop,
    DeliveryCoverageGateway,
)


@dataclass
class InMemoryDeliveryCoverage(DeliveryCoverageGateway):
    shops_by_country: Dict[str, Sequence[CoverageShop]] = field(default_factory=dict)

    def countries_with_delivery(self) -> Result[Sequence[CountryCoverage], CheckoutError]:
        return Success(
            tuple(
                CountryCoverage(country=country, shop_count=len(shops), shops=tuple(shops))
                for country, shops in sorted(self.shops_by_country.items())
                if shops
            )
        )

    def shops_delivering_to(
        self, country: str, page: int = 0, size: int = 10, search: str | None = None
    ) -> Result[CoveragePage, CheckoutError]:
        shops = list(self._shops_for(country))
        if search:
            needle = search.strip().lower()
            shops = [s for s in shops if needle in s.shop_name.lower()]
        start = page * size
        return Success(
            CoveragePage(shops=tuple(shops[start : start + size]), page=page, size=size, total=len(shops))
        )

    def _shops_for(self, country: str) -> Sequence[CoverageShop]:
        for name, shops in self.shops_by_country.items():
            if name.lower() == country.lower():
                return shops
        return ()
