from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import httpx
from returns.result import Result

from storefront_checkout.adapters.outbound.http_support import call_json, enum_or_none
from storefront_checkout.core.domain.model.cart import ShopCapability
from storefront_checkout.core.domain.model.errors import CheckoutError
from storefront_checkout.core.ports.outbound.coverage import (
    CountryCoverage,
    CoveragePage,
    CoverageShop,
    DeliveryCoverageGateway,
)


@dataclass(frozen=True)
class HttpDeliveryCoverageGateway(DeliveryCoverageGateway):
    client: httpx.Client

    def countries_with_delivery(self) -> Result[Sequence[CountryCoverage], CheckoutError]:
        return call_json(self.client, "GET", "/shops/delivery/countries").map(
            lambda body: tuple(
                CountryCoverage(
                    country=str(c.get("country") or ""),
                    shop_count=int(c.get("shopCount") or 0),
                    shops=tuple(_shop_from_wire(s) for s in c.get("shops") or ()),
                )
                for c in body or ()
            )
        )

    def shops_delivering_to(
        self, country: str, page: int = 0, size: int = 10, search: str | None = None
    ) -> Result[CoveragePage, CheckoutError]:
        params: dict[str, Any] = {"page": page, "size": size}
        if search:
            params["search"] = search
        return call_json(
            self.client, "GET", f"/shops/delivery/countries/{country}/shops", params=params
        ).map(
            lambda body: CoveragePage(
                shops=tuple(_shop_from_wire(s) for s in (body or {}).get("content") or ()),
                page=int((body or {}).get("number") or page),
                size=int((body or {}).get("size") or size),
                total=int((body or {}).get("totalElements") or 0),
            )
        )


def _shop_from_wire(raw: Mapping[str, Any]) -> CoverageShop:
    capability = enum_or_none(ShopCapability, raw.get("capability"))
    return CoverageShop(
        shop_id=str(raw.get("shopId") or ""),
        shop_name=str(raw.get("shopName") or ""),
        capability=capability or ShopCapability.FULL_ECOMMERCE,
        shop_slug=str(raw.get("shopSlug") or ""),
    )
