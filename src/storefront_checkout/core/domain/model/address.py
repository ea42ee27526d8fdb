from __future__ import annotations

from dataclasses import dataclass, replace

REQUIRED_FIELDS = ("street_address", "city", "country")


@dataclass(frozen=True)
class DeliveryAddress:
    street_address: str = ""
    city: str = ""
    country: str = ""
    state: str = ""
    latitude: float | None = None
    longitude: float | None = None

    def missing_fields(self) -> tuple[str, ...]:
        return tuple(
            name for name in REQUIRED_FIELDS if not (getattr(self, name) or "").strip()
        )

    def is_complete(self) -> bool:
        return not self.missing_fields()

    def without_region(self) -> "DeliveryAddress":
        # unserved country: shopper must pick a whole new address
        return DeliveryAddress()

    def without_location(self) -> "DeliveryAddress":
        # road/geo rejection: keep the region, drop the point
        return replace(self, street_address="", latitude=None, longitude=None)
