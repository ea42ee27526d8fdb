from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union
from urllib.parse import parse_qs, urlsplit

from storefront_checkout.core.domain.model.money import Money


class SettlementMode(str, Enum):
    CARD = "CARD"
    POINTS = "POINTS"
    AUTO = "AUTO"


@dataclass(frozen=True)
class CardRedirect:
    """Card session created; the shopper continues at `session_handle`."""

    session_handle: str

    def is_local(self) -> bool:
        # mock sessions come back as a relative path instead of a gateway URL
        return self.session_handle.startswith("/")

    def belongs_to(self, session_id: str) -> bool:
        """Whether `session_id` is the session this redirect sends the shopper to."""
        return bool(session_id) and session_id == session_id_of(self.session_handle)


def session_id_of(handle: str) -> str | None:
    """Session id carried by a redirect handle.

    Mock handles pass it as a `session_id` query parameter; gateway URLs end
    with it as the last path segment.
    """
    parts = urlsplit(handle)
    ids = parse_qs(parts.query).get("session_id")
    if ids:
        return ids[0]
    segments = [s for s in parts.path.split("/") if s]
    return segments[-1] if segments else None


@dataclass(frozen=True)
class PointsSettled:
    order_id: str
    order_number: str | None
    points_used: int
    points_value: Money


@dataclass(frozen=True)
class HybridRedirect:
    """Points leg applied; card leg pending at `session_handle`."""

    order_id: str
    session_handle: str
    points_used: int
    points_value: Money
    remaining_to_pay: Money


@dataclass(frozen=True)
class HybridCompleted:
    order_id: str
    order_number: str | None
    points_used: int
    points_value: Money


@dataclass(frozen=True)
class CardVerified:
    session_id: str
    order_id: str | None = None
    order_number: str | None = None


SettlementResult = Union[CardRedirect, PointsSettled, HybridRedirect, HybridCompleted, CardVerified]


def is_final(result: SettlementResult) -> bool:
    """Whether the order is settled once this result is known."""
    return isinstance(result, (PointsSettled, HybridCompleted, CardVerified))
