"""Outbound order requests and venue receipts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

Side = Literal["long", "short"]


def opposite(side: Side) -> Side:
    return "short" if side == "long" else "long"


@dataclass(frozen=True, slots=True)
class MarketRef:
    """Opaque handle for the venue market used to trade one side."""

    symbol: str
    side: Side


@dataclass(frozen=True, slots=True)
class OpenOrder:
    """Request to open a new leveraged position."""

    side: Side
    notional_usd: float
    collateral_usd: float
    leverage: float

    @property
    def reduce_only(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class CloseOrder:
    """Request to fully close the existing position."""

    side: Side
    size_usd: float
    reason: str

    @property
    def reduce_only(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Receipt:
    """Outcome reported by the execution collaborator."""

    accepted: bool
    reference: Optional[str] = None
    reason: Optional[str] = None


__all__ = ["CloseOrder", "MarketRef", "OpenOrder", "Receipt", "Side", "opposite"]
