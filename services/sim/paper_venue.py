"""In-memory venue for dry runs: holds one position and records orders."""

from __future__ import annotations

import itertools
import logging
import time
from typing import Any, Dict, List, Optional

from core.errors import ExecutionFailure
from core.interfaces import ExecutionVenue, PositionSource
from services.execution.types import CloseOrder, MarketRef, OpenOrder, Receipt, Side


class PaperVenue(PositionSource, ExecutionVenue):
    """Simulated single-slot venue reporting positions in the venue's raw format."""

    def __init__(
        self,
        *,
        symbol: str = "SOL-PERP",
        collateral_usd: float = 100.0,
        mark_price: Optional[float] = None,
    ) -> None:
        self.symbol = symbol
        self.collateral_usd = float(collateral_usd)
        self.mark_price = mark_price
        self.orders: List[OpenOrder | CloseOrder] = []
        self._position: Optional[Dict[str, Any]] = None
        self._ids = itertools.count(1)
        self.log = logging.getLogger("perps.paper-venue")

    def update_mark(self, price: float) -> None:
        self.mark_price = float(price)
        if self._position is not None:
            self._position["markPriceUsd"] = self.mark_price

    async def open_positions(self) -> List[Dict[str, Any]]:
        return [dict(self._position)] if self._position is not None else []

    async def available_collateral_usd(self, side: Side) -> float:
        return self.collateral_usd

    async def resolve_market(self, side: Side) -> MarketRef:
        return MarketRef(symbol=self.symbol, side=side)

    async def submit_order(self, market: MarketRef, order: OpenOrder | CloseOrder) -> Receipt:
        reference = f"paper-{next(self._ids)}"
        if isinstance(order, CloseOrder):
            if self._position is None or self._position["side"] != order.side:
                return Receipt(False, reason="no matching position")
            self.collateral_usd += float(self._position["collateralUsd"])
            self._position = None
        else:
            if self._position is not None:
                return Receipt(False, reason="position already open")
            if self.mark_price is None:
                raise ExecutionFailure("paper venue has no mark price")
            if order.collateral_usd > self.collateral_usd:
                return Receipt(False, reason="insufficient collateral")
            self.collateral_usd -= order.collateral_usd
            self._position = {
                "side": order.side,
                "entryPriceUsd": self.mark_price,
                "markPriceUsd": self.mark_price,
                "positionSizeUsd": order.notional_usd,
                "collateralUsd": order.collateral_usd,
                "createdAt": int(time.time() * 1000),
                "isClosed": False,
            }
        self.orders.append(order)
        self.log.info("paper.fill", extra={"reference": reference, "symbol": market.symbol, "side": order.side})
        return Receipt(True, reference=reference)


__all__ = ["PaperVenue"]
