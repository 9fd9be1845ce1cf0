"""Core interfaces defining contracts for the external collaborators."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing only
    from services.execution.types import CloseOrder, MarketRef, OpenOrder, Receipt, Side
    from services.market.types import MarketSnapshot, PricePoint
    from services.risk.state import PositionQuery


class MarketDataProvider(ABC):
    """Interface for retrieving the spot snapshot and recent history."""

    @abstractmethod
    async def get_snapshot(self) -> "MarketSnapshot":
        """Return the current spot snapshot for the traded instrument."""

    async def get_history(self) -> tuple[Sequence["PricePoint"], Sequence["PricePoint"]]:
        """Return hourly ``(prices, volumes)``; best-effort, may be empty."""

        return (), ()


class PositionSource(ABC):
    """Interface for querying the venue's open positions."""

    @abstractmethod
    async def open_positions(self) -> "Optional[List[Mapping[str, Any]] | PositionQuery]":
        """Return raw open position records, or ``None`` when the query failed.

        Raising ``VenueQueryUncertain`` has the same effect as returning ``None``.
        Sources that already know the answer may return a ``PositionQuery``.
        """


class ForecastSource(ABC):
    """Interface for the directional forecast oracle."""

    @abstractmethod
    async def latest(self, context: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
        """Return the most recent raw forecast record.

        ``context`` carries the tick's snapshot and indicators for oracles that
        forecast on demand.
        """


class ExecutionVenue(ABC):
    """Interface for the order execution collaborator."""

    @abstractmethod
    async def available_collateral_usd(self, side: "Side") -> float:
        """Return own funds usable as collateral for ``side``, in USD."""

    @abstractmethod
    async def resolve_market(self, side: "Side") -> "MarketRef":
        """Return the market reference used to trade ``side``."""

    @abstractmethod
    async def submit_order(self, market: "MarketRef", order: "OpenOrder | CloseOrder") -> "Receipt":
        """Submit ``order`` and return the venue receipt."""
