"""Outbound order contract shared with the execution collaborator."""

from .types import CloseOrder, MarketRef, OpenOrder, Receipt, Side, opposite

__all__ = [
    "CloseOrder",
    "MarketRef",
    "OpenOrder",
    "Receipt",
    "Side",
    "opposite",
]
