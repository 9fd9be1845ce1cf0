"""Market data containers consumed by the indicator engine."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal, Optional

from core.errors import InputValidationError

TrendDirection = Literal["UP", "DOWN", "RANGE"]


def _finite(value: float, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InputValidationError(f"Missing or invalid numeric value for {label}")
    return float(value)


@dataclass(frozen=True, slots=True)
class MarketSnapshot:
    """Spot statistics for the traded instrument, produced once per tick."""

    price: float
    change_24h_pct: float
    volume_24h: float
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None

    def __post_init__(self) -> None:
        price = _finite(self.price, "snapshot.price")
        if price <= 0:
            raise InputValidationError("snapshot.price must be positive")
        _finite(self.change_24h_pct, "snapshot.change_24h_pct")
        if _finite(self.volume_24h, "snapshot.volume_24h") < 0:
            raise InputValidationError("snapshot.volume_24h must be non-negative")
        if self.high_24h is not None:
            _finite(self.high_24h, "snapshot.high_24h")
        if self.low_24h is not None:
            _finite(self.low_24h, "snapshot.low_24h")
        if self.high_24h is not None and self.low_24h is not None and self.high_24h < self.low_24h:
            raise InputValidationError("snapshot.high_24h must be >= snapshot.low_24h")


@dataclass(frozen=True, slots=True)
class PricePoint:
    """A single ``(timestamp, value)`` sample of a price or volume series."""

    ts_ms: int
    value: float


@dataclass(frozen=True, slots=True)
class IndicatorBundle:
    """Derived indicators for one tick. Never persisted."""

    ema_short: float
    ema_long: float
    trend_direction: TrendDirection
    trend_strength_pct: float
    volatility_pct: float
    volume_trend_pct: Optional[float] = None
    degraded: bool = False


__all__ = ["TrendDirection", "MarketSnapshot", "PricePoint", "IndicatorBundle"]
