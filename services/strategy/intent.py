"""Map a directional forecast to a sized trade intent."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from services.strategy.forecast import Forecast

TradeAction = Literal["OPEN_LONG", "OPEN_SHORT", "CLOSE", "DO_NOTHING"]

MIN_CONFIDENCE = 55.0
RISK_FRACTION = 0.3


@dataclass(frozen=True, slots=True)
class TradeIntent:
    """Ephemeral per-tick trading intent."""

    action: TradeAction
    risk_fraction: float
    note: Optional[str] = None

    @property
    def side(self) -> Optional[str]:
        if self.action == "OPEN_LONG":
            return "long"
        if self.action == "OPEN_SHORT":
            return "short"
        return None


def map_forecast_to_intent(
    forecast: Forecast,
    *,
    min_confidence: float = MIN_CONFIDENCE,
    risk_fraction: float = RISK_FRACTION,
) -> TradeIntent:
    if forecast.confidence < min_confidence:
        return TradeIntent("DO_NOTHING", 0.0, forecast.reasoning)
    if forecast.direction == "LONG":
        return TradeIntent("OPEN_LONG", risk_fraction, forecast.reasoning)
    if forecast.direction == "SHORT":
        return TradeIntent("OPEN_SHORT", risk_fraction, forecast.reasoning)
    return TradeIntent("DO_NOTHING", 0.0, forecast.reasoning)


__all__ = ["MIN_CONFIDENCE", "RISK_FRACTION", "TradeAction", "TradeIntent", "map_forecast_to_intent"]
