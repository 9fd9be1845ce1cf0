"""Indicator engine turning spot and hourly history into an indicator bundle."""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence

from core.errors import InsufficientDataError
from services.market.types import IndicatorBundle, MarketSnapshot, PricePoint, TrendDirection

log = logging.getLogger("perps.indicators")

Number = float

MIN_HISTORY_POINTS = 10
HISTORY_WINDOW = 48
EMA_SHORT_PERIOD = 10
EMA_LONG_PERIOD = 50
TREND_BAND = 0.002
DEGRADED_TREND_PCT = 0.2
STRENGTH_LOOKBACK = 25
VOLATILITY_WINDOW = 24
VOLUME_WINDOW = 24


def ema(values: Sequence[Number], period: int) -> Number:
    """Exponential moving average seeded with the first value."""

    if not values:
        raise ValueError("Cannot compute EMA of empty series")
    if period <= 0:
        raise ValueError("EMA period must be positive")
    k = 2.0 / (period + 1)
    result = float(values[0])
    for value in values[1:]:
        result = value * k + result * (1.0 - k)
    return result


def classify_trend(ema_short: Number, ema_long: Number) -> TrendDirection:
    """Classify the EMA pair with a 0.2% hysteresis band around equality."""

    if ema_short > ema_long * (1.0 + TREND_BAND):
        return "UP"
    if ema_short < ema_long * (1.0 - TREND_BAND):
        return "DOWN"
    return "RANGE"


def pct_returns(values: Sequence[Number]) -> List[Number]:
    """Percent returns between consecutive values, skipping non-positive bases."""

    returns: List[Number] = []
    for prev, curr in zip(values, values[1:]):
        if prev <= 0:
            continue
        returns.append((curr - prev) / prev * 100.0)
    return returns


def return_volatility_pct(values: Sequence[Number]) -> Number:
    """Population standard deviation of percent returns."""

    returns = pct_returns(values)
    if not returns:
        return 0.0
    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / len(returns)
    return math.sqrt(variance)


def _finite_values(points: Sequence[PricePoint]) -> List[Number]:
    return [float(p.value) for p in points if math.isfinite(p.value)]


def _trend_strength(closes: Sequence[Number], fallback: Number) -> Number:
    if len(closes) < STRENGTH_LOOKBACK:
        return fallback
    base = closes[-STRENGTH_LOOKBACK]
    if base <= 0:
        return fallback
    return (closes[-1] - base) / base * 100.0


def _volume_trend(volumes: Sequence[PricePoint]) -> Optional[Number]:
    values = _finite_values(volumes)
    if len(values) < 2 * VOLUME_WINDOW:
        return None
    recent = sum(values[-VOLUME_WINDOW:])
    previous = sum(values[-2 * VOLUME_WINDOW : -VOLUME_WINDOW])
    if previous <= 0:
        return None
    return (recent - previous) / previous * 100.0


def _full_path(
    snapshot: MarketSnapshot, closes: Sequence[Number], volumes: Sequence[PricePoint]
) -> IndicatorBundle:
    if len(closes) < MIN_HISTORY_POINTS:
        raise InsufficientDataError(
            f"need {MIN_HISTORY_POINTS} closes for windowed indicators, have {len(closes)}"
        )
    window = list(closes[-HISTORY_WINDOW:])
    ema_short = ema(window, min(EMA_SHORT_PERIOD, len(window)))
    ema_long = ema(window, min(EMA_LONG_PERIOD, len(window)))
    return IndicatorBundle(
        ema_short=ema_short,
        ema_long=ema_long,
        trend_direction=classify_trend(ema_short, ema_long),
        trend_strength_pct=_trend_strength(closes, snapshot.change_24h_pct),
        volatility_pct=return_volatility_pct(closes[-VOLATILITY_WINDOW:]),
        volume_trend_pct=_volume_trend(volumes),
    )


def _degraded_path(snapshot: MarketSnapshot) -> IndicatorBundle:
    change = snapshot.change_24h_pct
    if change > DEGRADED_TREND_PCT:
        direction: TrendDirection = "UP"
    elif change < -DEGRADED_TREND_PCT:
        direction = "DOWN"
    else:
        direction = "RANGE"

    if snapshot.high_24h is not None and snapshot.low_24h is not None:
        # half the daily range as a rough volatility proxy
        volatility = (snapshot.high_24h - snapshot.low_24h) / snapshot.price * 100.0 / 2.0
    else:
        volatility = abs(change) * 0.5

    return IndicatorBundle(
        ema_short=snapshot.price,
        ema_long=snapshot.price,
        trend_direction=direction,
        trend_strength_pct=change,
        volatility_pct=volatility,
        volume_trend_pct=None,
        degraded=True,
    )


def compute_indicators(
    snapshot: MarketSnapshot,
    prices: Sequence[PricePoint] = (),
    volumes: Sequence[PricePoint] = (),
) -> IndicatorBundle:
    """Derive the indicator bundle, falling back to spot-only values on short history."""

    closes = _finite_values(prices)
    try:
        return _full_path(snapshot, closes, volumes)
    except InsufficientDataError as exc:
        log.warning("indicators.degraded", extra={"reason": str(exc), "samples": len(closes)})
        return _degraded_path(snapshot)


__all__ = [
    "classify_trend",
    "compute_indicators",
    "ema",
    "pct_returns",
    "return_volatility_pct",
]
