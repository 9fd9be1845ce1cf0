"""Decode raw market payloads into typed snapshot and series values."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from typing import Any, List, Mapping, Optional

from core.errors import InputValidationError
from services.market.types import MarketSnapshot, PricePoint

log = logging.getLogger("perps.market")


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    return num if math.isfinite(num) else None


def require_number(value: Any, label: str) -> float:
    """Coerce ``value`` (number or numeric string) or raise ``InputValidationError``."""

    num = _to_float(value)
    if num is None:
        raise InputValidationError(f"Missing or invalid numeric value for {label}")
    return num


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def parse_snapshot(payload: Mapping[str, Any]) -> MarketSnapshot:
    """Build a ``MarketSnapshot`` from a raw spot payload.

    ``price``, ``change24hPct`` and ``volume24h`` are required. The 24h
    high/low bounds are optional and silently dropped when not finite.
    """

    if not isinstance(payload, Mapping):
        raise InputValidationError("market snapshot must be a mapping")
    price = require_number(_first(payload, "price", "current_price"), "spot.price")
    change = require_number(
        _first(payload, "change24hPct", "change_24h_pct", "price_change_percentage_24h"),
        "spot.change24hPct",
    )
    volume = require_number(_first(payload, "volume24h", "volume_24h", "total_volume"), "spot.volume24h")
    high = _to_float(_first(payload, "high24h", "high_24h"))
    low = _to_float(_first(payload, "low24h", "low_24h"))
    return MarketSnapshot(
        price=price,
        change_24h_pct=change,
        volume_24h=volume,
        high_24h=high,
        low_24h=low,
    )


def parse_series(points: Optional[Iterable[Any]]) -> List[PricePoint]:
    """Decode ``[[ts_ms, value], ...]`` history, dropping malformed samples.

    History is best-effort: a missing or malformed payload yields an empty list.
    """

    if points is None:
        return []
    if isinstance(points, (str, bytes, Mapping)) or not isinstance(points, Iterable):
        log.warning("market.history.malformed", extra={"type": type(points).__name__})
        return []
    series: List[PricePoint] = []
    dropped = 0
    for point in points:
        if not isinstance(point, (list, tuple)) or len(point) < 2:
            dropped += 1
            continue
        ts = _to_float(point[0])
        value = _to_float(point[1])
        if ts is None or value is None:
            dropped += 1
            continue
        series.append(PricePoint(ts_ms=int(ts), value=value))
    if dropped:
        log.debug("market.history.dropped", extra={"dropped": dropped, "kept": len(series)})
    return series


__all__ = ["parse_series", "parse_snapshot", "require_number"]
