"""Forecast input contract and a file-backed forecast source."""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal, Mapping, Optional

import orjson

from core.errors import InputValidationError
from core.interfaces import ForecastSource

Direction = Literal["LONG", "SHORT"]

FORECAST_FIELDS = ("timestamp", "direction", "confidence", "targetPrice", "reasoning")


@dataclass(frozen=True, slots=True)
class Forecast:
    """Directional call produced by the external forecast oracle."""

    timestamp: str
    direction: Direction
    confidence: float
    target_price: float
    reasoning: str

    @property
    def issued_at(self) -> datetime:
        return _parse_iso(self.timestamp)


def _parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def parse_forecast(payload: Mapping[str, Any]) -> Forecast:
    """Validate a raw forecast record against the input contract."""

    if not isinstance(payload, Mapping):
        raise InputValidationError("forecast must be a JSON object")
    missing = [name for name in FORECAST_FIELDS if name not in payload]
    if missing:
        raise InputValidationError(f"forecast is missing required fields: {', '.join(missing)}")

    timestamp = payload["timestamp"]
    if not isinstance(timestamp, str):
        raise InputValidationError("forecast.timestamp must be an ISO-8601 string")
    try:
        _parse_iso(timestamp)
    except ValueError as exc:
        raise InputValidationError(f"forecast.timestamp is not ISO-8601: {timestamp!r}") from exc

    direction = payload["direction"]
    if direction not in ("LONG", "SHORT"):
        raise InputValidationError(f"forecast.direction must be LONG or SHORT, got {direction!r}")

    confidence = payload["confidence"]
    if not _is_number(confidence) or not 0 <= confidence <= 100:
        raise InputValidationError("forecast.confidence must be a number in [0, 100]")

    target = payload["targetPrice"]
    if not _is_number(target) or target <= 0:
        raise InputValidationError("forecast.targetPrice must be a positive number")

    reasoning = payload["reasoning"]
    if not isinstance(reasoning, str):
        raise InputValidationError("forecast.reasoning must be a string")

    return Forecast(
        timestamp=timestamp,
        direction=direction,
        confidence=float(confidence),
        target_price=float(target),
        reasoning=reasoning,
    )


class FileForecastSource(ForecastSource):
    """Read the latest forecast record from a JSON file written by the oracle."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _read(self) -> Mapping[str, Any]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError as exc:
            raise InputValidationError(f"forecast file not found: {self.path}") from exc
        try:
            payload = orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise InputValidationError(f"forecast file is not valid JSON: {self.path}") from exc
        if not isinstance(payload, dict):
            raise InputValidationError("forecast file must contain a JSON object")
        return payload

    async def latest(self, context: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
        return await asyncio.to_thread(self._read)


__all__ = ["Direction", "FileForecastSource", "Forecast", "parse_forecast"]
