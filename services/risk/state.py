"""Position snapshots read from the execution venue."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional

from services.execution.types import Side

log = logging.getLogger("perps.positions")

# Epoch values above this are treated as milliseconds, below as seconds.
_EPOCH_MS_THRESHOLD = 3_000_000_000

_ENTRY_KEYS = ("entryPriceUsd", "entryPrice", "avgEntryPriceUsd", "avgEntryPrice")
_MARK_KEYS = ("markPriceUsd", "indexPriceUsd", "oraclePriceUsd", "currentPriceUsd", "price")
_SIZE_KEYS = ("positionSizeUsd", "sizeUsd", "notionalUsd", "size")
_OPENED_KEYS = ("createdAt", "createdTs", "timestamp", "openedAt", "openTime")


@dataclass(frozen=True, slots=True)
class Position:
    """Lightweight snapshot of the single open position."""

    side: Side
    entry_price: Optional[float] = None
    mark_price: Optional[float] = None
    size_usd: Optional[float] = None
    opened_at_ms: Optional[int] = None


@dataclass(frozen=True, slots=True)
class PositionQuery:
    """Answer to "is a position open?" for one tick.

    ``confirmed`` is False when the venue could not answer reliably; a
    position may still be attached when it was obtained from another source.
    """

    confirmed: bool
    position: Optional[Position] = None

    @classmethod
    def flat(cls) -> "PositionQuery":
        return cls(confirmed=True)

    @classmethod
    def uncertain(cls, position: Optional[Position] = None) -> "PositionQuery":
        return cls(confirmed=False, position=position)


def _num_or_none(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            num = float(value)
        except ValueError:
            return None
        return num if math.isfinite(num) else None
    return None


def _first_num(raw: Mapping[str, Any], keys: Iterable[str]) -> Optional[float]:
    for key in keys:
        num = _num_or_none(raw.get(key))
        if num is not None:
            return num
    return None


def _epoch_to_ms(value: float) -> int:
    return int(value if value > _EPOCH_MS_THRESHOLD else value * 1000)


def parse_opened_at(value: Any) -> Optional[int]:
    """Convert seconds, millis, ISO strings or datetimes to epoch millis."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    if isinstance(value, (int, float)):
        return _epoch_to_ms(float(value)) if math.isfinite(value) else None
    if isinstance(value, str):
        num = _num_or_none(value)
        if num is not None:
            return _epoch_to_ms(num)
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parse_opened_at(parsed)
    return None


def normalize_position(raw: Any) -> Optional[Position]:
    """Normalise a raw venue position record; ``None`` if the side is unknown."""

    if not raw or not isinstance(raw, Mapping):
        return None
    side_raw = str(raw.get("side") or raw.get("positionSide") or "").strip().lower()
    if side_raw not in ("long", "short"):
        return None
    opened_at = None
    for key in _OPENED_KEYS:
        if raw.get(key) is not None:
            opened_at = parse_opened_at(raw[key])
            break
    return Position(
        side=side_raw,  # type: ignore[arg-type]
        entry_price=_first_num(raw, _ENTRY_KEYS),
        mark_price=_first_num(raw, _MARK_KEYS),
        size_usd=_first_num(raw, _SIZE_KEYS),
        opened_at_ms=opened_at,
    )


def is_open_record(raw: Any) -> bool:
    """Whether ``raw`` counts as an open position.

    Only an explicit ``isClosed``/``status`` marks a record closed; any other
    non-empty record is open, including ones that are not mappings.
    """

    if not raw:
        return False
    if not isinstance(raw, Mapping):
        return True
    if isinstance(raw.get("isClosed"), bool):
        return not raw["isClosed"]
    status = raw.get("status")
    if isinstance(status, str):
        return status.lower() != "closed"
    return True


def _record_list(records: Any) -> Optional[List[Any]]:
    if isinstance(records, Mapping):
        # venue envelope: {"positions": [...]}
        records = records.get("positions")
    if records is None or isinstance(records, (str, bytes, Mapping)):
        return None
    if not isinstance(records, Iterable):
        return None
    return list(records)


def query_from_records(records: Any) -> PositionQuery:
    """Reduce raw venue records to a ``PositionQuery``.

    ``None`` (query failed), a payload that is not a list of records, and open
    records that cannot be normalised all yield an unconfirmed answer.
    """

    items = _record_list(records)
    if items is None:
        if records is not None:
            log.warning("positions.malformed", extra={"type": type(records).__name__})
        return PositionQuery.uncertain()
    open_records = [r for r in items if is_open_record(r)]
    if not open_records:
        return PositionQuery.flat()
    normalized = [p for p in (normalize_position(r) for r in open_records) if p is not None]
    if not normalized:
        log.warning("positions.unparseable", extra={"records": len(open_records)})
        return PositionQuery.uncertain()
    if len(normalized) > 1:
        log.warning("positions.multiple_open", extra={"count": len(normalized)})
    return PositionQuery(confirmed=True, position=normalized[0])


__all__ = [
    "Position",
    "PositionQuery",
    "is_open_record",
    "normalize_position",
    "parse_opened_at",
    "query_from_records",
]
