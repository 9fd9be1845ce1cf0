"""Policy-driven position sizing against venue minimums."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

from core.config import EngineSettings
from core.errors import InsufficientFundsError

log = logging.getLogger("perps.sizing")

# venue precision for USD amounts (6 decimal places)
_USD_SCALE = 1_000_000


def _non_negative_float(value: Any) -> float:
    try:
        num = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(num) or num <= 0:
        return 0.0
    return num


@dataclass(frozen=True, slots=True)
class SizingLimits:
    notional_cap_usd: float = 10.0
    min_notional_usd: float = 1.0
    min_collateral_usd: float = 10.0
    min_leverage: float = 1.1
    target_leverage: float = 1.3

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "SizingLimits":
        return cls(
            notional_cap_usd=settings.notional_cap_usd,
            min_notional_usd=settings.min_notional_usd,
            min_collateral_usd=settings.min_collateral_usd,
            min_leverage=settings.min_leverage,
            target_leverage=settings.target_leverage,
        )


@dataclass(frozen=True, slots=True)
class SizingResult:
    """Concrete order size with the leverage it implies."""

    notional_usd: float
    collateral_usd: float
    leverage: float
    target_notional_usd: float


class SizingPolicy:
    """Convert available collateral and a risk fraction into an order size."""

    def __init__(self, limits: SizingLimits | None = None) -> None:
        self.limits = limits or SizingLimits()

    def size(self, available_collateral_usd: float, risk_fraction: float) -> SizingResult:
        """Return the order size or raise ``InsufficientFundsError``.

        The posted collateral is the venue minimum; the notional is raised so
        that ``notional / collateral`` clears the minimum leverage.
        """

        limits = self.limits
        available = _non_negative_float(available_collateral_usd)
        fraction = min(max(_non_negative_float(risk_fraction), 0.0), 1.0)

        if available < limits.min_collateral_usd:
            raise InsufficientFundsError(
                f"need at least ${limits.min_collateral_usd:.2f} collateral, have ${available:.2f}",
                available_usd=available,
            )

        target = max(0.0, min(available * fraction, limits.notional_cap_usd))
        if target < limits.min_notional_usd:
            raise InsufficientFundsError(
                f"target notional ${target:.2f} below minimum ${limits.min_notional_usd:.2f}",
                available_usd=available,
            )

        collateral = limits.min_collateral_usd
        floor_notional = collateral * max(limits.target_leverage, limits.min_leverage)
        notional = math.floor(max(target, floor_notional) * _USD_SCALE) / _USD_SCALE
        leverage = notional / collateral
        log.info(
            "sizing.ok",
            extra={
                "target_usd": round(target, 2),
                "notional_usd": notional,
                "collateral_usd": collateral,
                "leverage": round(leverage, 4),
            },
        )
        return SizingResult(
            notional_usd=notional,
            collateral_usd=collateral,
            leverage=leverage,
            target_notional_usd=target,
        )


__all__ = ["SizingLimits", "SizingPolicy", "SizingResult"]
