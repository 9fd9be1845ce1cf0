"""Position lifecycle monitor: open, hold or close once per tick."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Optional

from core.config import EngineSettings
from services.execution.types import Side, opposite
from services.risk.state import Position, PositionQuery
from services.strategy.intent import TradeIntent

log = logging.getLogger("perps.monitor")

MonitorAction = Literal["OPEN", "CLOSE", "HOLD", "SKIP"]

REASON_FLIP = "signal flipped"
REASON_TAKE_PROFIT = "take profit"
REASON_STOP_LOSS = "stop loss"
REASON_MAX_AGE = "max age"
REASON_CLOSE_INTENT = "close requested"


@dataclass(frozen=True, slots=True)
class ExitPolicy:
    """Fixed exit thresholds; percentages are fractions (0.035 == 3.5%)."""

    take_profit_pct: float = 0.035
    stop_loss_pct: float = 0.035
    max_age_ms: int = 24 * 60 * 60 * 1000

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "ExitPolicy":
        return cls(
            take_profit_pct=settings.take_profit_pct,
            stop_loss_pct=settings.stop_loss_pct,
            max_age_ms=int(settings.max_position_age_sec * 1000),
        )


@dataclass(frozen=True, slots=True)
class ExitDecision:
    should_close: bool
    reason: Optional[str] = None
    move_pct: Optional[float] = None


@dataclass(frozen=True, slots=True)
class MonitorDecision:
    """Single per-tick decision; at most one order follows from it."""

    action: MonitorAction
    reason: str
    side: Optional[Side] = None
    position: Optional[Position] = None
    move_pct: Optional[float] = None


def unrealized_move(position: Position) -> Optional[float]:
    """Signed fractional move in the position's favour, or ``None`` if unknown."""

    entry = position.entry_price
    mark = position.mark_price
    if not entry or not mark or entry <= 0 or mark <= 0:
        return None
    direction = 1.0 if position.side == "long" else -1.0
    return (mark - entry) / entry * direction


class PositionMonitor:
    """Evaluate exit triggers and gate new entries for the single position slot."""

    def __init__(self, policy: ExitPolicy | None = None) -> None:
        self.policy = policy or ExitPolicy()

    def evaluate_exit(self, position: Position, intent: TradeIntent, now_ms: int) -> ExitDecision:
        """Apply exit triggers in precedence order: flip, take-profit, stop-loss, age.

        An explicit ``CLOSE`` intent ranks with the flip.
        """

        if intent.side is not None and intent.side == opposite(position.side):
            return ExitDecision(True, REASON_FLIP, unrealized_move(position))
        if intent.action == "CLOSE":
            return ExitDecision(True, REASON_CLOSE_INTENT, unrealized_move(position))

        move = unrealized_move(position)
        if move is not None:
            if move >= self.policy.take_profit_pct:
                return ExitDecision(True, REASON_TAKE_PROFIT, move)
            if move <= -self.policy.stop_loss_pct:
                return ExitDecision(True, REASON_STOP_LOSS, move)

        if position.opened_at_ms is not None:
            age_ms = now_ms - position.opened_at_ms
            if age_ms >= self.policy.max_age_ms:
                return ExitDecision(True, REASON_MAX_AGE, move)

        return ExitDecision(False, None, move)

    def decide(self, query: PositionQuery, intent: TradeIntent, now_ms: int) -> MonitorDecision:
        position = query.position
        if position is not None:
            return self._decide_open_position(position, intent, now_ms)

        if not query.confirmed:
            log.info("monitor.skip.unconfirmed", extra={"intent": intent.action})
            return MonitorDecision("SKIP", "position state unconfirmed")

        side = intent.side
        if side is None:
            return MonitorDecision("SKIP", f"intent {intent.action}")
        return MonitorDecision("OPEN", f"intent {intent.action}", side=side)

    def _decide_open_position(self, position: Position, intent: TradeIntent, now_ms: int) -> MonitorDecision:
        exit_decision = self.evaluate_exit(position, intent, now_ms)
        if not exit_decision.should_close:
            log.info(
                "monitor.hold",
                extra={"side": position.side, "intent": intent.action, "move_pct": exit_decision.move_pct},
            )
            return MonitorDecision(
                "HOLD",
                "no exit trigger",
                side=position.side,
                position=position,
                move_pct=exit_decision.move_pct,
            )

        reason = exit_decision.reason or "exit signal"
        if not position.size_usd or position.size_usd <= 0:
            log.warning("monitor.close.unknown_size", extra={"side": position.side, "reason": reason})
            return MonitorDecision("SKIP", "unknown position size", side=position.side, position=position)

        log.info(
            "monitor.close",
            extra={"side": position.side, "reason": reason, "move_pct": exit_decision.move_pct},
        )
        return MonitorDecision(
            "CLOSE",
            reason,
            side=position.side,
            position=position,
            move_pct=exit_decision.move_pct,
        )


__all__ = [
    "ExitDecision",
    "ExitPolicy",
    "MonitorDecision",
    "PositionMonitor",
    "REASON_CLOSE_INTENT",
    "REASON_FLIP",
    "REASON_MAX_AGE",
    "REASON_STOP_LOSS",
    "REASON_TAKE_PROFIT",
    "unrealized_move",
]
