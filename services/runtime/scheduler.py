"""Tick scheduler driving fetch, compute, decide and act on a fixed interval."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

from core.config import EngineSettings
from core.errors import InputValidationError, InsufficientFundsError
from core.interfaces import ExecutionVenue, ForecastSource, MarketDataProvider, PositionSource
from services.execution.types import CloseOrder, OpenOrder, Receipt, Side
from services.market.indicators import compute_indicators
from services.market.normalize import parse_series, parse_snapshot
from services.market.types import IndicatorBundle, MarketSnapshot, PricePoint
from services.policy.sizing import SizingLimits, SizingPolicy
from services.risk.monitor import ExitPolicy, MonitorDecision, PositionMonitor
from services.risk.state import PositionQuery, query_from_records
from services.runtime.logging import with_trace
from services.runtime.metrics import Metrics
from services.strategy.forecast import parse_forecast
from services.strategy.intent import TradeIntent, map_forecast_to_intent

MarketData = Tuple[MarketSnapshot, Sequence[PricePoint], Sequence[PricePoint]]


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class TickReport:
    """What one tick saw and did."""

    trace_id: str
    indicators: Optional[IndicatorBundle] = None
    intent: Optional[TradeIntent] = None
    decision: Optional[MonitorDecision] = None
    order: Optional[OpenOrder | CloseOrder] = None
    receipt: Optional[Receipt] = None
    skipped: Optional[str] = None

    @property
    def order_confirmed(self) -> bool:
        return self.receipt is not None and self.receipt.accepted


class TickScheduler:
    """Run the decision pipeline once per interval, isolating per-tick failures."""

    def __init__(
        self,
        *,
        settings: EngineSettings,
        market: MarketDataProvider,
        positions: PositionSource,
        forecasts: ForecastSource,
        venue: ExecutionVenue,
        metrics: Optional[Metrics] = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.settings = settings
        self.market = market
        self.positions = positions
        self.forecasts = forecasts
        self.venue = venue
        self.metrics = metrics or Metrics()
        self.monitor = PositionMonitor(ExitPolicy.from_settings(settings))
        self.sizing = SizingPolicy(SizingLimits.from_settings(settings))
        self._clock = clock
        self.log = logging.getLogger("perps.scheduler")

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------
    async def _fetch_market(self) -> MarketData:
        raw_snapshot: Any = await self.market.get_snapshot()
        snapshot = parse_snapshot(raw_snapshot) if isinstance(raw_snapshot, Mapping) else raw_snapshot
        if not isinstance(snapshot, MarketSnapshot):
            raise InputValidationError("market provider returned no snapshot")
        try:
            prices, volumes = await self.market.get_history()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.log.warning("market.history.unavailable", extra={"error": str(exc)})
            prices, volumes = (), ()
        return snapshot, self._as_series(prices), self._as_series(volumes)

    @staticmethod
    def _as_series(points: Any) -> Sequence[PricePoint]:
        if isinstance(points, (list, tuple)) and all(isinstance(p, PricePoint) for p in points):
            return points
        # None, malformed payloads and raw [[ts, value]] lists go through the decoder
        return parse_series(points)

    async def _query_positions(self) -> PositionQuery:
        records = await self.positions.open_positions()
        if isinstance(records, PositionQuery):
            return records
        return query_from_records(records)

    async def _fetch(self, trace_id: str) -> Tuple[MarketData, PositionQuery]:
        market_result, position_result = await asyncio.gather(
            self._fetch_market(),
            self._query_positions(),
            return_exceptions=True,
        )
        if isinstance(market_result, BaseException):
            raise market_result
        if isinstance(position_result, BaseException):
            if isinstance(position_result, asyncio.CancelledError):
                raise position_result
            self.log.warning(
                "positions.query_failed",
                extra=with_trace({"error": str(position_result)}, trace_id=trace_id),
            )
            self.metrics.inc("position_query_errors")
            position_result = PositionQuery.uncertain()
        return market_result, position_result

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------
    async def run_once(self, now_ms: Optional[int] = None, *, trace_id: Optional[str] = None) -> TickReport:
        """Execute one full fetch, compute, decide and act cycle."""

        report = TickReport(trace_id=trace_id or str(uuid.uuid4()))
        trace = report.trace_id
        self.log.info("tick.start", extra=with_trace(trace_id=trace))

        (snapshot, prices, volumes), query = await self._fetch(trace)
        now = now_ms if now_ms is not None else self._clock()

        indicators = compute_indicators(snapshot, prices, volumes)
        report.indicators = indicators

        raw_forecast = await self.forecasts.latest({"spot": asdict(snapshot), "derived": asdict(indicators)})
        forecast = parse_forecast(raw_forecast)
        intent = map_forecast_to_intent(
            forecast,
            min_confidence=self.settings.min_confidence,
            risk_fraction=self.settings.risk_fraction,
        )
        report.intent = intent

        decision = self.monitor.decide(query, intent, now)
        report.decision = decision
        self.metrics.inc(f"decisions_{decision.action.lower()}")
        self.log.info(
            "tick.decision",
            extra=with_trace(
                {
                    "action": decision.action,
                    "reason": decision.reason,
                    "intent": intent.action,
                    "confidence": forecast.confidence,
                    "trend": indicators.trend_direction,
                    "confirmed": query.confirmed,
                },
                trace_id=trace,
            ),
        )

        if decision.action == "CLOSE" and decision.position is not None and decision.side is not None:
            order = CloseOrder(
                side=decision.side,
                size_usd=float(decision.position.size_usd or 0.0),
                reason=decision.reason,
            )
            await self._submit(report, decision.side, order)
        elif decision.action == "OPEN" and decision.side is not None:
            await self._open(report, decision.side, intent)
        else:
            report.skipped = decision.reason
        return report

    async def _open(self, report: TickReport, side: Side, intent: TradeIntent) -> None:
        available = await self.venue.available_collateral_usd(side)
        try:
            size = self.sizing.size(available, intent.risk_fraction)
        except InsufficientFundsError as exc:
            self.log.info(
                "tick.skip.insufficient_funds",
                extra=with_trace({"side": side, "reason": exc.reason}, trace_id=report.trace_id),
            )
            self.metrics.inc("sizing_rejections")
            report.skipped = exc.reason
            return
        order = OpenOrder(
            side=side,
            notional_usd=size.notional_usd,
            collateral_usd=size.collateral_usd,
            leverage=size.leverage,
        )
        await self._submit(report, side, order)

    async def _submit(self, report: TickReport, side: Side, order: OpenOrder | CloseOrder) -> None:
        report.order = order
        payload = {"side": side, "order": type(order).__name__, **asdict(order)}
        if self.settings.is_mainnet:
            self.log.warning("order.mainnet", extra=with_trace(payload, trace_id=report.trace_id))
        market = await self.venue.resolve_market(side)
        receipt = await self.venue.submit_order(market, order)
        report.receipt = receipt
        if receipt.accepted:
            self.metrics.inc("orders_close" if order.reduce_only else "orders_open")
            self.log.info(
                "order.accepted",
                extra=with_trace({**payload, "reference": receipt.reference}, trace_id=report.trace_id),
            )
        else:
            self.metrics.inc("orders_unconfirmed")
            self.log.warning(
                "order.unconfirmed",
                extra=with_trace({**payload, "reason": receipt.reason}, trace_id=report.trace_id),
            )

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------
    async def run(self, shutdown: Optional[asyncio.Event] = None, *, max_ticks: Optional[int] = None) -> int:
        """Run ticks until ``shutdown`` is set or ``max_ticks`` ran; return tick count."""

        shutdown = shutdown or asyncio.Event()
        interval = self.settings.tick_interval_sec
        ticks = 0
        self.log.info("scheduler.start", extra={"interval_sec": interval, "venue_env": self.settings.venue_env})
        while not shutdown.is_set():
            trace_id = str(uuid.uuid4())
            try:
                await self.run_once(trace_id=trace_id)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.metrics.inc("tick_errors")
                self.log.error(
                    "tick.failed",
                    exc_info=True,
                    extra=with_trace({"error": str(exc), "error_type": type(exc).__name__}, trace_id=trace_id),
                )
            ticks += 1
            self.metrics.inc("ticks")
            self.metrics.set("last_tick_ts", time.time())
            if max_ticks is not None and ticks >= max_ticks:
                break
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
        self.log.info("scheduler.stop", extra={"ticks": ticks})
        return ticks


__all__ = ["TickReport", "TickScheduler"]
