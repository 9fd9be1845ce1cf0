from __future__ import annotations

import asyncio
import logging

import pytest

from core.config import EngineSettings
from core.errors import InputValidationError, VenueQueryUncertain
from services.execution.types import CloseOrder, OpenOrder
from services.risk.state import PositionQuery
from services.runtime.scheduler import TickScheduler
from services.sim.paper_venue import PaperVenue
from tests.fakes.fake_venue import (
    FakeForecasts,
    FakeMarket,
    FakePositions,
    RecordingVenue,
    forecast_payload,
    hourly_series,
)

_run = asyncio.run


def _scheduler(settings, *, market=None, positions=None, forecasts=None, venue=None, now_ms=None):
    return TickScheduler(
        settings=settings,
        market=market or FakeMarket(),
        positions=positions or FakePositions([]),
        forecasts=forecasts or FakeForecasts(),
        venue=venue or RecordingVenue(),
        clock=(lambda: now_ms) if now_ms is not None else (lambda: 1_700_000_000_000),
    )


def _long_record(now_ms, mark=100.0, **overrides):
    record = {
        "side": "long",
        "entryPriceUsd": 100.0,
        "markPriceUsd": mark,
        "positionSizeUsd": 13.0,
        "createdAt": now_ms - 3_600_000,
        "isClosed": False,
    }
    record.update(overrides)
    return record


def test_flat_with_long_intent_opens(settings) -> None:
    venue = RecordingVenue(collateral_usd=100.0)
    forecasts = FakeForecasts()
    scheduler = _scheduler(settings, venue=venue, forecasts=forecasts)

    report = _run(scheduler.run_once())

    assert report.decision is not None and report.decision.action == "OPEN"
    assert len(venue.submits) == 1
    market, order = venue.submits[0]
    assert market.side == "long"
    assert order == OpenOrder(side="long", notional_usd=13.0, collateral_usd=10.0, leverage=1.3)
    assert report.order_confirmed is True
    assert scheduler.metrics.counter("orders_open") == 1
    assert set(forecasts.contexts[0]) == {"spot", "derived"}
    assert forecasts.contexts[0]["spot"]["price"] == 100.0


def test_take_profit_closes_without_reopening(settings, now_ms) -> None:
    venue = RecordingVenue()
    positions = FakePositions([_long_record(now_ms, mark=104.0)])
    scheduler = _scheduler(settings, positions=positions, venue=venue, now_ms=now_ms)

    report = _run(scheduler.run_once())

    assert len(venue.submits) == 1
    order = venue.submits[0][1]
    assert isinstance(order, CloseOrder)
    assert order == CloseOrder(side="long", size_usd=13.0, reason="take profit")
    assert order.reduce_only is True
    assert scheduler.metrics.counter("orders_close") == 1
    assert report.decision is not None and report.decision.action == "CLOSE"


def test_flip_closes_only(settings, now_ms) -> None:
    venue = RecordingVenue()
    scheduler = _scheduler(
        settings,
        positions=FakePositions([_long_record(now_ms, mark=101.0)]),
        forecasts=FakeForecasts(forecast_payload("SHORT", 80)),
        venue=venue,
        now_ms=now_ms,
    )

    _run(scheduler.run_once())

    assert [type(order) for _, order in venue.submits] == [CloseOrder]
    assert venue.submits[0][1].reason == "signal flipped"


def test_hold_submits_nothing(settings, now_ms) -> None:
    venue = RecordingVenue()
    scheduler = _scheduler(
        settings,
        positions=FakePositions([_long_record(now_ms, mark=101.0)]),
        venue=venue,
        now_ms=now_ms,
    )

    report = _run(scheduler.run_once())

    assert venue.submits == []
    assert report.decision is not None and report.decision.action == "HOLD"
    assert report.skipped == "no exit trigger"
    assert scheduler.metrics.counter("decisions_hold") == 1


def test_low_confidence_does_nothing(settings) -> None:
    venue = RecordingVenue()
    scheduler = _scheduler(settings, forecasts=FakeForecasts(forecast_payload("LONG", 54.9)), venue=venue)

    report = _run(scheduler.run_once())

    assert report.intent is not None and report.intent.action == "DO_NOTHING"
    assert venue.submits == []


def test_insufficient_funds_is_a_skip(settings) -> None:
    venue = RecordingVenue(collateral_usd=5.0)
    scheduler = _scheduler(settings, venue=venue)

    report = _run(scheduler.run_once())

    assert venue.submits == []
    assert report.order is None
    assert report.skipped is not None and "collateral" in report.skipped
    assert scheduler.metrics.counter("sizing_rejections") == 1


def test_failed_position_query_never_opens(settings) -> None:
    venue = RecordingVenue()
    positions = FakePositions(error=VenueQueryUncertain("rpc timeout"))
    scheduler = _scheduler(settings, positions=positions, venue=venue)

    report = _run(scheduler.run_once())

    assert venue.submits == []
    assert report.decision is not None and report.decision.reason == "position state unconfirmed"
    assert scheduler.metrics.counter("position_query_errors") == 1


def test_source_may_answer_with_position_query(settings) -> None:
    venue = RecordingVenue()
    scheduler = _scheduler(settings, positions=FakePositions(PositionQuery.uncertain()), venue=venue)

    _run(scheduler.run_once())

    assert venue.submits == []


def test_market_failure_aborts_tick(settings) -> None:
    forecasts = FakeForecasts()
    venue = RecordingVenue()
    scheduler = _scheduler(
        settings,
        market=FakeMarket(snapshot_error=RuntimeError("price feed down")),
        forecasts=forecasts,
        venue=venue,
    )

    with pytest.raises(RuntimeError, match="price feed down"):
        _run(scheduler.run_once())
    assert forecasts.contexts == []
    assert venue.submits == []


def test_invalid_forecast_aborts_tick(settings) -> None:
    venue = RecordingVenue()
    scheduler = _scheduler(settings, forecasts=FakeForecasts(forecast_payload(confidence="high")), venue=venue)

    with pytest.raises(InputValidationError):
        _run(scheduler.run_once())
    assert venue.submits == []


def test_history_failure_degrades(settings) -> None:
    venue = RecordingVenue()
    market = FakeMarket(history_error=ConnectionError("history 429"))
    scheduler = _scheduler(settings, market=market, venue=venue)

    report = _run(scheduler.run_once())

    assert report.indicators is not None and report.indicators.degraded is True
    assert len(venue.submits) == 1


def test_raw_market_payloads_are_decoded(settings) -> None:
    prices = [[1_700_000_000_000 + i * 3_600_000, 100.0 + i] for i in range(30)]
    market = FakeMarket(
        {"price": 129.0, "change24hPct": 2.0, "volume24h": 5_000.0},
        prices=prices,
        volumes=hourly_series([1.0] * 48),
    )
    scheduler = _scheduler(settings, market=market)

    report = _run(scheduler.run_once())

    assert report.indicators is not None
    assert report.indicators.degraded is False
    assert report.indicators.trend_direction == "UP"
    assert report.indicators.volume_trend_pct == pytest.approx(0.0)


def test_rejected_receipt_is_not_assumed_filled(settings) -> None:
    venue = RecordingVenue(accept=False)
    scheduler = _scheduler(settings, venue=venue)

    report = _run(scheduler.run_once())

    assert report.order is not None
    assert report.order_confirmed is False
    assert scheduler.metrics.counter("orders_unconfirmed") == 1
    assert scheduler.metrics.counter("orders_open") == 0


def test_mainnet_orders_log_warning(caplog) -> None:
    settings = EngineSettings(venue_env="mainnet", tick_interval_sec=0.01)
    scheduler = _scheduler(settings)

    with caplog.at_level(logging.WARNING, logger="perps.scheduler"):
        _run(scheduler.run_once())

    assert any(record.getMessage() == "order.mainnet" for record in caplog.records)


def test_run_survives_failing_ticks(settings) -> None:
    scheduler = _scheduler(settings, market=FakeMarket(snapshot_error=RuntimeError("boom")))

    ticks = _run(scheduler.run(max_ticks=3))

    assert ticks == 3
    assert scheduler.metrics.counter("tick_errors") == 3
    assert scheduler.metrics.counter("ticks") == 3


@pytest.mark.asyncio
async def test_run_stops_on_shutdown(settings) -> None:
    shutdown = asyncio.Event()
    scheduler = _scheduler(settings)
    task = asyncio.create_task(scheduler.run(shutdown))
    await asyncio.sleep(0.05)
    shutdown.set()

    ticks = await asyncio.wait_for(task, timeout=1.0)

    assert ticks >= 1
    assert scheduler.metrics.gauge("last_tick_ts") > 0


def test_paper_venue_round_trip(settings) -> None:
    venue = PaperVenue(collateral_usd=50.0, mark_price=100.0)
    scheduler = TickScheduler(
        settings=settings,
        market=FakeMarket(),
        positions=venue,
        forecasts=FakeForecasts(),
        venue=venue,
    )

    first = _run(scheduler.run_once())
    assert first.decision is not None and first.decision.action == "OPEN"
    assert venue.collateral_usd == pytest.approx(40.0)

    second = _run(scheduler.run_once())
    assert second.decision is not None and second.decision.action == "HOLD"

    venue.update_mark(104.0)
    third = _run(scheduler.run_once())
    assert third.decision is not None and third.decision.reason == "take profit"
    assert venue.collateral_usd == pytest.approx(50.0)
    assert [type(order) for order in venue.orders] == [OpenOrder, CloseOrder]


class _VenuePosition:
    def __init__(self, side: str, entry: float, size: float) -> None:
        self.side = side
        self.entry = entry
        self.size = size


@pytest.mark.parametrize(
    "records",
    [
        [_VenuePosition("long", 100.0, 13.0)],
        {"unexpected": [{"side": "long"}]},
        "long",
    ],
)
def test_unreadable_position_records_never_open(settings, records) -> None:
    venue = RecordingVenue()
    scheduler = _scheduler(settings, positions=FakePositions(records), venue=venue)

    report = _run(scheduler.run_once())

    assert not any(isinstance(order, OpenOrder) for _, order in venue.submits)
    assert report.decision is not None and report.decision.reason == "position state unconfirmed"


def test_positions_envelope_holds_existing_position(settings, now_ms) -> None:
    venue = RecordingVenue()
    positions = FakePositions({"positions": [_long_record(now_ms, mark=101.0)]})
    scheduler = _scheduler(settings, positions=positions, venue=venue, now_ms=now_ms)

    report = _run(scheduler.run_once())

    assert venue.submits == []
    assert report.decision is not None and report.decision.action == "HOLD"


def test_missing_history_payload_degrades(settings) -> None:
    venue = RecordingVenue()
    scheduler = _scheduler(settings, market=FakeMarket(prices=None, volumes=None), venue=venue)

    report = _run(scheduler.run_once())

    assert report.indicators is not None and report.indicators.degraded is True
    assert report.indicators.volume_trend_pct is None
    assert len(venue.submits) == 1


def test_failed_tick_log_is_traceable(settings, caplog) -> None:
    scheduler = _scheduler(settings, market=FakeMarket(snapshot_error=RuntimeError("boom")))

    with caplog.at_level(logging.ERROR, logger="perps.scheduler"):
        _run(scheduler.run(max_ticks=1))

    (record,) = [r for r in caplog.records if r.getMessage() == "tick.failed"]
    assert record.trace_id
    assert record.error == "boom"
    assert record.exc_info is not None
