import asyncio
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from pricewatch.enums.tokens import Token
from pricewatch.models.token_price import TokenPrice
from pricewatch.services.alert_matcher import AlertMatcher
from pricewatch.services.change_detector import ChangeDetector
from pricewatch.services.scheduler_service import PriceCycle, Scheduler

WATCHER = "watcher@example.com"


def _sample_count(session_factory, token=None):
    db = session_factory()
    try:
        query = db.query(TokenPrice)
        if token is not None:
            query = query.filter(TokenPrice.token == token.value)
        return query.count()
    finally:
        db.close()


def _cycle(price_source, price_store, alert_store, notifier, **kwargs):
    return PriceCycle(
        price_source=price_source,
        price_store=price_store,
        change_detector=ChangeDetector(price_store, notifier, destination=WATCHER),
        alert_matcher=AlertMatcher(alert_store, notifier, band=Decimal("0.01")),
        **kwargs,
    )


# ---------- SCHEDULER ----------

@pytest.mark.asyncio
async def test_run_once_invokes_cycle():
    calls = []

    async def cycle():
        calls.append(1)

    scheduler = Scheduler(cycle, interval_s=60)
    assert await scheduler.run_once() is True
    assert calls == [1]
    assert scheduler.completed == 1
    assert scheduler.last_completed_at is not None


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped_not_queued():
    gate = asyncio.Event()
    calls = []

    async def slow_cycle():
        calls.append(1)
        await gate.wait()

    scheduler = Scheduler(slow_cycle, interval_s=60)
    first = asyncio.create_task(scheduler.run_once())
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert scheduler.in_flight

    assert await scheduler.run_once() is False
    assert scheduler.skipped == 1

    gate.set()
    assert await first is True
    assert calls == [1]
    assert not scheduler.in_flight

    # guard released: next tick runs
    assert await scheduler.run_once() is True
    assert calls == [1, 1]


@pytest.mark.asyncio
async def test_failing_cycle_is_contained_and_releases_guard():
    outcomes = iter([RuntimeError("boom"), None])

    async def cycle():
        err = next(outcomes)
        if err is not None:
            raise err

    scheduler = Scheduler(cycle, interval_s=60)
    assert await scheduler.run_once() is True
    assert scheduler.failed == 1
    assert not scheduler.in_flight

    assert await scheduler.run_once() is True
    assert scheduler.completed == 1


@pytest.mark.asyncio
async def test_stop_waits_for_in_flight_cycle():
    gate = asyncio.Event()
    finished = []

    async def cycle():
        await gate.wait()
        finished.append(True)

    scheduler = Scheduler(cycle, interval_s=60)
    scheduler.start()
    await asyncio.sleep(0.01)
    assert scheduler.in_flight

    stopper = asyncio.create_task(scheduler.stop())
    await asyncio.sleep(0.01)
    assert not stopper.done()

    gate.set()
    await stopper
    assert finished == [True]
    assert not scheduler.running


@pytest.mark.asyncio
async def test_loop_keeps_ticking_after_failures():
    async def cycle():
        raise RuntimeError("always")

    scheduler = Scheduler(cycle, interval_s=0.01)
    scheduler.start()
    await asyncio.sleep(0.1)
    await scheduler.stop()

    assert scheduler.ticks >= 2
    assert scheduler.failed >= 2
    assert scheduler.completed == 0


# ---------- PRICE CYCLE ----------

@pytest.mark.asyncio
async def test_cycle_appends_one_sample_per_token(price_source, price_store, alert_store, notifier, session_factory):
    price_source.set(Token.ETH, "1800.00")
    price_source.set(Token.MATIC, "0.52")
    cycle = _cycle(price_source, price_store, alert_store, notifier)

    report = await cycle()

    assert not report.aborted
    assert _sample_count(session_factory, Token.ETH) == 1
    assert _sample_count(session_factory, Token.MATIC) == 1
    # first ever sample: no change notification
    assert report.changes == []
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_cycle_detects_change_against_previous_tick(price_source, price_store, alert_store, notifier):
    price_source.set(Token.ETH, "1800.00")
    price_source.set(Token.MATIC, "0.52")
    cycle = _cycle(price_source, price_store, alert_store, notifier)
    await cycle()

    price_source.set(Token.ETH, "1800.01")
    report = await cycle()

    assert [(c.token, c.old_price, c.new_price) for c in report.changes] == [
        (Token.ETH, Decimal("1800.00"), Decimal("1800.01")),
    ]
    assert notifier.to(WATCHER) == [
        (WATCHER, "Price Alert: ETH Price Changed", "The price of ETH has changed from $1800.00 to $1800.01."),
    ]


@pytest.mark.asyncio
async def test_cycle_triggers_alerts_once(price_source, price_store, alert_store, notifier):
    alert = alert_store.create(Token.MATIC, Decimal("0.50"), "me@example.com")
    price_source.set(Token.ETH, "1800")
    price_source.set(Token.MATIC, "0.503")
    cycle = _cycle(price_source, price_store, alert_store, notifier)

    first = await cycle()
    second = await cycle()

    assert first.triggered[Token.MATIC] == [alert.id]
    assert second.triggered[Token.MATIC] == []
    assert len(notifier.to("me@example.com")) == 1


@pytest.mark.asyncio
async def test_fetch_failure_aborts_tick_without_writing(price_source, price_store, alert_store, notifier, session_factory):
    alert_store.create(Token.ETH, Decimal("1800"), "me@example.com")
    price_source.set(Token.ETH, "1800")
    price_source.fail(Token.MATIC)
    cycle = _cycle(price_source, price_store, alert_store, notifier)

    report = await cycle()

    assert report.aborted
    assert _sample_count(session_factory) == 0
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_fetch_timeout_aborts_tick(price_source, price_store, alert_store, notifier, session_factory):
    price_source.set(Token.ETH, "1800")
    price_source.set(Token.MATIC, "0.5")
    price_source.gate = asyncio.Event()  # never released
    cycle = _cycle(price_source, price_store, alert_store, notifier, fetch_timeout_s=0.01)

    report = await cycle()

    assert report.aborted
    assert _sample_count(session_factory) == 0


@pytest.mark.asyncio
async def test_persistence_failure_is_counted_by_scheduler(price_source, price_store, alert_store, notifier, monkeypatch):
    price_source.set(Token.ETH, "1800")
    price_source.set(Token.MATIC, "0.5")

    def broken_append(samples):
        raise RuntimeError("disk full")

    monkeypatch.setattr(price_store, "append_many", broken_append)
    scheduler = Scheduler(_cycle(price_source, price_store, alert_store, notifier), interval_s=60)

    assert await scheduler.run_once() is True
    assert scheduler.failed == 1
    assert not scheduler.in_flight


@pytest.mark.asyncio
async def test_overlapping_ticks_never_duplicate_samples(price_source, price_store, alert_store, notifier, session_factory):
    price_source.set(Token.ETH, "1800")
    price_source.set(Token.MATIC, "0.5")
    price_source.gate = asyncio.Event()
    scheduler = Scheduler(_cycle(price_source, price_store, alert_store, notifier), interval_s=60)

    running = asyncio.create_task(scheduler.run_once())
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    for _ in range(3):
        assert await scheduler.run_once() is False

    price_source.gate.set()
    await running

    assert scheduler.skipped == 3
    assert _sample_count(session_factory, Token.ETH) == 1
    assert _sample_count(session_factory, Token.MATIC) == 1


@pytest.mark.asyncio
async def test_cycle_uses_injected_clock(price_source, price_store, alert_store, notifier):
    fixed = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    price_source.set(Token.ETH, "10")
    price_source.set(Token.MATIC, "1")
    cycle = _cycle(price_source, price_store, alert_store, notifier, clock=lambda: fixed)

    await cycle()

    rows = price_store.hourly_averages(Token.ETH, window_hours=1, now=fixed + timedelta(minutes=5))
    assert [(r.hour, r.avg_price) for r in rows] == [(fixed, Decimal("10"))]


@pytest.mark.asyncio
async def test_slow_store_call_does_not_block_event_loop(price_source, price_store, alert_store, notifier, monkeypatch):
    price_source.set(Token.ETH, "1800")
    price_source.set(Token.MATIC, "0.5")
    real_append = price_store.append_many

    def slow_append(samples):
        time.sleep(0.2)
        return real_append(samples)

    monkeypatch.setattr(price_store, "append_many", slow_append)
    beats = 0

    async def heartbeat():
        nonlocal beats
        while True:
            await asyncio.sleep(0.01)
            beats += 1

    ticker = asyncio.create_task(heartbeat())
    try:
        report = await _cycle(price_source, price_store, alert_store, notifier)()
    finally:
        ticker.cancel()

    assert len(report.samples) == 2
    assert beats >= 5
