import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError

from pricewatch.core.config import settings
from pricewatch.core.errors import PriceFetchError
from pricewatch.enums.tokens import TOKEN_ADDRESSES, Token
from pricewatch.schemas.price import PriceSample
from pricewatch.schemas.system import SchedulerStats
from pricewatch.services.alert_matcher import AlertMatcher
from pricewatch.services.change_detector import ChangeDetector, PriceChange
from pricewatch.services.price_source import PriceSource
from pricewatch.services.price_store import PriceStore

log = structlog.get_logger("scheduler")


# ---------- SCHEDULER ----------

class Scheduler:
    """
    Runs `cycle` every `interval_s` seconds until stopped.

    A tick that lands while the previous cycle is still running is skipped
    (counted in `skipped`), never queued. A cycle that raises is logged and
    counted in `failed`; the next tick runs as usual.
    """

    def __init__(
        self,
        cycle: Callable[[], Awaitable[object]],
        interval_s: Optional[float] = None,
        name: str = "price_cycle",
    ):
        self._cycle = cycle
        self.interval_s = interval_s or settings.POLL_INTERVAL_SECONDS
        self.name = name

        self._stop_event = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None

        self.ticks = 0
        self.completed = 0
        self.failed = 0
        self.skipped = 0
        self.last_completed_at: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._loop_task = asyncio.create_task(self._tick_loop(), name=f"{self.name}_loop")
        log.info("scheduler_started", name=self.name, interval_s=self.interval_s)

    async def stop(self) -> None:
        """Stop ticking, then wait for the in-flight cycle (if any) to finish."""
        self._stop_event.set()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None
        if self._inflight is not None and not self._inflight.done():
            await asyncio.shield(self._inflight)
        log.info("scheduler_stopped", name=self.name, **self.stats().model_dump(exclude={"last_completed_at"}))

    async def run_once(self) -> bool:
        """Run one cycle now through the overlap guard. False if it was skipped."""
        task = self._tick()
        if task is None:
            return False
        await task
        return True

    def stats(self) -> SchedulerStats:
        return SchedulerStats(
            running=self.running,
            interval_seconds=self.interval_s,
            ticks=self.ticks,
            completed=self.completed,
            failed=self.failed,
            skipped=self.skipped,
            last_completed_at=self.last_completed_at,
        )

    async def _tick_loop(self) -> None:
        while not self._stop_event.is_set():
            self._tick()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_s)
            except asyncio.TimeoutError:
                pass

    def _tick(self) -> Optional[asyncio.Task]:
        self.ticks += 1
        if self.in_flight:
            self.skipped += 1
            log.warning("tick_skipped", name=self.name, skipped=self.skipped)
            return None
        self._inflight = asyncio.create_task(self._guarded_cycle(), name=f"{self.name}_{self.ticks}")
        return self._inflight

    async def _guarded_cycle(self) -> None:
        try:
            await self._cycle()
        except Exception:
            self.failed += 1
            log.exception("cycle_failed", name=self.name)
            return
        self.completed += 1
        self.last_completed_at = datetime.now(timezone.utc)


# ---------- PRICE CYCLE ----------

@dataclass
class CycleReport:
    fetched: Dict[Token, Decimal] = field(default_factory=dict)
    samples: List[PriceSample] = field(default_factory=list)
    changes: List[PriceChange] = field(default_factory=list)
    triggered: Dict[Token, List[int]] = field(default_factory=dict)
    aborted: bool = False


class PriceCycle:
    """
    One tick: fetch every token -> detect changes against the last stored
    sample -> append the new samples -> send change notices -> match alerts.

    A fetch failure aborts the tick before anything is written. Persistence
    errors on append propagate to the Scheduler. Store calls run in worker
    threads so a slow query never blocks the event loop.
    """

    def __init__(
        self,
        price_source: PriceSource,
        price_store: PriceStore,
        change_detector: ChangeDetector,
        alert_matcher: AlertMatcher,
        tokens: Optional[Sequence[Token]] = None,
        fetch_timeout_s: Optional[float] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.price_source = price_source
        self.price_store = price_store
        self.change_detector = change_detector
        self.alert_matcher = alert_matcher
        self.tokens = list(tokens or Token)
        self.fetch_timeout_s = fetch_timeout_s or settings.PRICE_FETCH_TIMEOUT_SECONDS
        self.clock = clock

    async def __call__(self) -> CycleReport:
        report = CycleReport()

        try:
            report.fetched = await self._fetch_all()
        except PriceFetchError as e:
            log.error("price_fetch_failed", asset=e.asset, reason=e.reason)
            report.aborted = True
            return report

        log.info("prices_fetched", **{t.value: str(p) for t, p in report.fetched.items()})

        # prior-sample reads must happen before this tick's append
        for token, price in report.fetched.items():
            change = await asyncio.to_thread(self.change_detector.detect, token, price)
            if change is not None:
                report.changes.append(change)

        observed_at = self.clock()
        samples = [
            PriceSample(token=token, price=price, observed_at=observed_at)
            for token, price in report.fetched.items()
        ]
        report.samples = await asyncio.to_thread(self.price_store.append_many, samples)

        for change in report.changes:
            await self.change_detector.notify(change)

        for token, price in report.fetched.items():
            try:
                result = await self.alert_matcher.run(token, price)
            except SQLAlchemyError:
                # nothing flipped; the rules are picked up again next tick
                log.exception("alert_match_failed", token=token.value)
                continue
            report.triggered[token] = [a.id for a in result.triggered]

        return report

    async def _fetch_all(self) -> Dict[Token, Decimal]:
        prices: Dict[Token, Decimal] = {}
        for token in self.tokens:
            address = TOKEN_ADDRESSES[token]
            try:
                prices[token] = await asyncio.wait_for(
                    self.price_source.price(address),
                    timeout=self.fetch_timeout_s,
                )
            except asyncio.TimeoutError as e:
                raise PriceFetchError(address, "timed out") from e
        return prices
