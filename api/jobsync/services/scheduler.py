"""Aggregation scheduler.

The schedule itself is a plain value (`SchedulerSnapshot`) moved between states by pure
transition functions. `AggregationScheduler` owns the current snapshot and runs the job;
`SchedulerTicker` is the asyncio loop that drives `tick()` in a running service. Tests
call `tick(now)` directly with a fixed clock instead.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

from opentelemetry import trace

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class SchedulerState(str, enum.Enum):
    STOPPED = "stopped"
    IDLE = "idle"
    EXECUTING = "executing"


@dataclass(frozen=True, slots=True)
class SchedulerSnapshot:
    interval_hours: int
    enabled: bool
    scheduled: bool = False
    executing: bool = False
    last_run: datetime | None = None
    next_run: datetime | None = None
    run_count: int = 0

    @property
    def state(self) -> SchedulerState:
        if self.executing:
            return SchedulerState.EXECUTING
        if self.scheduled:
            return SchedulerState.IDLE
        return SchedulerState.STOPPED


def cron_expression(interval_hours: int) -> str:
    return f"0 */{interval_hours} * * *"


def next_fire_time(now: datetime, interval_hours: int) -> datetime:
    """Next top of the hour after `now` whose hour is a multiple of the interval."""
    step = max(1, interval_hours)
    candidate = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    for _ in range(48):
        if candidate.hour % step == 0:
            return candidate
        candidate += timedelta(hours=1)
    return candidate


def start(snapshot: SchedulerSnapshot, now: datetime) -> SchedulerSnapshot:
    if snapshot.scheduled or not snapshot.enabled:
        return snapshot
    return replace(snapshot, scheduled=True, next_run=next_fire_time(now, snapshot.interval_hours))


def stop(snapshot: SchedulerSnapshot) -> SchedulerSnapshot:
    if not snapshot.scheduled:
        return snapshot
    return replace(snapshot, scheduled=False, next_run=None)


def begin_run(snapshot: SchedulerSnapshot) -> tuple[SchedulerSnapshot, bool]:
    if snapshot.executing:
        return snapshot, False
    return replace(snapshot, executing=True, run_count=snapshot.run_count + 1), True


def finish_run(snapshot: SchedulerSnapshot, now: datetime) -> SchedulerSnapshot:
    next_run = next_fire_time(now, snapshot.interval_hours) if snapshot.scheduled else None
    return replace(snapshot, executing=False, last_run=now, next_run=next_run)


def is_due(snapshot: SchedulerSnapshot, now: datetime) -> bool:
    return (
        snapshot.state is SchedulerState.IDLE
        and snapshot.next_run is not None
        and now >= snapshot.next_run
    )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AggregationScheduler:
    def __init__(
        self,
        run_job: Callable[[], Awaitable[Any]],
        *,
        interval_hours: int = 24,
        enabled: bool = False,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._run_job = run_job
        self._clock = clock
        self.snapshot = SchedulerSnapshot(interval_hours=max(1, interval_hours), enabled=enabled)

    def start(self) -> bool:
        if not self.snapshot.enabled:
            logger.info("job scraping is disabled; scheduler not started")
            return False
        if self.snapshot.scheduled:
            logger.info("job scheduler is already running")
            return False
        self.snapshot = start(self.snapshot, self._clock())
        logger.info(
            "job scheduler started every=%sh cron=%s next_run=%s",
            self.snapshot.interval_hours,
            cron_expression(self.snapshot.interval_hours),
            self.snapshot.next_run,
        )
        return True

    def stop(self) -> bool:
        if not self.snapshot.scheduled:
            logger.info("job scheduler is not running")
            return False
        self.snapshot = stop(self.snapshot)
        logger.info("job scheduler stopped")
        return True

    async def tick(self, now: datetime | None = None) -> bool:
        if not is_due(self.snapshot, now or self._clock()):
            return False
        return await self._run("schedule")

    async def trigger_now(self) -> bool:
        logger.info("manual job aggregation triggered")
        return await self._run("manual")

    async def _run(self, trigger: str) -> bool:
        self.snapshot, accepted = begin_run(self.snapshot)
        if not accepted:
            logger.warning("job aggregation is already running; skipping %s fire", trigger)
            return False

        run_number = self.snapshot.run_count
        started_at = time.perf_counter()
        logger.info("scheduled job aggregation started run=%s trigger=%s", run_number, trigger)
        try:
            with tracer.start_as_current_span("scheduler.run") as span:
                span.set_attribute("scheduler.run_count", run_number)
                span.set_attribute("scheduler.trigger", trigger)
                result = await self._run_job()
            logger.info(
                "scheduled job aggregation finished run=%s duration_s=%.2f result=%s",
                run_number,
                time.perf_counter() - started_at,
                getattr(result, "message", result),
            )
        except Exception:
            logger.exception("scheduled job aggregation failed run=%s", run_number)
        finally:
            self.snapshot = finish_run(self.snapshot, self._clock())
        return True

    def status(self) -> dict[str, Any]:
        snapshot = self.snapshot
        return {
            "is_running": snapshot.scheduled,
            "is_currently_executing": snapshot.executing,
            "last_run": snapshot.last_run,
            "next_run": snapshot.next_run,
            "run_count": snapshot.run_count,
            "interval_hours": snapshot.interval_hours,
            "enabled": snapshot.enabled,
            "cron_expression": cron_expression(snapshot.interval_hours),
        }


class SchedulerTicker:
    """Calls `scheduler.tick()` on a fixed cadence until stopped."""

    def __init__(self, scheduler: AggregationScheduler, *, interval_seconds: float = 60.0) -> None:
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="scheduler-ticker")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _loop(self) -> None:
        while True:
            try:
                await self.scheduler.tick()
            except Exception:  # pragma: no cover - tick already logs job failures
                logger.exception("scheduler tick failed")
            await asyncio.sleep(self.interval_seconds)
