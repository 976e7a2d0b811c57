"""
============================================================================
DOMAIN HEALTH MONITOR - BATCH RUNNER & BACKGROUND SCHEDULER
============================================================================
Runs every check for every tracked domain, and the periodic job loop that
triggers such runs from inside the process.

Components
----------
RunGuard        refuses a batch start within MONITOR_RATE_LIMIT_SECONDS of
                the previous one; the last start is persisted so the window
                survives restarts
BatchRunner     domain-level fan-out bounded by a semaphore; checks within a
                domain run in sequence (uptime → ssl → whois → ip), each
                isolated from the others
Scheduler       asyncio timer that starts the sweep job in-process

Registered Jobs
---------------
1.  monitor_sweep   (every MONITOR_SWEEP_INTERVAL seconds, 0 disables)
    Full batch run through the rate guard.
============================================================================
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from config.constants import BatchState, CheckType, Defaults
from config.settings import Settings, get_settings
from database.manager import MonitorStore
from database.models import Domain
from exceptions import ConfigurationError, RateLimitError
from monitoring.alerts import AlertManager
from monitoring.checks import CheckRunner
from utils.helpers import seconds_to_human_readable, utc_now
from utils.logger import get_logger


logger = get_logger("Scheduler")


# ============================================================================
# RATE GUARD
# ============================================================================

class RunGuard:
    """
    Minimum spacing between batch runs.

    ``try_acquire`` is a check-and-set: on success it records the new
    start time before returning.
    """

    def __init__(
        self,
        store: MonitorStore,
        min_interval: float = Defaults.RATE_LIMIT_SECONDS,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.min_interval = timedelta(seconds=min_interval)
        self.clock = clock
        self._lock = asyncio.Lock()

    async def try_acquire(self, trigger: Optional[str] = None) -> bool:
        async with self._lock:
            now = self.clock()
            last_run = await self.store.get_last_run()

            if last_run is not None and now - last_run < self.min_interval:
                wait = (last_run + self.min_interval - now).total_seconds()
                logger.warning(
                    f"[RunGuard] Refusing {trigger or 'batch'} run, next allowed in "
                    f"{seconds_to_human_readable(wait)}"
                )
                return False

            await self.store.set_last_run(at=now, trigger=trigger)
            return True


# ============================================================================
# RUN SUMMARY
# ============================================================================

def _empty_counters() -> Dict[str, Dict[str, int]]:
    return {
        check_type.summary_key: {"success": 0, "failed": 0, "skipped": 0}
        for check_type in CheckType.batch_order()
    }


@dataclass
class RunSummary:
    """Counters for one batch run."""

    trigger: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    domains_processed: int = 0
    checks: Dict[str, Dict[str, int]] = field(default_factory=_empty_counters)
    alerts: Dict[str, int] = field(default_factory=lambda: {"sent": 0, "failed": 0})

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def count(self, check_type: CheckType, bucket: str) -> None:
        self.checks[check_type.summary_key][bucket] += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trigger": self.trigger,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "domains_processed": self.domains_processed,
            "results": {**self.checks, "alerts": dict(self.alerts)},
        }

    def to_response(self) -> Dict[str, Any]:
        """Body returned by the cron endpoint."""
        return {
            "message": "Monitoring completed",
            "timestamp": (self.finished_at or self.started_at).isoformat(),
            "domains_processed": self.domains_processed,
            "results": {**self.checks, "alerts": dict(self.alerts)},
        }


# ============================================================================
# BATCH RUNNER
# ============================================================================

class BatchRunner:
    """
    Runs all checks across all domains with partial-failure isolation.

    A failing check is counted and logged; it never stops the remaining
    checks of its domain or any other domain. There are no retries.
    """

    def __init__(
        self,
        store: MonitorStore,
        checks: CheckRunner,
        alerts: AlertManager,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.checks = checks
        self.alerts = alerts
        self.clock = clock
        self.max_concurrent = self.settings.monitoring.max_concurrent_domains

        self._state = BatchState.IDLE
        self.last_summary: Optional[RunSummary] = None

    @property
    def state(self) -> BatchState:
        return self._state

    async def run(self, trigger: str = "manual") -> RunSummary:
        if self._state is BatchState.RUNNING:
            raise RateLimitError("A monitoring run is already in progress")

        self._state = BatchState.RUNNING
        summary = RunSummary(trigger=trigger, started_at=self.clock())

        try:
            domains = await self.store.list_domains()
            logger.info(f"[Batch] {trigger} run started for {len(domains)} domain(s)")

            semaphore = asyncio.Semaphore(self.max_concurrent)

            async def _bounded(domain: Domain) -> None:
                async with semaphore:
                    await self._run_domain(domain, summary)

            results = await asyncio.gather(
                *(_bounded(domain) for domain in domains),
                return_exceptions=True,
            )
            for domain, result in zip(domains, results):
                if isinstance(result, Exception):
                    logger.opt(exception=result).error(
                        f"[Batch] Unhandled error while processing {domain.label}"
                    )

            summary.domains_processed = len(domains)
        finally:
            summary.finished_at = self.clock()
            self._state = BatchState.IDLE

        self.last_summary = summary
        logger.info(
            f"[Batch] {trigger} run finished in {summary.duration_seconds:.2f}s: "
            f"{summary.checks}, alerts={summary.alerts}"
        )
        return summary

    async def _run_domain(self, domain: Domain, summary: RunSummary) -> None:
        for check_type in CheckType.batch_order():
            try:
                outcome = await self.checks.run(check_type, domain)
            except ConfigurationError as e:
                logger.warning(f"[Batch] {check_type.value} skipped for {domain.label}: {e.message}")
                summary.count(check_type, "skipped")
                continue
            except Exception as e:
                logger.opt(exception=e).error(
                    f"[Batch] {check_type.value} check failed for {domain.label}: {e}"
                )
                summary.count(check_type, "failed")
                continue

            summary.count(check_type, "success" if outcome.succeeded else "failed")

            try:
                delivery = await self.alerts.handle(outcome)
            except Exception as e:
                logger.opt(exception=e).error(
                    f"[Batch] {check_type.value} alert for {domain.label} failed: {e}"
                )
                summary.alerts["failed"] += 1
                continue

            if delivery is not None:
                summary.alerts["sent" if delivery.success else "failed"] += 1




# ============================================================================
# PERIODIC JOBS
# ============================================================================

@dataclass
class ScheduledJob:
    """A named coroutine factory launched every ``interval_seconds``."""

    name: str
    interval_seconds: int
    coroutine_factory: Callable[[], Awaitable[Any]]
    enabled: bool = True
    next_run: float = field(default_factory=time.time)
    last_run: Optional[float] = None
    run_count: int = 0
    error_count: int = 0

    def is_due(self, now: float) -> bool:
        return self.enabled and now >= self.next_run

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "enabled": self.enabled,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_run": _epoch_iso(self.last_run),
            "next_run": _epoch_iso(self.next_run),
        }


def _epoch_iso(ts: Optional[float]) -> Optional[str]:
    return datetime.fromtimestamp(ts).isoformat() if ts else None


class Scheduler:
    """
    In-process timer for the monitor sweep.

    A single loop task polls the job table every ``_tick_interval``
    seconds and starts each due job as its own task, so a long batch
    never delays the tick. Job errors are logged and counted; the job
    stays scheduled.
    """

    def __init__(
        self,
        batch_runner: BatchRunner,
        guard: RunGuard,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or get_settings()
        self.batch_runner = batch_runner
        self.guard = guard

        self._jobs: Dict[str, ScheduledJob] = {}
        self._loop_task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self._tick_interval = 2.0

        sweep_every = self.settings.monitoring.sweep_interval
        self.register_job(
            "monitor_sweep",
            interval_seconds=sweep_every,
            coroutine_factory=self._job_monitor_sweep,
            enabled=sweep_every > 0,
        )

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def register_job(
        self,
        name: str,
        interval_seconds: int,
        coroutine_factory: Callable[[], Awaitable[Any]],
        enabled: bool = True,
    ) -> None:
        if name in self._jobs:
            logger.warning(f"[Scheduler] Replacing job '{name}'")
        self._jobs[name] = ScheduledJob(name, interval_seconds, coroutine_factory, enabled)
        logger.debug(f"[Scheduler] Job '{name}' every {interval_seconds}s (enabled={enabled})")

    def enable_job(self, name: str) -> bool:
        return self._set_enabled(name, True)

    def disable_job(self, name: str) -> bool:
        return self._set_enabled(name, False)

    def _set_enabled(self, name: str, enabled: bool) -> bool:
        job = self._jobs.get(name)
        if job is None:
            return False
        job.enabled = enabled
        return True

    def get_job_stats(self) -> List[Dict[str, Any]]:
        return [job.to_dict() for job in self._jobs.values()]

    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self.running:
            logger.warning("[Scheduler] start() called twice")
            return
        self._loop_task = asyncio.create_task(self._tick_loop())
        enabled = [job.name for job in self._jobs.values() if job.enabled]
        logger.info(f"[Scheduler] Started, enabled jobs: {enabled or 'none'}")

    async def stop(self) -> None:
        if self._loop_task is not None:
            self._loop_task.cancel()
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None

        pending = list(self._inflight)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        logger.info("[Scheduler] Stopped")

    async def _tick_loop(self) -> None:
        while True:
            now = time.time()
            for job in self._jobs.values():
                if not job.is_due(now):
                    continue
                # Rescheduled at launch so a slow run is never started twice
                job.next_run = now + job.interval_seconds
                task = asyncio.create_task(self._execute_job(job))
                self._inflight.add(task)
                task.add_done_callback(self._inflight.discard)
            await asyncio.sleep(self._tick_interval)

    async def _execute_job(self, job: ScheduledJob) -> None:
        started = time.monotonic()
        try:
            await job.coroutine_factory()
        except Exception as e:
            job.error_count += 1
            logger.opt(exception=e).error(
                f"[Scheduler] Job '{job.name}' failed after {time.monotonic() - started:.2f}s: {e}"
            )
            return
        job.run_count += 1
        job.last_run = time.time()
        logger.debug(f"[Scheduler] Job '{job.name}' done in {time.monotonic() - started:.2f}s")

    # ------------------------------------------------------------------

    async def _job_monitor_sweep(self) -> None:
        if self.batch_runner.state is BatchState.RUNNING:
            logger.info("[Scheduler] Batch already running, sweep skipped")
            return
        if await self.guard.try_acquire("scheduled"):
            await self.batch_runner.run("scheduled")
