"""
monitor.py - RUM Monitor
Batch monitoring scheduler.

  Idle ──(tick finds now - last_run_time >= run_interval)──▶ Running
  Running ──(scan finished, whatever the per-URL outcomes)──▶ Idle

last_run_time is claimed at the *start* of a run under the schedule lock, so a
tick that fires while a scan is still in progress sees the engine as not due.

Per-URL pipeline: HTTP GET → renderer → bounded wait for samples → classify →
append incidents. A failure for one URL is logged and the scan moves on.

Clock, sleep and the render executor are injectable so tests can drive time
without wall-clock delays.
"""

import logging
import math
import threading
import time
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from enum import Enum

import httpx

from engines.classification_engine import build_incident
from engines.render_engine import PageRenderer
from incident_store import IncidentStore
from models import Incident, Sample

logger = logging.getLogger(__name__)

USER_AGENT = "RUMMonitor/1.0"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def default_render_pool() -> Executor:
    return ThreadPoolExecutor(max_workers=2, thread_name_prefix="rum-render")


class FetchFailure(Exception):
    """Network or HTTP error while fetching one target."""


class RenderTimeout(Exception):
    """Renderer produced no samples within the bounded wait."""


# ── Fetching ──────────────────────────────────────────────────────────────────

class PageFetcher:
    """Plain GET with a hard per-request timeout."""

    def __init__(self, timeout: float = 15.0, client: httpx.Client | None = None):
        self._client = client or httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    def fetch(self, url: str) -> str:
        try:
            resp = self._client.get(url)
        except httpx.HTTPError as e:
            raise FetchFailure(f"{url}: {e}") from e
        if resp.status_code >= 400:
            raise FetchFailure(f"{url}: HTTP {resp.status_code}")
        return resp.text

    def close(self) -> None:
        self._client.close()


# ── Schedule state ────────────────────────────────────────────────────────────

class ScheduleState:

    def __init__(self, last_run_time: datetime, run_interval: timedelta):
        self.last_run_time = last_run_time
        self.run_interval  = run_interval
        self._lock         = threading.Lock()

    @property
    def next_run_time(self) -> datetime:
        return self.last_run_time + self.run_interval

    def is_due(self, now: datetime) -> bool:
        return now - self.last_run_time >= self.run_interval

    def claim_run(self, now: datetime) -> bool:
        """Atomically checks the due condition and, if due, stamps last_run_time."""
        with self._lock:
            if not self.is_due(now):
                return False
            self.last_run_time = now
            return True

    def mark_run(self, now: datetime) -> None:
        with self._lock:
            self.last_run_time = now

    def minutes_remaining(self, now: datetime) -> int:
        remaining = (self.next_run_time - now).total_seconds()
        return max(0, math.floor(remaining / 60))


class MonitorState(str, Enum):
    IDLE    = "idle"
    RUNNING = "running"


@dataclass
class ScanReport:
    started_at:  datetime
    finished_at: datetime | None = None
    scanned:     int = 0
    failed:      list[str] = field(default_factory=list)
    incidents:   int = 0


# ── Recurring timer ───────────────────────────────────────────────────────────

class RecurringTimer:
    """
    Fires callback every `interval` seconds on a daemon timer thread.
    The next fire is armed before the callback runs, so a slow callback does
    not delay the cadence. Exceptions are logged and never stop the timer.
    """

    def __init__(self, interval: float, callback: Callable[[], object], name: str = "rum-tick"):
        self.interval  = interval
        self._callback = callback
        self._name     = name
        self._timer: threading.Timer | None = None
        self._stopped  = False
        self._lock     = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._timer        = threading.Timer(self.interval, self._fire)
            self._timer.name   = self._name
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        self.start()
        try:
            self._callback()
        except Exception as e:
            logger.error(f"Scheduled tick failed: {e}", exc_info=True)

    def stop(self) -> None:
        with self._lock:
            self._stopped = True
            if self._timer is not None:
                self._timer.cancel()


# ── Batch monitor ─────────────────────────────────────────────────────────────

class BatchMonitor:

    def __init__(
        self,
        urls: list[str],
        store: IncidentStore,
        renderer: PageRenderer,
        *,
        fetcher: PageFetcher | None = None,
        run_interval: timedelta = timedelta(hours=1),
        tick_seconds: float = 10.0,
        batch_size: int = 10,
        render_timeout: float = 30.0,
        poll_interval: float = 0.1,
        clock: Clock = utc_now,
        sleep: Callable[[float], None] = time.sleep,
        executor_factory: Callable[[], Executor] | None = None,
        idle_hook: Callable[[datetime, datetime], object] | None = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.urls           = list(urls)
        self.store          = store
        self.renderer       = renderer
        self.fetcher        = fetcher or PageFetcher()
        self.batch_size     = batch_size
        self.render_timeout = render_timeout
        self.poll_interval  = poll_interval
        self.idle_hook      = idle_hook
        self.schedule       = ScheduleState(clock(), run_interval)
        self.state          = MonitorState.IDLE
        self.last_report: ScanReport | None = None

        self.clock         = clock
        self._sleep        = sleep
        self._new_executor = executor_factory or default_render_pool
        self._executor     = self._new_executor()
        self._state_lock   = threading.Lock()
        self._ticker       = RecurringTimer(tick_seconds, self.tick)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Initial scan on a background thread, then the recurring due-check."""
        threading.Thread(target=self.run_initial_scan, name="rum-initial-scan", daemon=True).start()
        self._ticker.start()
        logger.info(
            f"Monitor started: {len(self.urls)} URLs, renderer={self.renderer.name}, "
            f"interval={self.schedule.run_interval}, tick={self._ticker.interval}s"
        )

    def stop(self) -> None:
        self._ticker.stop()
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.fetcher.close()

    def run_initial_scan(self) -> ScanReport:
        now = self.clock()
        logger.info("Starting initial URL monitoring...")
        self.schedule.mark_run(now)
        return self._execute_scan()

    def tick(self) -> bool:
        """Due-check. Returns True when a full-fleet scan was run."""
        now = self.clock()
        if not self.schedule.claim_run(now):
            logger.debug(
                f"Skipping monitoring, next run in {self.schedule.minutes_remaining(now)} minutes"
            )
            if self.idle_hook is not None:
                try:
                    self.idle_hook(now, self.schedule.last_run_time)
                except Exception as e:
                    logger.warning(f"Idle hook failed: {e}")
            return False

        logger.info(f"Starting scheduled URL monitoring at {now.isoformat()}")
        self._execute_scan()
        return True

    # ── Scan ─────────────────────────────────────────────────────────────────

    def _execute_scan(self) -> ScanReport:
        with self._state_lock:
            self.state = MonitorState.RUNNING
        report = ScanReport(started_at=self.clock())
        try:
            for i in range(0, len(self.urls), self.batch_size):
                self.scan_batch(self.urls[i:i + self.batch_size], report)
        except Exception as e:
            logger.error(f"Scan aborted unexpectedly: {e}", exc_info=True)
        finally:
            report.finished_at = self.clock()
            with self._state_lock:
                self.state       = MonitorState.IDLE
                self.last_report = report

        logger.info(
            f"URL monitoring completed: scanned={report.scanned} failed={len(report.failed)} "
            f"incidents={report.incidents}"
        )
        return report

    def scan_batch(self, batch: list[str], report: ScanReport) -> None:
        logger.info(f"Monitoring batch of {len(batch)} URLs")
        for url in batch:
            try:
                incidents = self.monitor_url(url)
            except (FetchFailure, RenderTimeout) as e:
                logger.warning(f"Failed to monitor URL {url}: {e}")
                report.failed.append(url)
                continue
            except Exception as e:
                logger.error(f"Failed to monitor URL {url}: {e}", exc_info=True)
                report.failed.append(url)
                continue
            report.scanned   += 1
            report.incidents += len(incidents)

    def monitor_url(self, url: str) -> list[Incident]:
        html   = self.fetcher.fetch(url)
        future = self._executor.submit(self.renderer.render, url, html)
        try:
            samples = self.wait_for_samples(future, url)
        except RenderTimeout:
            self._recycle_executor()
            raise

        now       = self.clock()
        incidents = []
        for sample in samples:
            incident = build_incident(url, sample, now)
            if incident is None:
                continue
            self.store.append(incident)
            incidents.append(incident)
            logger.info(
                f"Logged incident for {url}: {incident.metric.value}={incident.value:.4g} "
                f"anomaly={incident.anomaly}"
            )
        return incidents

    def wait_for_samples(self, future: Future, url: str) -> list[Sample]:
        """Polls the render future until it completes or render_timeout elapses."""
        deadline = self.clock() + timedelta(seconds=self.render_timeout)
        while not future.done():
            if self.clock() >= deadline:
                future.cancel()
                raise RenderTimeout(f"no samples from renderer for {url} after {self.render_timeout}s")
            self._sleep(self.poll_interval)
        return list(future.result() or [])

    def _recycle_executor(self) -> None:
        """
        A timed-out render may still hold its worker thread, and Future.cancel()
        cannot stop a running call. The stalled pool is abandoned and later URLs
        get fresh workers.
        """
        logger.warning("Render worker stalled; replacing the render pool")
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._executor = self._new_executor()
