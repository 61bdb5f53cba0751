"""Batch scheduler: due-checks, batching, failure isolation and bounded render waits."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import httpx
import pytest

from models import MetricKind, Sample
from monitor import (
    BatchMonitor,
    FetchFailure,
    MonitorState,
    PageFetcher,
    RecurringTimer,
    RenderTimeout,
    ScheduleState,
)
from tests.conftest import START, ScriptedRenderer, StalledExecutor, StaticFetcher, slow_lcp

URLS = [f"https://site{n}.example" for n in range(5)]


# ── ScheduleState ─────────────────────────────────────────────────────────────

def test_claim_run_respects_interval():
    schedule = ScheduleState(START, timedelta(hours=1))

    assert schedule.claim_run(START + timedelta(minutes=59, seconds=59)) is False
    assert schedule.last_run_time == START

    due = START + timedelta(hours=1)
    assert schedule.claim_run(due) is True
    assert schedule.last_run_time == due
    assert schedule.next_run_time == due + timedelta(hours=1)
    assert schedule.claim_run(due) is False


def test_minutes_remaining_is_floored_and_never_negative():
    schedule = ScheduleState(START, timedelta(hours=1))
    assert schedule.minutes_remaining(START) == 60
    assert schedule.minutes_remaining(START + timedelta(minutes=30, seconds=30)) == 29
    assert schedule.minutes_remaining(START + timedelta(hours=2)) == 0


# ── Ticks ─────────────────────────────────────────────────────────────────────

def test_tick_before_interval_is_a_noop(make_monitor, clock):
    fetcher = StaticFetcher()
    monitor = make_monitor(urls=URLS, fetcher=fetcher)

    clock.advance(600)
    assert monitor.tick() is False
    assert fetcher.fetched == []
    assert monitor.schedule.last_run_time == START


def test_tick_runs_scan_once_interval_has_elapsed(make_monitor, clock, store):
    renderer = ScriptedRenderer({URLS[0]: [slow_lcp()]})
    monitor  = make_monitor(urls=URLS, renderer=renderer)

    clock.advance(3600)
    assert monitor.tick() is True
    assert monitor.schedule.last_run_time == START + timedelta(hours=1)
    assert len(store) == 1
    assert monitor.state is MonitorState.IDLE

    clock.advance(10)
    assert monitor.tick() is False


def test_last_run_time_is_claimed_before_scan_completes(make_monitor, clock):
    seen = {}

    class ReentrantRenderer(ScriptedRenderer):
        def render(self, url, html):
            seen["state"]     = monitor.state
            seen["reentrant"] = monitor.tick()
            return []

    monitor = make_monitor(urls=URLS[:1], renderer=ReentrantRenderer())
    clock.advance(3600)
    assert monitor.tick() is True

    assert seen["state"] is MonitorState.RUNNING
    assert seen["reentrant"] is False


def test_idle_hook_only_runs_on_idle_ticks(make_monitor, clock):
    calls   = []
    monitor = make_monitor(urls=URLS, idle_hook=lambda now, last: calls.append((now, last)))

    clock.advance(5)
    monitor.tick()
    assert calls == [(START + timedelta(seconds=5), START)]

    clock.advance(3600)
    monitor.tick()
    assert len(calls) == 1


def test_idle_hook_errors_do_not_escape(make_monitor, clock):
    def broken(now, last):
        raise RuntimeError("demo hook broke")

    monitor = make_monitor(urls=URLS, idle_hook=broken)
    clock.advance(1)
    assert monitor.tick() is False


# ── Scans ─────────────────────────────────────────────────────────────────────

def test_initial_scan_covers_every_url_in_batches(make_monitor, clock, caplog):
    fetcher = StaticFetcher()
    monitor = make_monitor(urls=URLS, fetcher=fetcher, batch_size=2)
    clock.advance(42)

    with caplog.at_level("INFO", logger="monitor"):
        report = monitor.run_initial_scan()

    assert fetcher.fetched == URLS
    assert report.scanned == 5
    assert monitor.schedule.last_run_time == START + timedelta(seconds=42)
    assert sum("Monitoring batch of" in r.message for r in caplog.records) == 3


def test_only_breaching_samples_become_incidents(make_monitor, store):
    renderer = ScriptedRenderer({URLS[0]: [
        slow_lcp(3000),
        Sample(kind=MetricKind.FCP, value=100, element="Intro", tag_name="h1"),
        Sample(kind=MetricKind.CLS, value=0.5, element="ad.png", tag_name="img"),
    ]})
    monitor = make_monitor(urls=URLS[:1], renderer=renderer)

    report = monitor.run_initial_scan()

    assert report.incidents == 2
    assert [i.metric for i in store.all()] == [MetricKind.LCP, MetricKind.CLS]
    lcp, cls = store.all()
    assert lcp.anomaly is False
    assert cls.anomaly is True
    assert lcp.reason == '<img id="hero">hero.jpg</img>'


def test_fetch_failure_does_not_abort_batch(make_monitor, store):
    renderer = ScriptedRenderer({url: [slow_lcp()] for url in URLS})
    fetcher  = StaticFetcher(failing={URLS[1]})
    monitor  = make_monitor(urls=URLS, renderer=renderer, fetcher=fetcher, batch_size=10)

    report = monitor.run_initial_scan()

    assert report.failed == [URLS[1]]
    assert report.scanned == 4
    assert {i.url for i in store.all()} == set(URLS) - {URLS[1]}
    assert monitor.state is MonitorState.IDLE


def test_renderer_exception_is_isolated(make_monitor, store):
    class FlakyRenderer(ScriptedRenderer):
        def render(self, url, html):
            if url == URLS[0]:
                raise RuntimeError("renderer crashed")
            return [slow_lcp()]

    monitor = make_monitor(urls=URLS[:3], renderer=FlakyRenderer())
    report  = monitor.run_initial_scan()

    assert report.failed == [URLS[0]]
    assert [i.url for i in store.all()] == URLS[1:3]


def test_renderer_receives_fetched_html(make_monitor):
    renderer = ScriptedRenderer()
    fetcher  = StaticFetcher(pages={URLS[0]: "<h1>fetched</h1>"})
    make_monitor(urls=URLS[:1], renderer=renderer, fetcher=fetcher).run_initial_scan()
    assert renderer.calls == [(URLS[0], "<h1>fetched</h1>")]


def test_stalled_render_times_out(make_monitor, clock, store):
    monitor = make_monitor(
        urls=URLS[:2], executor=StalledExecutor(),
        render_timeout=2.0, poll_interval=0.5,
    )

    report = monitor.run_initial_scan()

    assert report.failed == URLS[:2]
    assert len(store) == 0
    # 2s timeout at 0.5s per poll, per URL
    assert clock.sleeps == [0.5] * 8


def test_hung_renders_do_not_starve_later_urls(store):
    release = threading.Event()
    hung    = ["https://hang1.example", "https://hang2.example"]
    healthy = "https://ok.example"

    class HangingRenderer(ScriptedRenderer):
        def render(self, url, html):
            if url in hung:
                release.wait(timeout=10)
                return []
            return [slow_lcp()]

    pools = []

    def two_worker_pool():
        pools.append(ThreadPoolExecutor(max_workers=2))
        return pools[-1]

    monitor = BatchMonitor(
        hung + [healthy], store, HangingRenderer(),
        fetcher=StaticFetcher(),
        render_timeout=0.3,
        poll_interval=0.01,
        executor_factory=two_worker_pool,
    )
    try:
        report = monitor.run_initial_scan()
    finally:
        release.set()
        for pool in pools:
            pool.shutdown(wait=True)

    assert report.failed == hung
    assert [i.url for i in store.all()] == [healthy]
    # one pool per stalled render, plus the original
    assert len(pools) == 3


def test_wait_for_samples_raises_render_timeout(make_monitor):
    from concurrent.futures import Future

    monitor = make_monitor(render_timeout=1.0, poll_interval=0.25)
    with pytest.raises(RenderTimeout):
        monitor.wait_for_samples(Future(), "https://slow.example")


def test_batch_size_must_be_positive(make_monitor):
    with pytest.raises(ValueError):
        make_monitor(batch_size=0)


# ── PageFetcher ───────────────────────────────────────────────────────────────

def _fetcher(handler):
    return PageFetcher(client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_fetcher_returns_body():
    fetcher = _fetcher(lambda request: httpx.Response(200, text="<h1>ok</h1>"))
    assert fetcher.fetch("https://a.example") == "<h1>ok</h1>"


def test_fetcher_http_error_status_is_fetch_failure():
    fetcher = _fetcher(lambda request: httpx.Response(503))
    with pytest.raises(FetchFailure, match="HTTP 503"):
        fetcher.fetch("https://a.example")


def test_fetcher_transport_error_is_fetch_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(FetchFailure):
        _fetcher(handler).fetch("https://a.example")


# ── RecurringTimer ────────────────────────────────────────────────────────────

def test_recurring_timer_keeps_firing_after_errors():
    fired = threading.Event()
    calls = []

    def callback():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first tick fails")
        fired.set()

    timer = RecurringTimer(0.01, callback)
    timer.start()
    try:
        assert fired.wait(timeout=5)
    finally:
        timer.stop()
    assert len(calls) >= 2
