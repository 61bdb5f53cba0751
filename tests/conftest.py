"""
Shared fixtures for the RUM Monitor test suite.

Time is simulated: FakeClock is both the monitor's clock and its sleep, so
polling waits and schedule checks advance instantly and deterministically.
Rendering runs inline through ImmediateExecutor instead of a thread pool.
"""

from concurrent.futures import Future
from datetime import datetime, timedelta, UTC

import pytest

from app import create_app
from incident_store import IncidentStore
from models import MetricKind, Sample
from monitor import BatchMonitor, FetchFailure

START = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


class FakeClock:

    def __init__(self, start: datetime = START):
        self.now    = start
        self.sleeps = []

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


class ImmediateExecutor:
    """Runs submitted work synchronously and hands back a finished Future."""

    def submit(self, fn, *args, **kwargs) -> Future:
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait=True, cancel_futures=False):
        pass


class StalledExecutor(ImmediateExecutor):
    """Never completes: models a render that hangs."""

    def submit(self, fn, *args, **kwargs) -> Future:
        return Future()


class StaticFetcher:

    def __init__(self, pages: dict[str, str] | None = None, failing: set[str] | None = None):
        self.pages   = pages or {}
        self.failing = failing or set()
        self.fetched = []

    def fetch(self, url: str) -> str:
        self.fetched.append(url)
        if url in self.failing:
            raise FetchFailure(f"{url}: connection refused")
        return self.pages.get(url, "<html><body><h1>Hello</h1></body></html>")

    def close(self):
        pass


class ScriptedRenderer:
    """Returns pre-set samples per URL; unknown URLs yield nothing."""
    name = "scripted"

    def __init__(self, samples_by_url: dict[str, list[Sample]] | None = None):
        self.samples_by_url = samples_by_url or {}
        self.calls = []

    def render(self, url: str, html: str) -> list[Sample]:
        self.calls.append((url, html))
        return list(self.samples_by_url.get(url, []))


def slow_lcp(value: float = 3000.0, element: str = "hero.jpg") -> Sample:
    return Sample(kind=MetricKind.LCP, value=value, element=element, tag_name="img", element_id="hero")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return IncidentStore()


@pytest.fixture
def make_monitor(store, clock):
    def _make(urls=(), renderer=None, fetcher=None, executor=None, **kwargs):
        executor = executor or ImmediateExecutor()
        return BatchMonitor(
            list(urls),
            store,
            renderer or ScriptedRenderer(),
            fetcher=fetcher or StaticFetcher(),
            clock=clock,
            sleep=clock.sleep,
            executor_factory=lambda: executor,
            **kwargs,
        )
    return _make


@pytest.fixture
def client(make_monitor):
    monitor = make_monitor(urls=["https://a.example"])
    app = create_app(
        monitor=monitor,
        config_overrides={"TESTING": True, "RATELIMIT_ENABLED": False},
    )
    return app.test_client()
