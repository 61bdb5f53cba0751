"""
synthetic.py - RUM Monitor
Demo-only incident source. Off unless RUM_SYNTHETIC_INCIDENTS=true.

Hooked into idle scheduler ticks: within the first `window` seconds of every
`interval` since the last full scan, one random sample is generated for a
random monitored URL and classified like any scan result. It is appended
only if it breaches its threshold.
"""

import logging
import random
from datetime import datetime

from engines.classification_engine import THRESHOLDS, build_incident
from incident_store import IncidentStore
from models import Incident, MetricKind, Sample

logger = logging.getLogger(__name__)


class SyntheticIncidentHook:

    def __init__(
        self,
        urls: list[str],
        store: IncidentStore,
        interval: float = 60.0,
        window: float = 5.0,
        rng: random.Random | None = None,
    ):
        self.urls     = list(urls)
        self.store    = store
        self.interval = interval
        self.window   = window
        self._rng     = rng or random.Random()

    def in_window(self, now: datetime, last_run_time: datetime) -> bool:
        if self.interval <= 0:
            return False
        elapsed = (now - last_run_time).total_seconds()
        return elapsed % self.interval < self.window

    def make_sample(self) -> Sample:
        kind  = self._rng.choice(list(MetricKind))
        value = THRESHOLDS[kind].limit * (0.5 + self._rng.random() * 1.5)
        return Sample(kind=kind, value=value, element=f"Random test element for {kind.value}")

    def __call__(self, now: datetime, last_run_time: datetime) -> Incident | None:
        if not self.urls or not self.in_window(now, last_run_time):
            return None

        url      = self._rng.choice(self.urls)
        sample   = self.make_sample()
        incident = build_incident(url, sample, now, reason=sample.element)
        if incident is not None:
            self.store.append(incident)
            logger.info(
                f"Added test incident for development purposes: {url} - {incident.metric.value}"
            )
        return incident
