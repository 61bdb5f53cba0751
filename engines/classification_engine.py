"""
Classification Engine - RUM Monitor
Static per-metric thresholds and the incident/anomaly verdict.

The two predicates are evaluated independently:
  is_incident = value > limit
  is_anomaly  = value > limit * anomaly_multiplier
A sample becomes an incident whenever either holds.
"""

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType

from models import Incident, MetricKind, Sample, Threshold

ANOMALY_MULTIPLIER = 1.6   # 60% above the limit is treated as anomalous

# LCP/FCP/FID in milliseconds, CLS unitless
THRESHOLDS = MappingProxyType({
    MetricKind.LCP: Threshold(limit=2500, anomaly_multiplier=ANOMALY_MULTIPLIER),
    MetricKind.FCP: Threshold(limit=2000, anomaly_multiplier=ANOMALY_MULTIPLIER),
    MetricKind.FID: Threshold(limit=100,  anomaly_multiplier=ANOMALY_MULTIPLIER),
    MetricKind.CLS: Threshold(limit=0.1,  anomaly_multiplier=ANOMALY_MULTIPLIER),
})


@dataclass(frozen=True)
class Verdict:
    is_incident: bool
    is_anomaly:  bool

    @property
    def qualifies(self) -> bool:
        return self.is_incident or self.is_anomaly


def classify(kind: MetricKind, value: float) -> Verdict:
    threshold = THRESHOLDS[kind]
    return Verdict(
        is_incident=value > threshold.limit,
        is_anomaly=value > threshold.anomaly_limit,
    )


def build_incident(url: str, sample: Sample, timestamp: datetime, reason: str | None = None) -> Incident | None:
    """
    Scan-path accept: returns an Incident when the sample breaches its
    threshold, None otherwise. reason defaults to the sample's element snippet.
    """
    verdict = classify(sample.kind, sample.value)
    if not verdict.qualifies:
        return None
    return Incident(
        timestamp=timestamp,
        url=url,
        metric=sample.kind,
        value=sample.value,
        reason=reason if reason is not None else sample.describe(),
        anomaly=verdict.is_anomaly,
    )
