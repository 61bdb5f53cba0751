"""
models.py - RUM Monitor
In-process data model for the incident pipeline.

Incidents live only for the lifetime of the process (see incident_store.py),
so these are plain dataclasses rather than ORM rows. Wire serialisation uses
the camelCase keys expected by the dashboard and the in-browser collector.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


# ── Metric kinds ──────────────────────────────────────────────────────────────

class MetricKind(str, Enum):
    LCP = "LCP"   # Largest Contentful Paint
    FCP = "FCP"   # First Contentful Paint
    FID = "FID"   # First Input Delay
    CLS = "CLS"   # Cumulative Layout Shift

    @property
    def unit(self) -> str:
        return "" if self is MetricKind.CLS else "ms"

    @classmethod
    def parse(cls, name) -> "MetricKind | None":
        try:
            return cls(name)
        except ValueError:
            return None


# ── Thresholds ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Threshold:
    limit:              float
    anomaly_multiplier: float = 1.6

    @property
    def anomaly_limit(self) -> float:
        return self.limit * self.anomaly_multiplier


# ── Samples ───────────────────────────────────────────────────────────────────

@dataclass
class Sample:
    """
    One observed or synthesized measurement, attributed to a page element.
    Consumed straight into an Incident or discarded.
    """
    kind:       MetricKind
    value:      float
    element:    str = ""
    tag_name:   str = ""
    class_list: str = ""
    element_id: str = ""

    def describe(self) -> str:
        """Renders the element as a short markup snippet, e.g. <img id="hero">hero.jpg</img>."""
        tag   = (self.tag_name or "div").lower()
        attrs = ""
        if self.element_id and self.element_id != "None":
            attrs += f' id="{self.element_id}"'
        if self.class_list and self.class_list != "None":
            attrs += f' class="{self.class_list}"'
        return f"<{tag}{attrs}>{self.element}</{tag}>"


# ── Incidents ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Incident:
    timestamp: datetime
    url:       str
    metric:    MetricKind
    value:     float
    reason:    str
    anomaly:   bool = False

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "url":       self.url,
            "metric":    self.metric.value,
            "value":     self.value,
            "reason":    self.reason,
            "anomaly":   self.anomaly,
        }


# ── Derived analytics ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RootCause:
    url:             str
    dominant_reason: str

    def to_dict(self) -> dict:
        return {"url": self.url, "rootCause": self.dominant_reason}


@dataclass(frozen=True)
class Prediction:
    url:             str
    metric:          MetricKind
    predicted_value: float
    reason:          str

    def to_dict(self) -> dict:
        return {
            "url":            self.url,
            "metric":         self.metric.value,
            "predictedValue": self.predicted_value,
            "reason":         self.reason,
        }


# ── Monitored targets ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Target:
    url:  str
    name: str | None = None
