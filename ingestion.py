"""
ingestion.py - RUM Monitor
Externally reported metric batches (e.g. from the in-browser collector).

Bypasses the renderer: every validated sample is recorded as an incident for
the reporting URL, with the anomaly flag taken from the classifier. Reported
samples are already incident reports, so no threshold gate is applied here.
Validation runs over the whole batch before anything is appended.
"""

import logging
import math
from collections.abc import Callable
from datetime import datetime

from engines.classification_engine import classify
from incident_store import IncidentStore
from models import Incident, MetricKind, Sample

logger = logging.getLogger(__name__)

UNKNOWN_ELEMENT  = "Unknown element"
MISSING_FIELDS   = "URL and metrics are required"
ACCEPTED_MESSAGE = "Metrics received and processed"


class InvalidRequest(ValueError):
    """Client sent an ingestion payload that cannot be processed."""


def _optional_str(value) -> str:
    return value if isinstance(value, str) else ""


def parse_payload(payload) -> tuple[str, list[Sample]]:
    """Validates a {url, metrics: [{name, value, element?}]} body."""
    if not isinstance(payload, dict):
        raise InvalidRequest(MISSING_FIELDS)

    url     = payload.get("url")
    metrics = payload.get("metrics")
    if not isinstance(url, str) or not url.strip() or not isinstance(metrics, list) or not metrics:
        raise InvalidRequest(MISSING_FIELDS)

    samples = []
    for i, metric in enumerate(metrics):
        if not isinstance(metric, dict):
            raise InvalidRequest(f"metrics[{i}] must be an object")
        kind = MetricKind.parse(metric.get("name"))
        if kind is None:
            raise InvalidRequest(
                f"metrics[{i}].name must be one of {', '.join(k.value for k in MetricKind)}"
            )
        value = metric.get("value")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidRequest(f"metrics[{i}].value must be a number")
        try:
            value = float(value)
        except OverflowError:
            value = math.inf
        # stored values must serialise as standard JSON
        if not math.isfinite(value):
            raise InvalidRequest(f"metrics[{i}].value must be a finite number")

        samples.append(Sample(
            kind=kind,
            value=value,
            element=_optional_str(metric.get("element")),
            tag_name=_optional_str(metric.get("tagName")),
            class_list=_optional_str(metric.get("classList")),
            element_id=_optional_str(metric.get("id")),
        ))

    return url.strip(), samples


def ingest(
    store: IncidentStore,
    url: str,
    samples: list[Sample],
    clock: Callable[[], datetime],
) -> list[Incident]:
    """Records one incident per sample and returns the incidents created."""
    if not url or not samples:
        raise InvalidRequest(MISSING_FIELDS)

    now       = clock()
    incidents = []
    for sample in samples:
        verdict = classify(sample.kind, sample.value)
        incidents.append(Incident(
            timestamp=now,
            url=url,
            metric=sample.kind,
            value=sample.value,
            reason=sample.element or UNKNOWN_ELEMENT,
            anomaly=verdict.is_anomaly,
        ))

    store.extend(incidents)
    logger.info(
        f"Ingested {len(incidents)} metric(s) for {url} "
        f"({sum(1 for i in incidents if i.anomaly)} anomalous)"
    )
    return incidents
