"""
analytics.py - RUM Monitor
Derived views over a list of incidents, normally one IncidentStore.all()
snapshot. Nothing here is stored; every call recomputes.

root_causes(incidents)    → most frequently implicated element per URL
predictions(incidents)    → naive spike prediction per URL/metric
summarize(incident)       → one-line natural-language explanation
fix_suggestion(incident)  → fixed remediation template per metric
"""

from collections import Counter

from incident_store import group_by_url
from models import Incident, MetricKind, Prediction, RootCause

PREDICTION_GROWTH = 1.10   # predict a further 10% rise on an increasing series

METRIC_DESCRIPTIONS = {
    MetricKind.LCP: "The largest visible content on the page took too long to load.",
    MetricKind.FCP: "The first visible content on the page took too long to render.",
    MetricKind.FID: "The page took too long to respond to user input.",
    MetricKind.CLS: "The page layout shifted unexpectedly, causing a poor user experience.",
}

FIX_TEMPLATES = {
    MetricKind.LCP: "Optimize the loading of the element {reason}. Consider lazy-loading images, "
                    "compressing assets, or using a CDN.",
    MetricKind.FCP: "Reduce render-blocking resources for the element {reason}. Minify CSS/JS "
                    "and optimize server response time.",
    MetricKind.FID: "Improve input handling for the element {reason}. Minimize JavaScript "
                    "execution and avoid long tasks.",
    MetricKind.CLS: "Ensure dimensions are set for the element {reason} to prevent layout shifts. "
                    "Use reserved spaces for ads/images.",
}

NO_FIX_SUGGESTION = "No specific fix suggestion available."


# ── Root cause ────────────────────────────────────────────────────────────────

def dominant_reason(incidents: list[Incident]) -> str:
    """
    Most frequent reason string. Counter keeps first-insertion order and
    most_common() is stable, so ties go to the reason seen first.
    """
    if not incidents:
        return ""
    return Counter(i.reason for i in incidents).most_common(1)[0][0]


def root_causes(incidents: list[Incident]) -> list[RootCause]:
    return [
        RootCause(url=url, dominant_reason=dominant_reason(group))
        for url, group in group_by_url(incidents).items()
    ]


# ── Prediction ────────────────────────────────────────────────────────────────

def predict_for_url(url: str, incidents: list[Incident]) -> list[Prediction]:
    results = []
    for kind in MetricKind:
        values = [i.value for i in incidents if i.metric == kind]
        if len(values) < 2:
            continue
        last, previous = values[-1], values[-2]
        if last > previous:
            results.append(Prediction(
                url=url,
                metric=kind,
                predicted_value=last * PREDICTION_GROWTH,
                reason=f"Trend indicates a potential spike in {kind.value}",
            ))
    return results


def predictions(incidents: list[Incident]) -> dict[str, list[Prediction]]:
    """Per-URL predictions, in first-seen URL order; URLs without a rising series map to []."""
    return {url: predict_for_url(url, group) for url, group in group_by_url(incidents).items()}


# ── Narrative ─────────────────────────────────────────────────────────────────

def _fmt(value: float) -> str:
    # full precision, no trailing ".0"
    return f"{value:.15g}"


def summarize(incident: Incident) -> str:
    description = METRIC_DESCRIPTIONS.get(incident.metric, "")
    metric_name = getattr(incident.metric, "value", incident.metric)
    summary = (
        f"For the URL {incident.url}, the {metric_name} metric recorded a value of "
        f"{_fmt(incident.value)}."
    )
    if description:
        summary += f" {description}"
    return f"{summary} The element causing the issue is: {incident.reason}."


def fix_suggestion(incident: Incident) -> str:
    template = FIX_TEMPLATES.get(incident.metric)
    if template is None:
        return NO_FIX_SUGGESTION
    return template.format(reason=incident.reason)
