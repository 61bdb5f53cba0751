"""
snapshot.py - RUM Monitor
Assembles the read-side payload served by GET /api/rum-monitor.
No server-side filtering; the dashboard filters what it receives.
"""

from datetime import datetime

from analytics import fix_suggestion, predictions, root_causes, summarize
from incident_store import IncidentStore
from monitor import ScheduleState


def enrich_incident(incident) -> dict:
    payload = incident.to_dict()
    payload["summary"]       = summarize(incident)
    payload["fixSuggestion"] = fix_suggestion(incident)
    return payload


def build_snapshot(store: IncidentStore, schedule: ScheduleState, now: datetime) -> dict:
    # one read; every section is derived from the same list
    incidents = store.all()
    return {
        "incidents":  [enrich_incident(i) for i in incidents],
        "rootCauses": [rc.to_dict() for rc in root_causes(incidents)],
        "predictions": [
            {"url": url, "predictions": [p.to_dict() for p in preds]}
            for url, preds in predictions(incidents).items()
        ],
        "lastRunTime":      schedule.last_run_time.isoformat(),
        "nextRunTime":      schedule.next_run_time.isoformat(),
        "minutesRemaining": schedule.minutes_remaining(now),
    }
