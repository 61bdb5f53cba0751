"""
incident_store.py - RUM Monitor
Append-only incident collection shared by the scan loop, the ingestion route
and the query route.

One list guarded by one lock: appends from the scheduler thread and request
threads never interleave mid-write, and readers always get a copy.
There is no delete and no capacity cap; the store lives as long as the process.
"""

import threading
from collections.abc import Iterable

from models import Incident


def group_by_url(incidents: Iterable[Incident]) -> dict[str, list[Incident]]:
    # dict preserves first-seen URL order; each group keeps insertion order
    groups: dict[str, list[Incident]] = {}
    for incident in incidents:
        groups.setdefault(incident.url, []).append(incident)
    return groups


class IncidentStore:

    def __init__(self):
        self._incidents: list[Incident] = []
        self._lock = threading.Lock()

    def append(self, incident: Incident) -> None:
        with self._lock:
            self._incidents.append(incident)

    def extend(self, incidents: Iterable[Incident]) -> None:
        """Appends several incidents as one contiguous run."""
        batch = list(incidents)
        with self._lock:
            self._incidents.extend(batch)

    def all(self) -> list[Incident]:
        with self._lock:
            return list(self._incidents)

    def group_by_url(self) -> dict[str, list[Incident]]:
        return group_by_url(self.all())

    def __len__(self) -> int:
        with self._lock:
            return len(self._incidents)
