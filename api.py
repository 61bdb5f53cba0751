"""
api.py - RUM Monitor
JSON routes for the dashboard and the in-browser collector.

  POST /api/rum-monitor  → ingest a metric batch      (rate limited)
  GET  /api/rum-monitor  → incidents + analytics + scheduler timing
"""

import logging
from dataclasses import dataclass

from flask import Blueprint, current_app, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

import config
from incident_store import IncidentStore
from ingestion import ACCEPTED_MESSAGE, InvalidRequest, ingest, parse_payload
from monitor import BatchMonitor
from snapshot import build_snapshot

logger = logging.getLogger(__name__)

rum_bp = Blueprint("rum", __name__)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],           # No global limit; apply per-route
    storage_uri=config.RATELIMIT_STORAGE_URI,
)


@dataclass
class RumContext:
    store:   IncidentStore
    monitor: BatchMonitor


def _rum() -> RumContext:
    return current_app.extensions["rum"]


@rum_bp.errorhandler(InvalidRequest)
def invalid_request(e):
    logger.info(f"Rejected ingestion request: {e}")
    return jsonify({"error": str(e)}), 400


@rum_bp.route("/api/rum-monitor", methods=["POST"])
@limiter.limit(config.INGEST_RATE_LIMIT)
def ingest_metrics():
    rum          = _rum()
    url, samples = parse_payload(request.get_json(silent=True))
    incidents    = ingest(rum.store, url, samples, clock=rum.monitor.clock)
    return jsonify({
        "message":   ACCEPTED_MESSAGE,
        "incidents": [i.to_dict() for i in incidents],
    })


@rum_bp.route("/api/rum-monitor", methods=["GET"])
def rum_snapshot():
    rum = _rum()
    return jsonify(build_snapshot(rum.store, rum.monitor.schedule, rum.monitor.clock()))
