"""
app.py - RUM Monitor Flask Application
Composition root: wires the incident store, page renderer, batch monitor and
HTTP routes together, then starts the scheduler and the server.

Start with:
    python app.py
or, under a WSGI server, point it at create_app(start_monitor=True).
"""

import logging
from datetime import timedelta

from flask import Flask

import config
from api import RumContext, limiter, rum_bp
from engines.render_engine import make_renderer
from incident_store import IncidentStore
from monitor import BatchMonitor, PageFetcher
from synthetic import SyntheticIncidentHook

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)


def build_monitor(store: IncidentStore, urls: list[str]) -> BatchMonitor:
    """Builds the scheduler from config; the renderer is chosen here and nowhere else."""
    idle_hook = None
    if config.SYNTHETIC_INCIDENTS:
        logger.warning("Synthetic demo incidents ENABLED (RUM_SYNTHETIC_INCIDENTS=true)")
        idle_hook = SyntheticIncidentHook(
            urls, store,
            interval=config.SYNTHETIC_INTERVAL_SECONDS,
            window=config.SYNTHETIC_WINDOW_SECONDS,
        )

    return BatchMonitor(
        urls,
        store,
        make_renderer(config.RENDERER),
        fetcher=PageFetcher(timeout=config.FETCH_TIMEOUT_SECONDS),
        run_interval=timedelta(seconds=config.RUN_INTERVAL_SECONDS),
        tick_seconds=config.TICK_SECONDS,
        batch_size=config.BATCH_SIZE,
        render_timeout=config.RENDER_TIMEOUT_SECONDS,
        poll_interval=config.RENDER_POLL_SECONDS,
        idle_hook=idle_hook,
    )


def create_app(
    store: IncidentStore | None = None,
    monitor: BatchMonitor | None = None,
    start_monitor: bool = False,
    config_overrides: dict | None = None,
) -> Flask:
    app = Flask(__name__)
    app.json.sort_keys = False
    if config_overrides:
        app.config.update(config_overrides)

    if store is None:
        store = monitor.store if monitor is not None else IncidentStore()
    if monitor is None:
        monitor = build_monitor(store, [t.url for t in config.load_targets()])

    app.extensions["rum"] = RumContext(store=store, monitor=monitor)
    limiter.init_app(app)
    app.register_blueprint(rum_bp)

    if start_monitor:
        monitor.start()
    return app


# ════════════════════════════════════════════════════════════════════════════════
# ENTRY POINT
# ════════════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    configure_logging()
    app = create_app(start_monitor=True)
    # Reloader would fork a second scheduler
    app.run(host=config.HOST, port=config.PORT, debug=config.DEBUG, use_reloader=False)
