"""
config.py - RUM Monitor
Single source of truth for all configuration.
Values come from the environment (optionally a .env file beside this module).
"""

import json
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from models import Target

# Always load .env relative to this file's directory, not cwd
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


# ── Targets ───────────────────────────────────────────────────────────────────

URLS_FILE = Path(os.environ.get("RUM_URLS_FILE", BASE_DIR / "urls.json"))

# ── Scheduler ─────────────────────────────────────────────────────────────────

RUN_INTERVAL_SECONDS = int(os.environ.get("RUM_RUN_INTERVAL_SECONDS", 3600))   # full-fleet scan spacing
TICK_SECONDS         = float(os.environ.get("RUM_TICK_SECONDS", 10))           # due-check cadence
BATCH_SIZE           = int(os.environ.get("RUM_BATCH_SIZE", 10))

# ── Fetch / render ────────────────────────────────────────────────────────────

FETCH_TIMEOUT_SECONDS  = float(os.environ.get("RUM_FETCH_TIMEOUT_SECONDS", 15))
RENDER_TIMEOUT_SECONDS = float(os.environ.get("RUM_RENDER_TIMEOUT_SECONDS", 30))
RENDER_POLL_SECONDS    = float(os.environ.get("RUM_RENDER_POLL_SECONDS", 0.1))
RENDERER               = os.environ.get("RUM_RENDERER", "structural").strip().lower()

# ── Synthetic demo incidents (opt-in only) ────────────────────────────────────

SYNTHETIC_INCIDENTS        = _env_bool("RUM_SYNTHETIC_INCIDENTS")
SYNTHETIC_INTERVAL_SECONDS = float(os.environ.get("RUM_SYNTHETIC_INTERVAL_SECONDS", 60))
SYNTHETIC_WINDOW_SECONDS   = float(os.environ.get("RUM_SYNTHETIC_WINDOW_SECONDS", 5))

# ── HTTP API ──────────────────────────────────────────────────────────────────

INGEST_RATE_LIMIT      = os.environ.get("RUM_INGEST_RATE_LIMIT", "120 per minute")
RATELIMIT_STORAGE_URI  = os.environ.get("RUM_RATELIMIT_STORAGE_URI", "memory://")
HOST                   = os.environ.get("RUM_HOST", "127.0.0.1")
PORT                   = int(os.environ.get("RUM_PORT", 5000))
DEBUG                  = _env_bool("FLASK_DEBUG")

# ── Logging ───────────────────────────────────────────────────────────────────

LOG_LEVEL  = os.environ.get("RUM_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class TargetConfigError(RuntimeError):
    """The target list exists but cannot be used."""


def load_targets(path: Path | str = URLS_FILE) -> list[Target]:
    """
    Reads the monitored URL list, {"urls": [{"url": ..., "name": ...}, ...]}.
    Read once at startup. A missing file means nothing to scan, not an error.
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"Target file {path} not found; scheduler has nothing to scan")
        return []

    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        raise TargetConfigError(f"Could not read target file {path}: {e}") from e

    entries = data.get("urls") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise TargetConfigError(f"Target file {path} must contain a 'urls' list")

    targets: list[Target] = []
    seen = set()
    for i, entry in enumerate(entries):
        url = entry.get("url") if isinstance(entry, dict) else None
        if not isinstance(url, str) or not url.strip():
            logger.warning(f"Skipping target #{i} in {path}: missing url")
            continue
        url = url.strip()
        if url in seen:
            continue
        seen.add(url)
        name = entry.get("name")
        targets.append(Target(url=url, name=name if isinstance(name, str) else None))

    logger.info(f"Loaded {len(targets)} URLs for monitoring: {[t.url for t in targets[:5]]}")
    return targets
