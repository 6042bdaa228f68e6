"""Static configuration for fiberscope.

All user-editable settings (target page, pacing, scrolling, drift
landmarks, logging) live in a single JSON file for quick edits without
touching Python.
"""

import json
import os

from core.config import DEFAULT_RATE_LIMITER, RateLimiterConfig, SessionConfig
from core.drift import DEFAULT_LANDMARKS, STORAGE_KEY

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Settings are loaded from config.json at the project root unless
# FIBERSCOPE_CONFIG points somewhere else.
CONFIG_PATH = os.getenv("FIBERSCOPE_CONFIG") or os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


def _rate_limiter_config(raw: dict) -> RateLimiterConfig:
    """Build the limiter config; the JSON uses friendlier units."""

    default = DEFAULT_RATE_LIMITER
    per_minute = float(raw.get("batches_per_minute", default.refill_rate * 60_000))
    config = RateLimiterConfig(
        max_tokens=float(raw.get("max_tokens", default.max_tokens)),
        refill_rate=per_minute / 60_000,
        pause_interval=float(raw.get("pause_interval_minutes", default.pause_interval / 60_000)) * 60_000,
        pause_min=float(raw.get("pause_min_minutes", default.pause_min / 60_000)) * 60_000,
        pause_max=float(raw.get("pause_max_minutes", default.pause_max / 60_000)) * 60_000,
    )
    # Fail fast instead of running a limiter that never admits anything.
    if config.max_tokens < 1 or config.refill_rate <= 0:
        raise RuntimeError("rate_limit.max_tokens must be >= 1 and batches_per_minute > 0")
    if config.pause_min > config.pause_max:
        raise RuntimeError("rate_limit.pause_min_minutes must not exceed pause_max_minutes")
    return config


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Page the browser opens; the chat must be reachable from there.
TARGET_URL = _CONFIG.get("target_url", "https://web.whatsapp.com")

# Where to store the SQLite database and default export directory.
DB_PATH = _resolve_path(_CONFIG.get("db_path", "fiberscope.db"))
EXPORT_DIR = _resolve_path(_CONFIG.get("export_dir", "exports"))

# Pacing for batch reads; see core.rate_limiter for semantics.
RATE_LIMIT = _rate_limiter_config(_CONFIG.get("rate_limit", {}))

# Scrolling and extraction settings for one session.
_session = _CONFIG.get("session", {})
SESSION = SessionConfig(
    scroll_depth=float(_session.get("scroll_depth", 3000)),
    scroll_step=float(_session.get("scroll_step", 300)),
    message_component=str(_session.get("message_component", "Message")),
    max_nodes=int(_session.get("max_nodes", 500)),
    poll_interval_ms=float(_session.get("poll_interval_ms", 1000)),
)
if SESSION.scroll_step <= 0:
    raise RuntimeError("session.scroll_step must be positive")
# How long to wait for the conversation panel after the page loads.
CHAT_WAIT_TIMEOUT_MS = float(_session.get("chat_wait_timeout_ms", 120_000))

# Landmarks hashed by the drift detector. Changing them invalidates the
# stored fingerprint on the next run.
_drift = _CONFIG.get("drift", {})
LANDMARKS = tuple(_drift.get("landmarks") or DEFAULT_LANDMARKS)
FINGERPRINT_KEY = _drift.get("storage_key", STORAGE_KEY)

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
