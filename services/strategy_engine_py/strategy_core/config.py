"""Runtime configuration for the strategy engine.

All settings come from environment variables so the engine and the API
can be configured from a container or a ``.env`` file without code
changes.  Values are read once at import time.
"""
from __future__ import annotations

import logging
import os
from typing import Optional

# ──────────────────────────────────────────────────────────────────────────────
# Env helpers (strip quotes/whitespace so .env "KEY=value " doesn’t break things)
# ──────────────────────────────────────────────────────────────────────────────

def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return default
    v = v.strip()
    if (v.startswith('"') and v.endswith('"')) or (v.startswith("'") and v.endswith("'")):
        v = v[1:-1].strip()
    return v or default


LOG_LEVEL = (_env("STRATEGY_LOG_LEVEL", "INFO") or "INFO").upper()
DEFAULT_PROFIT_THRESHOLD = float(_env("STRATEGY_PROFIT_THRESHOLD", "0.0") or "0.0")
CHART_DIR = _env("STRATEGY_CHART_DIR", "charts") or "charts"

# ──────────────────────────────────────────────────────────────────────────────
# Logging
# ──────────────────────────────────────────────────────────────────────────────

_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return a named logger with a single stream handler attached."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(LOG_LEVEL)
    return logger
