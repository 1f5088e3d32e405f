"""
Environment variable loading and validation for MatchGuard.

- Loads .env from project root when available (python-dotenv).
- Real environment variables always win over .env values.
- Numeric readers fall back to the default on missing or malformed values.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from backend_matchguard.matchguard_logging import get_logger

logger = get_logger(__name__)

# Project root: config is backend_matchguard/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"


def load_matchguard_env() -> None:
    """Load .env from project root. Safe to call multiple times."""
    if _ENV_PATH.is_file():
        load_dotenv(_ENV_PATH, override=False)


def env_str(name: str, default: str = "") -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip()


def env_float(name: str, default: float) -> float:
    """Read a float from env; malformed values log a warning and use default."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("config_invalid_float", name=name, value=raw, default=default)
        return default


def env_int(name: str, default: int) -> int:
    """Read an int from env; malformed values log a warning and use default."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("config_invalid_int", name=name, value=raw, default=default)
        return default
