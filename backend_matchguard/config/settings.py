"""
Application settings and environment configuration.

Single typed view over MATCHGUARD_* environment variables (and .env).
Validator and commitment-store configs are derived from it, but both
components also accept explicit configs so tests and embedders can inject
their own policy without touching the environment.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass

from backend_matchguard.config.env import env_float, env_int, env_str, load_matchguard_env

DEFAULT_ERROR_PENALTY = 20.0
DEFAULT_WARNING_PENALTY = 8.0
DEFAULT_SUSPICION_THRESHOLD = 70.0
DEFAULT_MIN_DURATION_MINUTES = 1.0
DEFAULT_MAX_DURATION_MINUTES = 180.0
DEFAULT_MIN_MINUTES_PER_GOAL = 2.0
DEFAULT_ZSCORE_THRESHOLD = 3.0
DEFAULT_MIN_HISTORY_FOR_STATS = 5
DEFAULT_PATTERN_WINDOW = 10
DEFAULT_MAX_IDENTICAL_RUN = 5
DEFAULT_PENDING_TIMEOUT_SEC = 300.0
DEFAULT_CHAIN_ID = 8453
DEFAULT_POLL_INTERVAL_SEC = 15.0


@dataclass(frozen=True)
class Settings:
    """Service configuration read from MATCHGUARD_*, API_HOST and API_PORT."""

    error_penalty: float = DEFAULT_ERROR_PENALTY
    warning_penalty: float = DEFAULT_WARNING_PENALTY
    suspicion_threshold: float = DEFAULT_SUSPICION_THRESHOLD
    min_duration_minutes: float = DEFAULT_MIN_DURATION_MINUTES
    max_duration_minutes: float = DEFAULT_MAX_DURATION_MINUTES
    min_minutes_per_goal: float = DEFAULT_MIN_MINUTES_PER_GOAL
    zscore_threshold: float = DEFAULT_ZSCORE_THRESHOLD
    min_history_for_stats: int = DEFAULT_MIN_HISTORY_FOR_STATS
    pattern_window: int = DEFAULT_PATTERN_WINDOW
    max_identical_run: int = DEFAULT_MAX_IDENTICAL_RUN

    db_url: str = ""
    """Empty means the in-memory commitment repository."""
    pending_timeout_sec: float = DEFAULT_PENDING_TIMEOUT_SEC
    chain_id: int = DEFAULT_CHAIN_ID
    contract_address: str = ""
    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC
    """Receipt polling interval for the API background thread; 0 disables it."""

    api_host: str = "0.0.0.0"
    api_port: int = 8000


def load_settings() -> Settings:
    """Build Settings from the environment (uncached)."""
    load_matchguard_env()
    return Settings(
        error_penalty=env_float("MATCHGUARD_ERROR_PENALTY", DEFAULT_ERROR_PENALTY),
        warning_penalty=env_float("MATCHGUARD_WARNING_PENALTY", DEFAULT_WARNING_PENALTY),
        suspicion_threshold=env_float("MATCHGUARD_SUSPICION_THRESHOLD", DEFAULT_SUSPICION_THRESHOLD),
        min_duration_minutes=env_float("MATCHGUARD_MIN_DURATION_MINUTES", DEFAULT_MIN_DURATION_MINUTES),
        max_duration_minutes=env_float("MATCHGUARD_MAX_DURATION_MINUTES", DEFAULT_MAX_DURATION_MINUTES),
        min_minutes_per_goal=env_float("MATCHGUARD_MIN_MINUTES_PER_GOAL", DEFAULT_MIN_MINUTES_PER_GOAL),
        zscore_threshold=env_float("MATCHGUARD_ZSCORE_THRESHOLD", DEFAULT_ZSCORE_THRESHOLD),
        min_history_for_stats=env_int("MATCHGUARD_MIN_HISTORY_FOR_STATS", DEFAULT_MIN_HISTORY_FOR_STATS),
        pattern_window=env_int("MATCHGUARD_PATTERN_WINDOW", DEFAULT_PATTERN_WINDOW),
        max_identical_run=env_int("MATCHGUARD_MAX_IDENTICAL_RUN", DEFAULT_MAX_IDENTICAL_RUN),
        db_url=env_str("MATCHGUARD_DB_URL"),
        pending_timeout_sec=env_float("MATCHGUARD_PENDING_TIMEOUT_SEC", DEFAULT_PENDING_TIMEOUT_SEC),
        chain_id=env_int("MATCHGUARD_CHAIN_ID", DEFAULT_CHAIN_ID),
        contract_address=env_str("MATCHGUARD_CONTRACT_ADDRESS"),
        poll_interval_sec=env_float("MATCHGUARD_POLL_INTERVAL_SEC", DEFAULT_POLL_INTERVAL_SEC),
        api_host=env_str("API_HOST", "0.0.0.0") or "0.0.0.0",
        api_port=env_int("API_PORT", 8000),
    )


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the current application settings.

    Cached for the life of the process; call get_settings.cache_clear()
    after changing the environment (tests do this via monkeypatch).
    """
    return load_settings()
