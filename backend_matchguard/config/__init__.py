"""
Configuration management for Backend MatchGuard.

Loads settings from environment variables and an optional .env file.
Exposes a single source of truth for validator policy, commitment store
and API configuration.
"""

from backend_matchguard.config.settings import Settings, get_settings, load_settings  # noqa: F401

__all__ = ["Settings", "get_settings", "load_settings"]
