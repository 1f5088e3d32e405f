"""
Structured logging for Backend MatchGuard.

JSON logs with timestamp, event_type, logger and event context
(match_id, tx_hash, issue codes). Use get_logger() in all modules.
"""

from backend_matchguard.matchguard_logging.logger import bind_match, configure_logging, get_logger

__all__ = ["bind_match", "configure_logging", "get_logger"]
