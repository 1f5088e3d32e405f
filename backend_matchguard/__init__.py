"""
Backend MatchGuard: match-integrity pipeline for reported football results.

Scores how plausible a reported match is against the player's history,
commits the attested result behind a tamper-evident hash, and re-verifies
stored commitments on demand. Modular architecture with clear separation
between validation, commitment store, and API server.
"""

__version__ = "0.1.0"
