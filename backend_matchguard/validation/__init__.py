"""
Validation package: statistical match validator and fairness rating.

Consumes reported match records and the reporting player's history,
applies rule-based integrity checks, and produces severity-weighted
validation results, player profiles, and fairness ratings.
"""

from backend_matchguard.validation.models import (
    IssueSeverity,
    MatchOutcome,
    MatchRecord,
    MatchStats,
    PlayerProfile,
    PlayerTeam,
    TeamStats,
    ValidationIssue,
    ValidationResult,
    parse_datetime,
)
from backend_matchguard.validation.scorer import SEVERITY_PENALTY, compute_validation_score
from backend_matchguard.validation.validator import (
    MatchValidator,
    ValidatorConfig,
    build_player_profile,
    generate_validation_report,
)
from backend_matchguard.validation.fairness import (
    FAIRNESS_TIERS,
    FairnessRating,
    FairnessReport,
    FairnessTier,
    assess_fairness,
    rate_fairness,
)

__all__ = [
    "IssueSeverity",
    "MatchOutcome",
    "MatchRecord",
    "MatchStats",
    "PlayerProfile",
    "PlayerTeam",
    "TeamStats",
    "ValidationIssue",
    "ValidationResult",
    "parse_datetime",
    "SEVERITY_PENALTY",
    "compute_validation_score",
    "MatchValidator",
    "ValidatorConfig",
    "build_player_profile",
    "generate_validation_report",
    "FAIRNESS_TIERS",
    "FairnessRating",
    "FairnessReport",
    "FairnessTier",
    "assess_fairness",
    "rate_fairness",
]
