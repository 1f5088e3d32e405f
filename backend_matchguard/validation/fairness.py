"""
Fairness rating: composes per-match validation results into one tier.

The tiers are a table, checked top to bottom; the first tier whose
score floor and suspicious-match allowance are both met wins. Tune the
table, not the lookup.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Sequence

from backend_matchguard.validation.models import (
    MatchRecord,
    PlayerProfile,
    ValidationResult,
    as_utc,
)
from backend_matchguard.validation.validator import MatchValidator, build_player_profile


class FairnessRating(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"


@dataclass(frozen=True)
class FairnessTier:
    """
    One row of the rating table.

    max_suspicious_count and max_suspicious_fraction are both allowances;
    the effective allowance is the larger of the two (fraction is taken as
    ceil(fraction * total_matches)).
    """

    rating: FairnessRating
    min_average_score: float
    max_suspicious_count: int = 0
    max_suspicious_fraction: float = 0.0

    def allows(self, average_score: float, suspicious_count: int, total_matches: int) -> bool:
        allowance = max(
            self.max_suspicious_count,
            math.ceil(self.max_suspicious_fraction * total_matches),
        )
        return average_score >= self.min_average_score and suspicious_count <= allowance


FAIRNESS_TIERS: tuple[FairnessTier, ...] = (
    FairnessTier(FairnessRating.EXCELLENT, min_average_score=95.0, max_suspicious_count=0),
    FairnessTier(FairnessRating.GOOD, min_average_score=80.0, max_suspicious_count=1),
    FairnessTier(FairnessRating.FAIR, min_average_score=60.0, max_suspicious_fraction=0.1),
)

# Returned when no tier in the table matches
FALLBACK_RATING = FairnessRating.POOR


def rate_fairness(
    average_score: float,
    suspicious_count: int,
    total_matches: int,
    tiers: Sequence[FairnessTier] = FAIRNESS_TIERS,
) -> FairnessRating:
    """Return the first tier in tiers that allows these numbers, else FALLBACK_RATING."""
    for tier in tiers:
        if tier.allows(average_score, suspicious_count, total_matches):
            return tier.rating
    return FALLBACK_RATING


@dataclass
class FairnessReport:
    """Player-level integrity summary over a full match history."""

    rating: FairnessRating
    average_score: float
    suspicious_count: int
    total_matches: int
    profile: PlayerProfile
    validations: list[ValidationResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rating": self.rating.value,
            "average_score": self.average_score,
            "suspicious_count": self.suspicious_count,
            "total_matches": self.total_matches,
            "profile": self.profile.to_dict(),
            "validations": [v.to_dict() for v in self.validations],
        }


def summarize_results(
    results: Sequence[ValidationResult],
    suspicious_count: int,
    tiers: Sequence[FairnessTier] = FAIRNESS_TIERS,
) -> tuple[float, FairnessRating]:
    """Average score (100 for no results) and the rating for it."""
    average = sum(r.score for r in results) / len(results) if results else 100.0
    average = round(average, 2)
    return average, rate_fairness(average, suspicious_count, len(results), tiers)


def assess_fairness(
    matches: Iterable[MatchRecord],
    validator: MatchValidator,
    tiers: Sequence[FairnessTier] = FAIRNESS_TIERS,
) -> FairnessReport:
    """
    Validate every match against the matches reported before it and rate the player.

    Each match only sees its predecessors (oldest first), so older matches
    are not flagged for predating newer ones.
    """
    ordered = sorted(matches, key=lambda m: as_utc(m.date))
    validations: list[ValidationResult] = []
    for index, match in enumerate(ordered):
        validations.append(validator.validate(match, ordered[:index]))
    suspicious = sum(1 for v in validations if validator.is_suspicious(v))
    average, rating = summarize_results(validations, suspicious, tiers)
    return FairnessReport(
        rating=rating,
        average_score=average,
        suspicious_count=suspicious,
        total_matches=len(ordered),
        profile=build_player_profile(ordered),
        validations=validations,
    )
