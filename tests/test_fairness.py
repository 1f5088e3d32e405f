"""
Tests for the fairness rating table and assess_fairness.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from backend_matchguard.validation import (
    FAIRNESS_TIERS,
    FairnessRating,
    FairnessTier,
    assess_fairness,
    rate_fairness,
)
from tests.conftest import FIXED_NOW


@pytest.mark.parametrize(
    "average,suspicious,total,expected",
    [
        (100.0, 0, 10, FairnessRating.EXCELLENT),
        (95.0, 0, 10, FairnessRating.EXCELLENT),
        (99.0, 1, 10, FairnessRating.GOOD),
        (80.0, 1, 10, FairnessRating.GOOD),
        (94.9, 0, 10, FairnessRating.GOOD),
        (79.9, 0, 10, FairnessRating.FAIR),
        (85.0, 2, 20, FairnessRating.FAIR),
        (85.0, 3, 20, FairnessRating.POOR),
        (60.0, 1, 5, FairnessRating.FAIR),
        (59.9, 0, 10, FairnessRating.POOR),
        (100.0, 0, 0, FairnessRating.EXCELLENT),
    ],
)
def test_rate_fairness_default_table(average, suspicious, total, expected):
    """Default tiers: Excellent >=95/0, Good >=80/<=1, Fair >=60/<=10%, else Poor."""
    assert rate_fairness(average, suspicious, total) == expected


def test_fair_tier_rounds_fraction_up():
    """10% of 15 matches allows 2 suspicious matches."""
    assert rate_fairness(70.0, 2, 15) == FairnessRating.FAIR
    assert rate_fairness(70.0, 3, 15) == FairnessRating.POOR


def test_custom_tier_table():
    """Tiers are data: a stricter table changes the rating without touching the lookup."""
    strict = (FairnessTier(FairnessRating.EXCELLENT, min_average_score=99.0),)
    assert rate_fairness(97.0, 0, 10, strict) == FairnessRating.POOR
    assert rate_fairness(97.0, 0, 10, FAIRNESS_TIERS) == FairnessRating.EXCELLENT


def test_assess_fairness_empty_history(validator):
    """No matches: average 100, rated Excellent, zero profile."""
    report = assess_fairness([], validator)
    assert report.average_score == 100.0
    assert report.rating == FairnessRating.EXCELLENT
    assert report.total_matches == 0
    assert report.profile.total_matches == 0


def test_assess_fairness_clean_history(validator, match_factory):
    """Clean, well-spaced matches rate Excellent."""
    matches = [
        match_factory(f"m-{i}", date=FIXED_NOW - timedelta(days=10 - i), player_goals=1) for i in range(6)
    ]
    report = assess_fairness(matches, validator)
    assert report.rating == FairnessRating.EXCELLENT
    assert report.suspicious_count == 0
    assert report.total_matches == 6
    assert len(report.validations) == 6


def test_assess_fairness_sorts_by_date(validator, match_factory):
    """Matches given newest first are still validated in date order (no out-of-order warnings)."""
    matches = [match_factory(f"m-{i}", date=FIXED_NOW - timedelta(days=10 - i)) for i in range(4)]
    report = assess_fairness(list(reversed(matches)), validator)
    codes = {code for v in report.validations for code in v.codes}
    assert "OUT_OF_ORDER_REPORT" not in codes


def test_assess_fairness_counts_suspicious(validator, match_factory):
    """Two impossible matches out of four drag the rating down to Poor."""
    matches = [
        match_factory("m-0", date=FIXED_NOW - timedelta(days=10)),
        match_factory("m-1", date=FIXED_NOW - timedelta(days=9), duration_minutes=500),
        match_factory("m-2", date=FIXED_NOW - timedelta(days=8)),
        match_factory("m-3", date=FIXED_NOW - timedelta(days=7), player_goals=50),
    ]
    report = assess_fairness(matches, validator)
    assert report.suspicious_count == 2
    assert report.rating == FairnessRating.POOR
    data = report.to_dict()
    assert data["rating"] == "Poor"
    assert len(data["validations"]) == 4
