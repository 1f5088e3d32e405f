"""
Tests for the statistical match validator: every check code, score and
validity, suspicion boundary, player profile.

Uses the fixed clock from conftest so future/old-match checks are stable.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from backend_matchguard.validation import (
    IssueSeverity,
    MatchStats,
    MatchValidator,
    TeamStats,
    ValidationIssue,
    ValidationResult,
    ValidatorConfig,
    build_player_profile,
    generate_validation_report,
    parse_datetime,
)
from tests.conftest import FIXED_NOW


def _codes(result: ValidationResult) -> set[str]:
    return set(result.codes)


def test_clean_match_scores_100(validator, match_factory):
    """A plausible match with no history has no findings."""
    result = validator.validate(match_factory(), [])
    assert result.is_valid is True
    assert result.score == 100.0
    assert result.issues == []
    assert result.warnings == []
    assert validator.is_suspicious(result) is False


def test_validate_accepts_none_history(validator, match_factory):
    """Missing history is valid input."""
    result = validator.validate(match_factory(), None)
    assert result.is_valid is True


# -----------------------------------------------------------------------------
# Physical plausibility
# -----------------------------------------------------------------------------


def test_duration_500_is_error(validator, match_factory):
    """durationMinutes = 500: INVALID_DURATION, invalid, one error penalty."""
    result = validator.validate(match_factory(duration_minutes=500), [])
    assert _codes(result) == {"INVALID_DURATION"}
    assert result.is_valid is False
    assert result.score == 80.0
    assert validator.is_suspicious(result) is True


@pytest.mark.parametrize("duration", [1, 180])
def test_duration_boundaries_are_valid(validator, match_factory, duration):
    """Both ends of the duration range are accepted."""
    result = validator.validate(match_factory(duration_minutes=duration, player_goals=0), [])
    assert "INVALID_DURATION" not in _codes(result)
    assert result.is_valid is True


@pytest.mark.parametrize("duration", [0.99, 180.01, 0, -5, "abc", float("nan")])
def test_duration_outside_range_is_error(validator, match_factory, duration):
    """Durations outside 1-180 or non-numeric are errors, never exceptions."""
    result = validator.validate(match_factory(duration_minutes=duration, player_goals=0), [])
    assert "INVALID_DURATION" in _codes(result)
    assert result.is_valid is False


def test_excessive_goal_rate(validator, match_factory):
    """More than one goal every two minutes is an error (and excessive goals a warning)."""
    result = validator.validate(match_factory(player_goals=50), [])
    assert {"EXCESSIVE_GOAL_RATE", "EXCESSIVE_GOALS"} <= _codes(result)
    assert result.is_valid is False


def test_excessive_assist_rate(validator, match_factory):
    """Short match with many assists trips the assist rate."""
    result = validator.validate(match_factory(duration_minutes=10, player_goals=0, player_assists=6), [])
    assert "EXCESSIVE_ASSIST_RATE" in _codes(result)


def test_excessive_goals_is_warning_only(validator, match_factory):
    """11 goals in 90 minutes is possible but suspicious."""
    result = validator.validate(match_factory(player_goals=11), [])
    assert _codes(result) == {"EXCESSIVE_GOALS"}
    assert result.is_valid is True
    assert result.score == 92.0


def test_excessive_assists_is_warning(validator, match_factory):
    result = validator.validate(match_factory(player_goals=0, player_assists=9), [])
    assert _codes(result) == {"EXCESSIVE_ASSISTS"}


def test_negative_stats_clamped(validator, match_factory):
    """Negative goals are reported once and treated as 0 by other checks."""
    result = validator.validate(match_factory(player_goals=-3, player_assists=-1), [])
    assert _codes(result) == {"NEGATIVE_STATS"}
    assert result.is_valid is False


def test_non_numeric_goals_do_not_raise(validator, match_factory):
    """Malformed counts degrade to an error issue."""
    result = validator.validate(match_factory(player_goals="many"), [])
    assert "NEGATIVE_STATS" in _codes(result)


def test_unrealistic_team_goal_rate(validator, match_factory):
    """10-0 in 90 minutes is above 0.1 goals per minute."""
    result = validator.validate(match_factory(home_score=10, away_score=0), [])
    assert _codes(result) == {"UNREALISTIC_TEAM_GOAL_RATE"}


def test_very_short_match_is_warning(validator, match_factory):
    """Inside the valid range but under 20 minutes: warning with a recommendation."""
    result = validator.validate(match_factory(duration_minutes=15, player_goals=0), [])
    assert _codes(result) == {"VERY_SHORT_MATCH"}
    assert result.is_valid is True
    assert "abandoned" in result.warnings[0].recommendation
    assert "VERY_SHORT_MATCH" not in _codes(validator.validate(match_factory(duration_minutes=20, player_goals=0), []))


def test_unusual_contribution(validator, match_factory):
    """16 goals+assists is above the combined limit even with each tally in bounds."""
    result = validator.validate(match_factory(player_goals=9, player_assists=7), [])
    assert _codes(result) == {"UNUSUAL_CONTRIBUTION"}
    assert result.warnings[0].details["contribution"] == 16


def test_more_assists_than_goals(validator, match_factory):
    result = validator.validate(match_factory(player_goals=1, player_assists=2), [])
    assert _codes(result) == {"MORE_ASSISTS_THAN_GOALS"}
    assert _codes(validator.validate(match_factory(player_goals=0, player_assists=2), [])) == set()


# -----------------------------------------------------------------------------
# Score consistency
# -----------------------------------------------------------------------------


def test_consistent_scoreline(validator, match_factory):
    """Reported win matching a 2-1 home score has no findings."""
    result = validator.validate(match_factory(home_score=2, away_score=1, result="win"), [])
    assert result.score == 100.0


def test_result_mismatch(validator, match_factory):
    result = validator.validate(match_factory(home_score=2, away_score=1, result="loss"), [])
    assert "RESULT_MISMATCH" in _codes(result)
    assert result.is_valid is False


def test_result_mismatch_away_side(validator, match_factory):
    """The player's side decides which score is theirs."""
    match = match_factory(home_score=2, away_score=1, player_team="away", player_goals=1, result="loss")
    result = validator.validate(match, [])
    assert "RESULT_MISMATCH" not in _codes(result)


def test_negative_score(validator, match_factory):
    result = validator.validate(match_factory(home_score=-1, away_score=0, player_goals=0), [])
    assert "NEGATIVE_SCORE" in _codes(result)


def test_unrealistic_score(validator, match_factory):
    result = validator.validate(match_factory(home_score=51, away_score=0), [])
    assert "UNREALISTIC_SCORE" in _codes(result)


def test_player_goals_exceed_team_score(validator, match_factory):
    result = validator.validate(match_factory(home_score=2, away_score=1, player_goals=3), [])
    assert "PLAYER_GOALS_EXCEED_TEAM_SCORE" in _codes(result)


def test_invalid_score(validator, match_factory):
    result = validator.validate(match_factory(home_score="two", away_score=1), [])
    assert "INVALID_SCORE" in _codes(result)
    assert result.is_valid is False


# -----------------------------------------------------------------------------
# Statistical anomaly
# -----------------------------------------------------------------------------


def test_anomaly_scenario(validator, match_factory, history_factory):
    """5 matches averaging 1.0 goal, then 4 goals in 90 minutes: warnings only."""
    history = history_factory([1, 2, 1, 0, 1])
    result = validator.validate(match_factory(player_goals=4), history)
    assert _codes(result) == {"ANOMALY_GOALS", "PERFORMANCE_SPIKE"}
    warning = next(w for w in result.warnings if w.code == "ANOMALY_GOALS")
    assert warning.severity == IssueSeverity.WARNING
    assert warning.details["mean"] == 1.0
    assert warning.details["z_score"] > 3
    assert result.is_valid is True
    assert 0 < result.score < 100
    assert validator.is_suspicious(result) is (result.score < validator.config.suspicion_threshold)


def test_anomaly_skipped_below_min_history(validator, match_factory, history_factory):
    """Fewer than 5 prior matches: z-score check is skipped, not flagged."""
    result = validator.validate(match_factory(player_goals=4), history_factory([1, 1, 1, 1]))
    assert "ANOMALY_GOALS" not in _codes(result)


def test_anomaly_flat_history_uses_stddev_floor(validator, match_factory, history_factory):
    """Zero variance history: stddev is floored, so 1 goal is normal and 3 is anomalous."""
    history = history_factory([1, 1, 1, 1, 1])
    assert "ANOMALY_GOALS" not in _codes(validator.validate(match_factory(player_goals=1), history))
    assert "ANOMALY_GOALS" in _codes(validator.validate(match_factory(player_goals=3), history))


def test_anomaly_assists(validator, match_factory, history_factory):
    history = history_factory([1, 1, 1, 1, 1], player_assists=0)
    result = validator.validate(match_factory(player_assists=3), history)
    assert "ANOMALY_ASSISTS" in _codes(result)


def test_performance_spike(validator, match_factory, history_factory):
    """Goals+assists more than double the historical mean, without a z-score outlier."""
    history = history_factory([0, 4, 1, 3, 2])
    result = validator.validate(match_factory(player_goals=5), history)
    assert _codes(result) == {"PERFORMANCE_SPIKE"}
    assert result.warnings[0].details["baseline"] == 2.0
    assert "PERFORMANCE_SPIKE" not in _codes(validator.validate(match_factory(player_goals=4), history))


def test_performance_spike_skipped_below_min_history(validator, match_factory, history_factory):
    result = validator.validate(match_factory(player_goals=5), history_factory([1, 1, 1, 1]))
    assert "PERFORMANCE_SPIKE" not in _codes(result)


def test_candidate_in_history_not_double_counted(validator, match_factory, history_factory):
    """The candidate inside history is skipped, leaving 4 prior matches (check skipped)."""
    candidate = match_factory(player_goals=5)
    history = history_factory([1, 1, 1, 1]) + [candidate]
    result = validator.validate(candidate, history)
    assert "ANOMALY_GOALS" not in _codes(result)
    assert "DUPLICATE_MATCH_ID" not in _codes(result)


# -----------------------------------------------------------------------------
# Timing
# -----------------------------------------------------------------------------


def test_future_match(validator, match_factory):
    result = validator.validate(match_factory(date=FIXED_NOW + timedelta(hours=1)), [])
    assert _codes(result) == {"FUTURE_MATCH"}
    assert result.is_valid is False


def test_very_old_match(validator, match_factory):
    result = validator.validate(match_factory(date=FIXED_NOW - timedelta(days=800)), [])
    assert _codes(result) == {"VERY_OLD_MATCH"}
    assert result.is_valid is True


def test_duplicate_match_id_with_different_data(validator, match_factory):
    """Same id, different facts in history: error."""
    history = [match_factory(player_goals=3)]
    result = validator.validate(match_factory(player_goals=1), history)
    assert "DUPLICATE_MATCH_ID" in _codes(result)
    assert result.is_valid is False


def test_conflicting_ids_inside_history(validator, match_factory, history_factory):
    """Two history records with one id and different facts are an error in either order."""
    first = match_factory("h-1", date=FIXED_NOW - timedelta(days=5), player_goals=1)
    second = match_factory("h-1", date=FIXED_NOW - timedelta(days=5), player_goals=3)
    candidate = match_factory("m-9")
    forward = validator.validate(candidate, [first, second])
    backward = validator.validate(candidate, [second, first])
    assert _codes(forward) == {"DUPLICATE_MATCH_ID"}
    assert forward.is_valid is False
    assert forward.issues[0].details["match_ids"] == ["h-1"]
    assert forward.to_dict()["issues"] == backward.to_dict()["issues"]
    assert forward.score == backward.score


def test_exact_repeat_inside_history_is_not_duplicate(validator, match_factory, history_factory):
    history = history_factory([1, 1, 1, 1])
    result = validator.validate(match_factory(), history + [history[0]])
    assert "DUPLICATE_MATCH_ID" not in _codes(result)
    assert "ANOMALY_GOALS" not in _codes(result)


def test_out_of_order_report(validator, match_factory):
    history = [match_factory("h-0", date=FIXED_NOW - timedelta(days=1))]
    result = validator.validate(match_factory(date=FIXED_NOW - timedelta(days=2)), history)
    assert _codes(result) == {"OUT_OF_ORDER_REPORT"}


def test_overlapping_match(validator, match_factory):
    """Next match starting 30 minutes into a 90-minute match overlaps it."""
    start = FIXED_NOW - timedelta(days=1)
    history = [match_factory("h-0", date=start)]
    result = validator.validate(match_factory(date=start + timedelta(minutes=30)), history)
    assert _codes(result) == {"OVERLAPPING_MATCH"}


# -----------------------------------------------------------------------------
# Pattern recognition
# -----------------------------------------------------------------------------


def test_repeated_scoreline(validator, match_factory, history_factory):
    """Six identical goal differences in a row is one more than allowed."""
    history = history_factory([1] * 5, home_score=2, away_score=1)
    result = validator.validate(match_factory(home_score=2, away_score=1), history)
    assert _codes(result) == {"REPEATED_SCORELINE"}
    assert result.warnings[0].details["run_length"] == 6


def test_repeated_scoreline_at_limit_not_flagged(validator, match_factory, history_factory):
    history = history_factory([1] * 4, home_score=2, away_score=1)
    result = validator.validate(match_factory(home_score=2, away_score=1), history)
    assert "REPEATED_SCORELINE" not in _codes(result)


def test_form_reversal(validator, match_factory, history_factory):
    """A win after six straight losses contradicts the player's form."""
    history = history_factory([0] * 6, home_score=0, away_score=1)
    result = validator.validate(match_factory(home_score=2, away_score=0), history)
    assert _codes(result) == {"FORM_REVERSAL"}


def test_unlikely_streak(validator, match_factory):
    """Six straight wins from a 33% win-rate player."""
    start = FIXED_NOW - timedelta(days=30)
    history = [
        match_factory(f"l-{i}", date=start + timedelta(days=i), player_goals=0, home_score=0, away_score=1)
        for i in range(10)
    ]
    for i, home_score in enumerate([1, 2, 1, 2, 1]):
        history.append(
            match_factory(
                f"w-{i}",
                date=start + timedelta(days=10 + i),
                player_goals=0,
                home_score=home_score,
                away_score=0,
            )
        )
    result = validator.validate(match_factory(home_score=3, away_score=0), history)
    assert _codes(result) == {"UNLIKELY_STREAK"}


# -----------------------------------------------------------------------------
# Box score
# -----------------------------------------------------------------------------


def _stats(home_goals=2, home_assists=1, home_possession=55, home_accuracy=80, away_possession=45, away_accuracy=75):
    return MatchStats(
        home=TeamStats(goals=home_goals, assists=home_assists, possession=home_possession, pass_accuracy=home_accuracy),
        away=TeamStats(goals=1, assists=0, possession=away_possession, pass_accuracy=away_accuracy),
    )


def test_consistent_box_score(validator, match_factory):
    result = validator.validate(match_factory(home_score=2, away_score=1, stats=_stats()), [])
    assert result.score == 100.0


def test_stats_goal_mismatch(validator, match_factory):
    result = validator.validate(match_factory(home_score=2, away_score=1, stats=_stats(home_goals=3)), [])
    assert "STATS_GOAL_MISMATCH" in _codes(result)
    assert result.is_valid is False


def test_player_assists_exceed_team(validator, match_factory):
    match = match_factory(home_score=2, away_score=1, player_assists=2, stats=_stats())
    assert "PLAYER_ASSISTS_EXCEED_TEAM" in _codes(validator.validate(match, []))


def test_invalid_pass_accuracy(validator, match_factory):
    match = match_factory(home_score=2, away_score=1, stats=_stats(home_accuracy=120))
    result = validator.validate(match, [])
    assert "INVALID_PASS_ACCURACY" in _codes(result)


def test_possession_mismatch(validator, match_factory):
    match = match_factory(home_score=2, away_score=1, stats=_stats(home_possession=60, away_possession=60))
    assert "POSSESSION_MISMATCH" in _codes(validator.validate(match, []))


# -----------------------------------------------------------------------------
# Robustness, suspicion, config
# -----------------------------------------------------------------------------


def test_failing_rule_becomes_error(clock, match_factory):
    """A rule that raises is recorded as VALIDATION_CHECK_FAILED instead of propagating."""

    def exploding_rule(match, ctx, config):
        raise RuntimeError("boom")

    validator = MatchValidator(clock=clock, rules=(exploding_rule,))
    result = validator.validate(match_factory(), [])
    assert _codes(result) == {"VALIDATION_CHECK_FAILED"}
    assert result.is_valid is False


def test_unusable_history_becomes_error(validator, match_factory):
    result = validator.validate(match_factory(), [None])
    assert "VALIDATION_CHECK_FAILED" in _codes(result)


def test_more_errors_never_raise_score(validator, match_factory):
    """Adding an error-level problem to a match never increases its score."""
    base = validator.validate(match_factory(player_goals=11), [])
    worse = validator.validate(match_factory(player_goals=11, duration_minutes=500), [])
    assert worse.score <= base.score
    assert worse.is_valid is False


@pytest.mark.parametrize("score,expected", [(69.0, True), (70.0, False), (71.0, False)])
def test_suspicion_threshold_boundary(validator, score, expected):
    """Suspicious strictly below the threshold when no errors are present."""
    result = ValidationResult(is_valid=True, score=score)
    assert validator.is_suspicious(result) is expected


def test_any_error_is_suspicious(validator):
    error = ValidationIssue(code="FUTURE_MATCH", message="x", severity=IssueSeverity.ERROR)
    result = ValidationResult(is_valid=False, score=95.0, issues=[error])
    assert validator.is_suspicious(result) is True


def test_custom_config_changes_policy(clock, match_factory):
    """Policy comes from ValidatorConfig, not constants in the rules."""
    validator = MatchValidator(config=ValidatorConfig(max_duration_minutes=120, error_penalty=30), clock=clock)
    result = validator.validate(match_factory(duration_minutes=150), [])
    assert "INVALID_DURATION" in _codes(result)
    assert result.score == 70.0


def test_config_rejects_warning_above_error():
    with pytest.raises(ValueError):
        ValidatorConfig(error_penalty=5, warning_penalty=10)


# -----------------------------------------------------------------------------
# Profile and report
# -----------------------------------------------------------------------------


def test_profile_empty_history():
    profile = build_player_profile([])
    assert profile.avg_goals_per_match == 0
    assert profile.avg_assists_per_match == 0
    assert profile.avg_match_duration == 0
    assert profile.total_matches == 0


def test_profile_means_and_order_independence(validator, match_factory):
    history = [
        match_factory("a", player_goals=1, player_assists=0, duration_minutes=90),
        match_factory("b", player_goals=2, player_assists=1, duration_minutes=90),
        match_factory("c", player_goals=3, player_assists=2, duration_minutes=60),
    ]
    profile = validator.build_player_profile(history)
    assert profile.avg_goals_per_match == pytest.approx(2.0)
    assert profile.avg_assists_per_match == pytest.approx(1.0)
    assert profile.avg_match_duration == pytest.approx(80.0)
    assert profile.total_matches == 3
    assert build_player_profile(list(reversed(history))) == profile


def test_profile_clamps_negative_values(match_factory):
    profile = build_player_profile([match_factory("a", player_goals=-4), match_factory("b", player_goals=2)])
    assert profile.avg_goals_per_match == pytest.approx(1.0)


def test_validation_report_lists_issues(validator, match_factory):
    result = validator.validate(match_factory(duration_minutes=500, player_goals=11), [])
    report = generate_validation_report(result)
    assert "Status: INVALID" in report
    assert "INVALID_DURATION" in report
    assert "EXCESSIVE_GOALS" in report


def test_validation_report_clean(validator, match_factory):
    report = generate_validation_report(validator.validate(match_factory(), []))
    assert "Status: VALID" in report
    assert "All checks passed" in report


def test_validation_report_shows_recommendations(validator, match_factory):
    result = validator.validate(match_factory(duration_minutes=15, player_goals=0), [])
    report = generate_validation_report(result)
    assert "VERY_SHORT_MATCH" in report
    assert "-> Ensure match was not abandoned or forcefully ended" in report
    assert result.to_dict()["warnings"][0]["recommendation"].startswith("Ensure match")


@pytest.mark.parametrize("value", ["yesterday", "2026-13-45", 10**20, float("inf")])
def test_parse_datetime_rejects_bad_values_with_value_error(value):
    with pytest.raises(ValueError):
        parse_datetime(value)


def test_parse_datetime_accepts_iso_and_epochs():
    expected = FIXED_NOW
    assert parse_datetime("2026-06-01T12:00:00Z") == expected
    assert parse_datetime(expected.timestamp()) == expected
    assert parse_datetime(int(expected.timestamp() * 1000)) == expected
