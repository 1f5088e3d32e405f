"""
Rule-based integrity checks for a single reported match.

Each rule is independent and explainable: it returns zero or more
ValidationIssue values with a stable code, a severity, a human-readable
message, and details (threshold vs actual). Rules never raise for
malformed numbers; negative counts are clamped to zero after being
reported.
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable

from backend_matchguard.validation.models import (
    IssueSeverity,
    MatchOutcome,
    MatchRecord,
    ValidationIssue,
    as_utc,
)

if TYPE_CHECKING:
    from backend_matchguard.validation.validator import ValidatorConfig


def as_number(value: Any) -> float | None:
    """Float value of a numeric field; None for non-numeric, NaN or infinite input."""
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def clamp_count(value: Any) -> float:
    """Non-negative count; malformed or negative values become 0."""
    number = as_number(value)
    if number is None or number < 0:
        return 0.0
    return number


def _error(code: str, message: str, *, recommendation: str | None = None, **details: Any) -> ValidationIssue:
    return ValidationIssue(
        code=code,
        message=message,
        severity=IssueSeverity.ERROR,
        details=details,
        recommendation=recommendation,
    )


def _warning(code: str, message: str, *, recommendation: str | None = None, **details: Any) -> ValidationIssue:
    return ValidationIssue(
        code=code,
        message=message,
        severity=IssueSeverity.WARNING,
        details=details,
        recommendation=recommendation,
    )


@dataclass
class CheckContext:
    """
    Inputs shared by all rules for one validation call.

    prior: the player's other matches (candidate removed), oldest first.
    conflicts: history entries reusing the candidate's id with different facts.
    duplicates: history entries sharing an id among themselves with different facts.
    """

    now: datetime
    goals: float
    assists: float
    prior: list[MatchRecord] = field(default_factory=list)
    conflicts: list[MatchRecord] = field(default_factory=list)
    duplicates: list[MatchRecord] = field(default_factory=list)


def build_context(match: MatchRecord, history: list[MatchRecord] | None, now: datetime) -> CheckContext:
    """
    Split history into prior matches and id conflicts.

    An entry with the candidate's id and identical facts is the candidate
    itself and is dropped so it is not double-counted. Exact repeats inside
    history are counted once. Ids whose entries disagree are left out of
    prior altogether, so the outcome does not depend on history order.
    """
    conflicts: list[MatchRecord] = []
    variants: dict[str, list[MatchRecord]] = {}
    for record in history or []:
        if record.id == match.id:
            if record != match:
                conflicts.append(record)
            continue
        same_id = variants.setdefault(record.id, [])
        if record not in same_id:
            same_id.append(record)

    prior: list[MatchRecord] = []
    duplicates: list[MatchRecord] = []
    for records in variants.values():
        if len(records) == 1:
            prior.append(records[0])
        else:
            duplicates.extend(records)
    prior.sort(key=lambda m: as_utc(m.date))
    return CheckContext(
        now=as_utc(now),
        goals=clamp_count(match.player_goals),
        assists=clamp_count(match.player_assists),
        prior=prior,
        conflicts=conflicts,
        duplicates=duplicates,
    )


def check_score_consistency(
    match: MatchRecord,
    ctx: CheckContext,
    config: ValidatorConfig,
) -> list[ValidationIssue]:
    """Scoreline sanity: non-negative, realistic, consistent with player goals and reported result."""
    if not match.has_scores:
        return []
    home = as_number(match.home_score)
    away = as_number(match.away_score)
    if home is None or away is None:
        return [
            _error(
                "INVALID_SCORE",
                "Match score is not numeric",
                home_score=repr(match.home_score),
                away_score=repr(match.away_score),
            )
        ]
    findings: list[ValidationIssue] = []
    if home < 0 or away < 0:
        findings.append(
            _error(
                "NEGATIVE_SCORE",
                f"Match contains negative scores ({home:g}-{away:g})",
                home_score=home,
                away_score=away,
            )
        )
    if home > config.max_team_score or away > config.max_team_score:
        findings.append(
            _warning(
                "UNREALISTIC_SCORE",
                f"Unrealistic score {home:g}-{away:g} (threshold: {config.max_team_score:g} per side)",
                recommendation="Verify the final score with the match engine",
                home_score=home,
                away_score=away,
                threshold=config.max_team_score,
            )
        )

    home, away = max(0.0, home), max(0.0, away)
    team, opp = (away, home) if match.player_team == "away" else (home, away)
    if ctx.goals > team:
        findings.append(
            _error(
                "PLAYER_GOALS_EXCEED_TEAM_SCORE",
                f"Player goals ({ctx.goals:g}) exceed team score ({team:g})",
                player_goals=ctx.goals,
                team_score=team,
            )
        )

    if match.result:
        reported = str(match.result).strip().lower()
        if team > opp:
            expected = MatchOutcome.WIN.value
        elif team < opp:
            expected = MatchOutcome.LOSS.value
        else:
            expected = MatchOutcome.DRAW.value
        if reported != expected:
            findings.append(
                _error(
                    "RESULT_MISMATCH",
                    f"Reported result ({reported}) doesn't match scores ({team:g}-{opp:g})",
                    reported=reported,
                    calculated=expected,
                )
            )
    return findings


def check_player_performance(
    match: MatchRecord,
    ctx: CheckContext,
    config: ValidatorConfig,
) -> list[ValidationIssue]:
    """Per-match goal and assist tallies: non-negative and within single-match bounds."""
    findings: list[ValidationIssue] = []
    raw_goals = as_number(match.player_goals)
    raw_assists = as_number(match.player_assists)
    if raw_goals is None or raw_assists is None or raw_goals < 0 or raw_assists < 0:
        findings.append(
            _error(
                "NEGATIVE_STATS",
                "Player stats contain negative or non-numeric values",
                player_goals=repr(match.player_goals),
                player_assists=repr(match.player_assists),
            )
        )
    if ctx.goals > config.max_goals_per_match:
        findings.append(
            _warning(
                "EXCESSIVE_GOALS",
                f"Player scored {ctx.goals:g} goals in one match (threshold: {config.max_goals_per_match:g})",
                recommendation="Verify player performance accuracy",
                player_goals=ctx.goals,
                threshold=config.max_goals_per_match,
            )
        )
    if ctx.assists > config.max_assists_per_match:
        findings.append(
            _warning(
                "EXCESSIVE_ASSISTS",
                f"Player had {ctx.assists:g} assists in one match (threshold: {config.max_assists_per_match:g})",
                recommendation="Verify player performance accuracy",
                player_assists=ctx.assists,
                threshold=config.max_assists_per_match,
            )
        )
    contribution = ctx.goals + ctx.assists
    if contribution > config.max_contribution_per_match:
        findings.append(
            _warning(
                "UNUSUAL_CONTRIBUTION",
                f"Very high player contribution: {contribution:g} goals+assists",
                recommendation="Review match replay for accuracy",
                contribution=contribution,
                threshold=config.max_contribution_per_match,
            )
        )
    if ctx.assists > ctx.goals > 0:
        findings.append(
            _warning(
                "MORE_ASSISTS_THAN_GOALS",
                f"Player had more assists ({ctx.assists:g}) than goals ({ctx.goals:g})",
                recommendation="Verify the player was active in creating plays",
                player_goals=ctx.goals,
                player_assists=ctx.assists,
            )
        )
    return findings


def check_physical_plausibility(
    match: MatchRecord,
    ctx: CheckContext,
    config: ValidatorConfig,
) -> list[ValidationIssue]:
    """Duration inside the valid range; goal and assist rates physically possible for that duration."""
    duration = as_number(match.duration_minutes)
    if duration is None or not (config.min_duration_minutes <= duration <= config.max_duration_minutes):
        return [
            _error(
                "INVALID_DURATION",
                (
                    f"Match duration {match.duration_minutes!r} minutes is outside "
                    f"{config.min_duration_minutes:g}-{config.max_duration_minutes:g}"
                ),
                duration_minutes=duration,
                min_duration_minutes=config.min_duration_minutes,
                max_duration_minutes=config.max_duration_minutes,
            )
        ]

    findings: list[ValidationIssue] = []
    if duration < config.short_match_minutes:
        findings.append(
            _warning(
                "VERY_SHORT_MATCH",
                f"Match lasted only {duration:g} minutes",
                recommendation="Ensure match was not abandoned or forcefully ended",
                duration_minutes=duration,
                threshold=config.short_match_minutes,
            )
        )
    max_events = duration / config.min_minutes_per_goal
    if ctx.goals > max_events:
        findings.append(
            _error(
                "EXCESSIVE_GOAL_RATE",
                (
                    f"{ctx.goals:g} goals in {duration:g} minutes exceeds one goal every "
                    f"{config.min_minutes_per_goal:g} minutes"
                ),
                player_goals=ctx.goals,
                duration_minutes=duration,
                max_goals=round(max_events, 2),
            )
        )
    if ctx.assists > max_events:
        findings.append(
            _error(
                "EXCESSIVE_ASSIST_RATE",
                (
                    f"{ctx.assists:g} assists in {duration:g} minutes exceeds one assist every "
                    f"{config.min_minutes_per_goal:g} minutes"
                ),
                player_assists=ctx.assists,
                duration_minutes=duration,
                max_assists=round(max_events, 2),
            )
        )
    if match.has_scores:
        total_goals = clamp_count(match.home_score) + clamp_count(match.away_score)
        rate = total_goals / duration
        if rate > config.max_team_goals_per_minute:
            findings.append(
                _warning(
                    "UNREALISTIC_TEAM_GOAL_RATE",
                    f"Goal rate ({rate * 90:.1f} per 90 min) is unrealistic",
                    recommendation="Verify the final score and match duration",
                    total_goals=total_goals,
                    duration_minutes=duration,
                    goals_per_minute=round(rate, 4),
                    threshold=config.max_team_goals_per_minute,
                )
            )
    return findings


def check_statistical_anomaly(
    match: MatchRecord,
    ctx: CheckContext,
    config: ValidatorConfig,
) -> list[ValidationIssue]:
    """
    z-score of goals and assists against the player's own history.

    Skipped entirely below min_history_for_stats prior matches. The
    standard deviation is floored at min_stddev so a perfectly flat
    history still flags a large jump instead of dividing by zero. Also
    flags a jump in combined goals+assists over the historical mean.
    """
    if len(ctx.prior) < config.min_history_for_stats:
        return []
    findings: list[ValidationIssue] = []
    metrics = (
        (
            "goals",
            ctx.goals,
            [clamp_count(m.player_goals) for m in ctx.prior],
            "ANOMALY_GOALS",
            "Review match highlights and player performance data",
        ),
        (
            "assists",
            ctx.assists,
            [clamp_count(m.player_assists) for m in ctx.prior],
            "ANOMALY_ASSISTS",
            "Review match highlights and passing accuracy",
        ),
    )
    for metric, value, samples, code, recommendation in metrics:
        mean = statistics.fmean(samples)
        stddev = statistics.pstdev(samples, mu=mean)
        z = (value - mean) / max(stddev, config.min_stddev)
        if abs(z) > config.zscore_threshold:
            findings.append(
                _warning(
                    code,
                    (
                        f"{metric.capitalize()} ({value:g}) deviate {abs(z):.1f} standard deviations "
                        f"from the historical average ({mean:.2f})"
                    ),
                    recommendation=recommendation,
                    value=value,
                    mean=round(mean, 4),
                    stddev=round(stddev, 4),
                    z_score=round(z, 2),
                    threshold=config.zscore_threshold,
                    sample_size=len(samples),
                )
            )

    # Combined goals+assists against the historical combined mean
    baseline = statistics.fmean(clamp_count(m.player_goals) + clamp_count(m.player_assists) for m in ctx.prior)
    contribution = ctx.goals + ctx.assists
    jump = contribution - baseline
    allowed_jump = max(baseline * config.performance_spike_ratio, config.performance_spike_min_jump)
    if jump > allowed_jump:
        findings.append(
            _warning(
                "PERFORMANCE_SPIKE",
                f"Goals+assists ({contribution:g}) jumped {jump:.1f} above the historical average ({baseline:.2f})",
                recommendation="Verify player effort and match circumstances",
                contribution=contribution,
                baseline=round(baseline, 4),
                jump=round(jump, 4),
                allowed_jump=round(allowed_jump, 4),
            )
        )
    return findings


def check_timing(
    match: MatchRecord,
    ctx: CheckContext,
    config: ValidatorConfig,
) -> list[ValidationIssue]:
    """Date not in the future, id not reused, and report order consistent with the player's cadence."""
    findings: list[ValidationIssue] = []
    played_at = as_utc(match.date)
    if played_at > ctx.now:
        findings.append(
            _error(
                "FUTURE_MATCH",
                "Match date is in the future",
                date=played_at.isoformat(),
                now=ctx.now.isoformat(),
            )
        )
    elif ctx.now - played_at > timedelta(days=config.max_match_age_days):
        findings.append(
            _warning(
                "VERY_OLD_MATCH",
                f"Match is more than {config.max_match_age_days} days old",
                recommendation="Verify match date is accurate",
                date=played_at.isoformat(),
                max_age_days=config.max_match_age_days,
            )
        )

    if ctx.conflicts:
        findings.append(
            _error(
                "DUPLICATE_MATCH_ID",
                f"Match id {match.id!r} already exists in history with different data",
                match_id=match.id,
                conflicts=len(ctx.conflicts),
            )
        )
    if ctx.duplicates:
        duplicate_ids = sorted({str(m.id) for m in ctx.duplicates})
        findings.append(
            _error(
                "DUPLICATE_MATCH_ID",
                f"History holds conflicting records for match id(s) {', '.join(duplicate_ids)}",
                recommendation="Remove or correct the conflicting history entries",
                match_ids=duplicate_ids,
                conflicts=len(ctx.duplicates),
            )
        )

    if ctx.prior:
        latest = ctx.prior[-1]
        latest_at = as_utc(latest.date)
        if played_at < latest_at:
            findings.append(
                _warning(
                    "OUT_OF_ORDER_REPORT",
                    f"Match predates the most recent reported match ({latest.id})",
                    recommendation="Verify match date is accurate",
                    date=played_at.isoformat(),
                    latest_match_id=latest.id,
                    latest_date=latest_at.isoformat(),
                )
            )
        else:
            gap_minutes = (played_at - latest_at).total_seconds() / 60.0
            previous_duration = clamp_count(latest.duration_minutes)
            if gap_minutes < previous_duration:
                findings.append(
                    _warning(
                        "OVERLAPPING_MATCH",
                        f"Match started {gap_minutes:.0f} minutes after a {previous_duration:g}-minute match",
                        recommendation="Verify match start times and durations",
                        previous_match_id=latest.id,
                        gap_minutes=round(gap_minutes, 2),
                        previous_duration_minutes=previous_duration,
                    )
                )
    return findings


def _goal_difference(match: MatchRecord) -> float | None:
    if not match.has_scores:
        return None
    team, opp = as_number(match.team_score), as_number(match.opponent_score)
    if team is None or opp is None:
        return None
    return team - opp


def check_patterns(
    match: MatchRecord,
    ctx: CheckContext,
    config: ValidatorConfig,
) -> list[ValidationIssue]:
    """Implausible streaks in the most recent pattern_window matches (candidate included)."""
    findings: list[ValidationIssue] = []
    recent_prior = ctx.prior[-(config.pattern_window - 1):] if config.pattern_window > 1 else []

    delta = _goal_difference(match)
    if delta is not None:
        run = 1
        for previous in reversed(recent_prior):
            if _goal_difference(previous) != delta:
                break
            run += 1
        if run > config.max_identical_run:
            findings.append(
                _warning(
                    "REPEATED_SCORELINE",
                    f"Identical goal difference ({delta:+g}) in {run} consecutive matches",
                    recommendation="Verify match authenticity and opponent selection",
                    goal_difference=delta,
                    run_length=run,
                    threshold=config.max_identical_run,
                )
            )

    outcome = match.effective_result()
    prior_results = [r for r in (m.effective_result() for m in ctx.prior) if r]
    if outcome != MatchOutcome.WIN.value or len(prior_results) < config.min_history_for_stats:
        return findings

    overall_rate = prior_results.count(MatchOutcome.WIN.value) / len(prior_results)
    window_results = [r for r in (m.effective_result() for m in recent_prior) if r]
    window_rate = (
        window_results.count(MatchOutcome.WIN.value) / len(window_results) if window_results else overall_rate
    )
    if window_rate < config.form_reversal_window_rate and overall_rate < config.form_reversal_overall_rate:
        findings.append(
            _warning(
                "FORM_REVERSAL",
                f"Win reported after poor form (recent win rate {window_rate:.0%}, overall {overall_rate:.0%})",
                recommendation="Ensure match outcome is correct",
                window_win_rate=round(window_rate, 4),
                overall_win_rate=round(overall_rate, 4),
            )
        )

    streak = config.streak_length - 1
    last_results = prior_results[-streak:]
    if len(last_results) == streak and all(r == MatchOutcome.WIN.value for r in last_results):
        probability = overall_rate ** config.streak_length
        if probability < config.streak_min_probability:
            findings.append(
                _warning(
                    "UNLIKELY_STREAK",
                    f"{config.streak_length} consecutive wins form a statistically unlikely pattern",
                    recommendation="Verify match authenticity and difficulty level",
                    overall_win_rate=round(overall_rate, 4),
                    estimated_probability=round(probability, 6),
                    threshold=config.streak_min_probability,
                )
            )
    return findings


def check_match_stats(
    match: MatchRecord,
    ctx: CheckContext,
    config: ValidatorConfig,
) -> list[ValidationIssue]:
    """Engine box score agrees with the reported scoreline and player numbers."""
    stats = match.stats
    if stats is None:
        return []
    findings: list[ValidationIssue] = []
    team_stats = stats.for_team(match.player_team)
    team_score = as_number(match.team_score) if match.has_scores else None
    if team_score is not None and as_number(team_stats.goals) != team_score:
        findings.append(
            _error(
                "STATS_GOAL_MISMATCH",
                "Match stats goals do not match recorded match score",
                stats_goals=team_stats.goals,
                match_goals=team_score,
            )
        )
    if clamp_count(team_stats.assists) < ctx.assists:
        findings.append(
            _warning(
                "PLAYER_ASSISTS_EXCEED_TEAM",
                "Player assists exceed team total assists",
                recommendation="Verify assist tracking in match engine",
                player_assists=ctx.assists,
                team_assists=team_stats.assists,
            )
        )
    bad_accuracy: list[str] = []
    for side, side_stats in (("home", stats.home), ("away", stats.away)):
        accuracy = as_number(side_stats.pass_accuracy)
        if accuracy is None or not (0.0 <= accuracy <= 100.0):
            bad_accuracy.append(side)
    if bad_accuracy:
        findings.append(
            _warning(
                "INVALID_PASS_ACCURACY",
                f"Invalid pass accuracy for {', '.join(bad_accuracy)}",
                recommendation="Verify pass tracking in match engine",
                sides=bad_accuracy,
                home=stats.home.pass_accuracy,
                away=stats.away.pass_accuracy,
            )
        )
    total_possession = clamp_count(stats.home.possession) + clamp_count(stats.away.possession)
    if abs(total_possession - 100.0) > config.possession_tolerance:
        findings.append(
            _warning(
                "POSSESSION_MISMATCH",
                f"Total possession is {total_possession:g}%, not 100%",
                recommendation="Verify possession tracking in match engine",
                total_possession=total_possession,
                tolerance=config.possession_tolerance,
            )
        )
    return findings


Rule = Callable[[MatchRecord, CheckContext, "ValidatorConfig"], "list[ValidationIssue]"]

DEFAULT_RULES: tuple[Rule, ...] = (
    check_score_consistency,
    check_player_performance,
    check_physical_plausibility,
    check_statistical_anomaly,
    check_timing,
    check_patterns,
    check_match_stats,
)
