"""
Statistical match validator.

Runs every integrity rule against a reported match and the same player's
history, folds the findings into a severity-weighted score, and derives
the suspicion predicate and the player profile. Pure and stateless: one
instance can be shared freely across threads and requests.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Sequence

from backend_matchguard.config.settings import (
    DEFAULT_ERROR_PENALTY,
    DEFAULT_MAX_DURATION_MINUTES,
    DEFAULT_MAX_IDENTICAL_RUN,
    DEFAULT_MIN_DURATION_MINUTES,
    DEFAULT_MIN_HISTORY_FOR_STATS,
    DEFAULT_MIN_MINUTES_PER_GOAL,
    DEFAULT_PATTERN_WINDOW,
    DEFAULT_SUSPICION_THRESHOLD,
    DEFAULT_WARNING_PENALTY,
    DEFAULT_ZSCORE_THRESHOLD,
    Settings,
)
from backend_matchguard.matchguard_logging import get_logger
from backend_matchguard.validation.models import (
    IssueSeverity,
    MatchRecord,
    PlayerProfile,
    ValidationIssue,
    ValidationResult,
)
from backend_matchguard.validation.rules import (
    DEFAULT_RULES,
    CheckContext,
    Rule,
    build_context,
    clamp_count,
)
from backend_matchguard.validation.scorer import compute_validation_score

logger = get_logger(__name__)


@dataclass
class ValidatorConfig:
    """
    Tunable policy for the validator.

    Penalties and thresholds are policy, not algorithm: the only fixed
    contracts are that errors cost more than warnings, more findings never
    raise the score, and a match is suspicious below suspicion_threshold.
    """

    error_penalty: float = DEFAULT_ERROR_PENALTY
    warning_penalty: float = DEFAULT_WARNING_PENALTY
    suspicion_threshold: float = DEFAULT_SUSPICION_THRESHOLD

    # Physical plausibility
    min_duration_minutes: float = DEFAULT_MIN_DURATION_MINUTES
    max_duration_minutes: float = DEFAULT_MAX_DURATION_MINUTES
    min_minutes_per_goal: float = DEFAULT_MIN_MINUTES_PER_GOAL
    max_team_goals_per_minute: float = 0.1
    max_team_score: float = 50.0
    max_goals_per_match: float = 10.0
    max_assists_per_match: float = 8.0
    max_contribution_per_match: float = 15.0
    short_match_minutes: float = 20.0

    # Statistical anomaly (z-score)
    zscore_threshold: float = DEFAULT_ZSCORE_THRESHOLD
    min_history_for_stats: int = DEFAULT_MIN_HISTORY_FOR_STATS
    min_stddev: float = 0.5
    # Spike: goals+assists rise above the historical mean by more than
    # max(mean * performance_spike_ratio, performance_spike_min_jump)
    performance_spike_ratio: float = 1.0
    performance_spike_min_jump: float = 2.0

    # Timing
    max_match_age_days: int = 730

    # Pattern recognition
    pattern_window: int = DEFAULT_PATTERN_WINDOW
    max_identical_run: int = DEFAULT_MAX_IDENTICAL_RUN
    form_reversal_window_rate: float = 0.25
    form_reversal_overall_rate: float = 0.30
    streak_length: int = 6
    streak_min_probability: float = 0.01

    # Box score
    possession_tolerance: float = 5.0

    def __post_init__(self) -> None:
        if self.error_penalty < self.warning_penalty:
            raise ValueError("error_penalty must be >= warning_penalty")
        if self.warning_penalty < 0:
            raise ValueError("penalties must be non-negative")
        if self.min_duration_minutes > self.max_duration_minutes:
            raise ValueError("min_duration_minutes must be <= max_duration_minutes")
        if self.min_minutes_per_goal <= 0:
            raise ValueError("min_minutes_per_goal must be positive")

    @property
    def penalties(self) -> dict[IssueSeverity, float]:
        return {
            IssueSeverity.ERROR: self.error_penalty,
            IssueSeverity.WARNING: self.warning_penalty,
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> ValidatorConfig:
        return cls(
            error_penalty=settings.error_penalty,
            warning_penalty=settings.warning_penalty,
            suspicion_threshold=settings.suspicion_threshold,
            min_duration_minutes=settings.min_duration_minutes,
            max_duration_minutes=settings.max_duration_minutes,
            min_minutes_per_goal=settings.min_minutes_per_goal,
            zscore_threshold=settings.zscore_threshold,
            min_history_for_stats=settings.min_history_for_stats,
            pattern_window=settings.pattern_window,
            max_identical_run=settings.max_identical_run,
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MatchValidator:
    """
    Validate reported matches against the reporting player's history.

    clock is injectable so "future match" checks are reproducible in tests.
    """

    config: ValidatorConfig = field(default_factory=ValidatorConfig)
    clock: Callable[[], datetime] = _utcnow
    rules: Sequence[Rule] = DEFAULT_RULES

    def validate(
        self,
        match: MatchRecord,
        history: Iterable[MatchRecord] | None = None,
    ) -> ValidationResult:
        """
        Run all rules and return a ValidationResult. Never raises.

        history is the same player's other matches; the candidate may be
        included and is not double-counted. A rule that raises is logged
        and recorded as a VALIDATION_CHECK_FAILED error.
        """
        now = self.clock()
        findings: list[ValidationIssue] = []
        try:
            ctx = build_context(match, list(history or []), now)
        except Exception as e:
            logger.warning("validation_history_unusable", match_id=getattr(match, "id", None), error=str(e))
            findings.append(
                ValidationIssue(
                    code="VALIDATION_CHECK_FAILED",
                    message=f"Player history could not be read: {e}",
                    severity=IssueSeverity.ERROR,
                    details={"rule": "build_context"},
                )
            )
            ctx = CheckContext(
                now=now,
                goals=clamp_count(getattr(match, "player_goals", 0)),
                assists=clamp_count(getattr(match, "player_assists", 0)),
            )

        for rule in self.rules:
            try:
                findings.extend(rule(match, ctx, self.config))
            except Exception as e:
                logger.warning(
                    "validation_rule_failed",
                    match_id=getattr(match, "id", None),
                    rule=rule.__name__,
                    error=str(e),
                )
                findings.append(
                    ValidationIssue(
                        code="VALIDATION_CHECK_FAILED",
                        message=f"Check {rule.__name__} could not evaluate this match",
                        severity=IssueSeverity.ERROR,
                        details={"rule": rule.__name__, "error": str(e)},
                    )
                )

        errors = [f for f in findings if f.severity == IssueSeverity.ERROR]
        warnings = [f for f in findings if f.severity != IssueSeverity.ERROR]
        score = compute_validation_score(findings, penalties=self.config.penalties)
        result = ValidationResult(
            is_valid=not errors,
            score=round(score, 2),
            issues=errors,
            warnings=warnings,
            match_id=getattr(match, "id", None),
            validated_at=now,
        )
        logger.debug(
            "match_validated",
            match_id=result.match_id,
            score=result.score,
            is_valid=result.is_valid,
            codes=result.codes,
        )
        return result

    def is_suspicious(self, result: ValidationResult) -> bool:
        """True iff the score is below the suspicion threshold or any error is present."""
        return bool(result.issues) or not result.is_valid or result.score < self.config.suspicion_threshold

    def build_player_profile(self, history: Iterable[MatchRecord]) -> PlayerProfile:
        return build_player_profile(history)


def build_player_profile(history: Iterable[MatchRecord]) -> PlayerProfile:
    """
    Arithmetic means over history; all zeros for an empty history.

    math.fsum keeps the means independent of input order. player_id is set
    only when every record that carries one agrees on it.
    """
    matches = list(history or [])
    total = len(matches)
    player_ids = {m.player_id for m in matches if m.player_id}
    player_id = next(iter(player_ids)) if len(player_ids) == 1 else None
    if total == 0:
        return PlayerProfile(
            avg_goals_per_match=0.0,
            avg_assists_per_match=0.0,
            avg_match_duration=0.0,
            total_matches=0,
            player_id=player_id,
        )
    return PlayerProfile(
        avg_goals_per_match=math.fsum(clamp_count(m.player_goals) for m in matches) / total,
        avg_assists_per_match=math.fsum(clamp_count(m.player_assists) for m in matches) / total,
        avg_match_duration=math.fsum(clamp_count(m.duration_minutes) for m in matches) / total,
        total_matches=total,
        player_id=player_id,
    )


def generate_validation_report(result: ValidationResult) -> str:
    """Human-readable validation report (plain text)."""
    lines = [
        f"Match Validation Report (Score: {result.score:g}/100)",
        f"Status: {'VALID' if result.is_valid else 'INVALID'}",
        "",
    ]
    if result.issues:
        lines.append("ISSUES:")
        for issue in result.issues:
            lines.append(f"  [{issue.severity.value}] {issue.code}: {issue.message}")
            if issue.recommendation:
                lines.append(f"     -> {issue.recommendation}")
        lines.append("")
    if result.warnings:
        lines.append("WARNINGS:")
        for warning in result.warnings:
            lines.append(f"  [{warning.severity.value}] {warning.code}: {warning.message}")
            if warning.recommendation:
                lines.append(f"     -> {warning.recommendation}")
        lines.append("")
    if result.is_valid and not result.warnings:
        lines.append("All checks passed - match is legitimate")
    return "\n".join(lines)
