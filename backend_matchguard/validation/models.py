"""
Data models for match validation.

MatchRecord is the immutable fact produced upstream by the simulation or
reporting layer. ValidationIssue / ValidationResult / PlayerProfile are pure
values produced fresh on every call; nothing here is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class MatchOutcome(str, Enum):
    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"


class PlayerTeam(str, Enum):
    HOME = "home"
    AWAY = "away"


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are treated as UTC; aware ones are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any) -> datetime:
    """
    Parse a match date from a datetime, ISO-8601 string, or epoch number.

    Epoch values above 1e11 are taken as milliseconds (JS Date.now() style),
    otherwise as seconds. Unparseable strings and out-of-range or non-finite
    epochs raise ValueError; other types raise TypeError.
    """
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError) as e:
            raise ValueError(f"Epoch out of range: {value!r}") from e
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return as_utc(datetime.fromisoformat(text))
    raise TypeError(f"Unsupported date value: {value!r}")


@dataclass(frozen=True)
class TeamStats:
    """Box-score numbers for one side as reported by the match engine."""

    goals: int = 0
    assists: int = 0
    possession: float = 50.0
    """Percent of time in possession (0-100)."""
    pass_accuracy: float = 0.0
    """Percent of completed passes (0-100)."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "goals": self.goals,
            "assists": self.assists,
            "possession": self.possession,
            "pass_accuracy": self.pass_accuracy,
        }


@dataclass(frozen=True)
class MatchStats:
    """Engine box score for both sides of a match."""

    home: TeamStats
    away: TeamStats

    def for_team(self, team: str) -> TeamStats:
        return self.away if team == PlayerTeam.AWAY.value else self.home

    def to_dict(self) -> dict[str, Any]:
        return {"home": self.home.to_dict(), "away": self.away.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MatchStats:
        return cls(
            home=TeamStats(**(data.get("home") or {})),
            away=TeamStats(**(data.get("away") or {})),
        )


@dataclass(frozen=True)
class MatchRecord:
    """
    Immutable fact about one played match, from the reporting player's view.

    id is unique per match per reporting player. home_score / away_score are
    optional because some reporting paths only carry the player's box score.
    """

    id: str
    home_team: str
    away_team: str
    date: datetime
    duration_minutes: float
    player_goals: int = 0
    player_assists: int = 0
    home_score: int | None = None
    away_score: int | None = None
    player_team: str = PlayerTeam.HOME.value
    result: str | None = None
    """Reported outcome (win/loss/draw) for the player's team; derived from scores if None."""
    player_id: str | None = None
    top_scorer: str | None = None
    top_scorer_goals: int | None = None
    stats: MatchStats | None = None

    @property
    def has_scores(self) -> bool:
        return self.home_score is not None and self.away_score is not None

    @property
    def team_score(self) -> int | None:
        if not self.has_scores:
            return None
        return self.away_score if self.player_team == PlayerTeam.AWAY.value else self.home_score

    @property
    def opponent_score(self) -> int | None:
        if not self.has_scores:
            return None
        return self.home_score if self.player_team == PlayerTeam.AWAY.value else self.away_score

    def derived_result(self) -> str | None:
        """Outcome implied by the scoreline; None without scores."""
        team, opp = self.team_score, self.opponent_score
        if team is None or opp is None:
            return None
        try:
            if team > opp:
                return MatchOutcome.WIN.value
            if team < opp:
                return MatchOutcome.LOSS.value
        except TypeError:
            return None
        return MatchOutcome.DRAW.value

    def effective_result(self) -> str | None:
        """Reported result if present, otherwise the one implied by the scores."""
        if self.result:
            return str(self.result).strip().lower()
        return self.derived_result()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "date": as_utc(self.date).isoformat(),
            "duration_minutes": self.duration_minutes,
            "player_goals": self.player_goals,
            "player_assists": self.player_assists,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "player_team": self.player_team,
            "result": self.result,
            "player_id": self.player_id,
            "top_scorer": self.top_scorer,
            "top_scorer_goals": self.top_scorer_goals,
            "stats": self.stats.to_dict() if self.stats else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MatchRecord:
        """Build from a plain dict (API payloads, fixtures). date accepts ISO or epoch."""
        stats = data.get("stats")
        return cls(
            id=data["id"],
            home_team=data["home_team"],
            away_team=data["away_team"],
            date=parse_datetime(data["date"]),
            duration_minutes=data["duration_minutes"],
            player_goals=data.get("player_goals", 0),
            player_assists=data.get("player_assists", 0),
            home_score=data.get("home_score"),
            away_score=data.get("away_score"),
            player_team=data.get("player_team") or PlayerTeam.HOME.value,
            result=data.get("result"),
            player_id=data.get("player_id"),
            top_scorer=data.get("top_scorer"),
            top_scorer_goals=data.get("top_scorer_goals"),
            stats=MatchStats.from_dict(stats) if isinstance(stats, dict) else stats,
        )


@dataclass
class ValidationIssue:
    """
    Single explainable validation finding.

    details holds the thresholds and actual values behind the finding so
    reviewers can see exactly why it fired.
    """

    code: str
    message: str
    severity: IssueSeverity
    details: dict[str, Any] = field(default_factory=dict)
    recommendation: str | None = None
    """What a reviewer should check next, if anything."""

    @property
    def is_error(self) -> bool:
        return self.severity == IssueSeverity.ERROR

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "details": self.details,
            "recommendation": self.recommendation,
        }


@dataclass
class ValidationResult:
    """
    Outcome of validating one match.

    issues holds error-severity findings, warnings the rest. is_valid is
    False iff at least one error is present. score is 0-100, lower is
    more suspicious.
    """

    is_valid: bool
    score: float
    issues: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    match_id: str | None = None
    validated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def error_count(self) -> int:
        return len(self.issues)

    @property
    def codes(self) -> list[str]:
        return [i.code for i in self.issues] + [w.code for w in self.warnings]

    def to_dict(self) -> dict[str, Any]:
        return {
            "match_id": self.match_id,
            "is_valid": self.is_valid,
            "score": self.score,
            "issues": [i.to_dict() for i in self.issues],
            "warnings": [w.to_dict() for w in self.warnings],
            "validated_at": self.validated_at.isoformat(),
        }


@dataclass
class PlayerProfile:
    """Rolling averages over a player's match history; a pure function of that history."""

    avg_goals_per_match: float
    avg_assists_per_match: float
    avg_match_duration: float
    total_matches: int
    player_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "avg_goals_per_match": self.avg_goals_per_match,
            "avg_assists_per_match": self.avg_assists_per_match,
            "avg_match_duration": self.avg_match_duration,
            "total_matches": self.total_matches,
        }
