"""
Validation score computation: severity-weighted deductions.

Starts from a base score and subtracts a fixed penalty per finding by
severity. Penalties are policy and come from configuration; the only hard
rules are that errors cost more than warnings and that adding a finding
never raises the score.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from backend_matchguard.validation.models import IssueSeverity, ValidationIssue

# Default deductions per finding (overridden by ValidatorConfig)
SEVERITY_PENALTY: dict[IssueSeverity, float] = {
    IssueSeverity.ERROR: 20.0,
    IssueSeverity.WARNING: 8.0,
}


def compute_validation_score(
    findings: Iterable[ValidationIssue],
    *,
    penalties: Mapping[IssueSeverity, float] | None = None,
    base_score: float = 100.0,
    min_score: float = 0.0,
    max_score: float = 100.0,
) -> float:
    """
    Compute a validation score (0-100) from issues and warnings.

    Negative penalties are treated as zero so a misconfigured policy cannot
    make extra findings improve the score.

    Args:
        findings: All errors and warnings for the match.
        penalties: Deduction per severity; SEVERITY_PENALTY if None.
        base_score: Starting score before penalties.
        min_score: Floor for the returned score.
        max_score: Ceiling for the returned score.

    Returns:
        Score in [min_score, max_score].
    """
    table = penalties or SEVERITY_PENALTY
    score = base_score
    for finding in findings:
        score -= max(0.0, float(table.get(finding.severity, 0.0)))
    return max(min_score, min(max_score, score))
