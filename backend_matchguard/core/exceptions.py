"""
Application-level exceptions.

Data-level problems with a match are never raised; they are reported as
validation issues. Chain-submission failures end up as a failed transaction.
Only invalid calling patterns surface as exceptions, early and loudly.
"""

from __future__ import annotations


class MatchGuardError(Exception):
    """Base class for MatchGuard errors. code is stable for API and log consumers."""

    code = "MATCHGUARD_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class ContractViolationError(MatchGuardError, ValueError):
    """The caller broke the calling contract (e.g. empty match id)."""

    code = "CONTRACT_VIOLATION"


class MatchIdRequiredError(ContractViolationError):
    """A match id was missing, empty, or blank."""

    code = "MATCH_ID_REQUIRED"

    def __init__(self, message: str = "match id must be a non-empty string") -> None:
        super().__init__(message)


class ChainSubmissionError(MatchGuardError):
    """Raised by a chain submitter when a payload could not be submitted."""

    code = "CHAIN_SUBMISSION_FAILED"


class CommitmentNotFoundError(MatchGuardError, LookupError):
    """No commitment exists for the requested match id or transaction hash."""

    code = "COMMITMENT_NOT_FOUND"


def require_match_id(match_id: object) -> str:
    """Return the stripped match id or raise MatchIdRequiredError."""
    if not isinstance(match_id, str) or not match_id.strip():
        raise MatchIdRequiredError()
    return match_id.strip()


__all__ = [
    "ChainSubmissionError",
    "CommitmentNotFoundError",
    "ContractViolationError",
    "MatchGuardError",
    "MatchIdRequiredError",
    "require_match_id",
]
