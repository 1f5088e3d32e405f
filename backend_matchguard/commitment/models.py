"""
Commitment models: the attested summary and its chain transaction.

Both are frozen values. The store never mutates a record in place; it
publishes a new CommitmentRecord, so readers see either the old or the
new record and never a half-written one.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from backend_matchguard.validation.models import as_utc, parse_datetime


class TxStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


def _iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value is not None else None


def _parse_optional(value: Any) -> datetime | None:
    return parse_datetime(value) if value is not None else None


@dataclass(frozen=True)
class OnChainMatchSummary:
    """Minimal attested fact for one match, written once at commitment time."""

    match_id: str
    home_team: str
    away_team: str
    home_score: int
    away_score: int
    timestamp: datetime
    result_hash: str
    top_scorer: str | None = None
    top_scorer_goals: int | None = None
    match_data_hash: str | None = None

    def result_fields(self) -> dict[str, Any]:
        return {
            "home_team": self.home_team,
            "away_team": self.away_team,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "top_scorer": self.top_scorer,
            "top_scorer_goals": self.top_scorer_goals,
        }

    def to_dict(self) -> dict[str, Any]:
        data = {"match_id": self.match_id}
        data.update(self.result_fields())
        data.update(
            {
                "timestamp": _iso(self.timestamp),
                "result_hash": self.result_hash,
                "match_data_hash": self.match_data_hash,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OnChainMatchSummary:
        return cls(
            match_id=data["match_id"],
            home_team=data["home_team"],
            away_team=data["away_team"],
            home_score=int(data["home_score"]),
            away_score=int(data["away_score"]),
            timestamp=parse_datetime(data["timestamp"]),
            result_hash=data["result_hash"],
            top_scorer=data.get("top_scorer"),
            top_scorer_goals=data.get("top_scorer_goals"),
            match_data_hash=data.get("match_data_hash"),
        )


@dataclass(frozen=True)
class OnChainTransaction:
    """
    Chain transaction carrying a commitment.

    Starts pending (or failed if submission itself failed) and moves to
    confirmed or failed exactly once. block_number is set only when confirmed.
    """

    match_id: str
    tx_hash: str | None
    status: TxStatus
    submitted_at: datetime
    block_number: int | None = None
    confirmed_at: datetime | None = None
    contract_address: str = ""
    chain_id: int = 0
    error: str | None = None
    attempts: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status != TxStatus.PENDING

    def confirmed(self, block_number: int, at: datetime) -> OnChainTransaction:
        return replace(self, status=TxStatus.CONFIRMED, block_number=int(block_number), confirmed_at=at, error=None)

    def failed(self, reason: str) -> OnChainTransaction:
        return replace(self, status=TxStatus.FAILED, block_number=None, error=reason or "failed")

    def to_dict(self) -> dict[str, Any]:
        return {
            "match_id": self.match_id,
            "tx_hash": self.tx_hash,
            "status": self.status.value,
            "block_number": self.block_number,
            "submitted_at": _iso(self.submitted_at),
            "confirmed_at": _iso(self.confirmed_at),
            "contract_address": self.contract_address,
            "chain_id": self.chain_id,
            "error": self.error,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OnChainTransaction:
        return cls(
            match_id=data["match_id"],
            tx_hash=data.get("tx_hash"),
            status=TxStatus(data["status"]),
            submitted_at=parse_datetime(data["submitted_at"]),
            block_number=data.get("block_number"),
            confirmed_at=_parse_optional(data.get("confirmed_at")),
            contract_address=data.get("contract_address") or "",
            chain_id=int(data.get("chain_id") or 0),
            error=data.get("error"),
            attempts=int(data.get("attempts") or 1),
        )


@dataclass(frozen=True)
class CommitmentRecord:
    """What the store keeps per match id: the summary and its current transaction."""

    summary: OnChainMatchSummary
    transaction: OnChainTransaction

    @property
    def match_id(self) -> str:
        return self.summary.match_id

    def with_transaction(self, transaction: OnChainTransaction) -> CommitmentRecord:
        return CommitmentRecord(summary=self.summary, transaction=transaction)

    def to_dict(self) -> dict[str, Any]:
        return {"summary": self.summary.to_dict(), "transaction": self.transaction.to_dict()}
