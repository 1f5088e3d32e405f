"""
Plain-text summary report for a committed match.

The report carries the attested facts verbatim, one "Label: value" per line,
plus the result hash, so anyone holding the file can re-hash the facts and
compare (verify_summary_report) without access to the store.
"""

from __future__ import annotations

import hmac
from typing import Any

from backend_matchguard.commitment.hashing import compute_result_hash
from backend_matchguard.commitment.models import OnChainMatchSummary, OnChainTransaction, TxStatus
from backend_matchguard.validation.models import as_utc

REPORT_TITLE = "MATCH RESULT COMMITMENT"

# Report label -> summary field, in report order
_FACT_LABELS = (
    ("Match ID", "match_id"),
    ("Home Team", "home_team"),
    ("Away Team", "away_team"),
    ("Home Score", "home_score"),
    ("Away Score", "away_score"),
    ("Top Scorer", "top_scorer"),
    ("Top Scorer Goals", "top_scorer_goals"),
)
_HASH_LABELS = (
    ("Result Hash", "result_hash"),
    ("Match Data Hash", "match_data_hash"),
)
_INT_FIELDS = {"home_score", "away_score", "top_scorer_goals"}


def _single_line(value: Any) -> str:
    return " ".join(str(value).splitlines())


def generate_summary_report(
    summary: OnChainMatchSummary,
    transaction: OnChainTransaction | None = None,
) -> str:
    values = summary.to_dict()
    lines = [REPORT_TITLE, "=" * len(REPORT_TITLE), ""]
    for label, name in _FACT_LABELS:
        if values[name] is not None:
            lines.append(f"{label}: {_single_line(values[name])}")
    lines.append(f"Date: {as_utc(summary.timestamp).isoformat()}")
    lines.append("")
    lines.append(f"Final Score: {summary.home_team} {summary.home_score} - {summary.away_score} {summary.away_team}")
    lines.append("")
    for label, name in _HASH_LABELS:
        if values[name]:
            lines.append(f"{label}: {values[name]}")
    if transaction is not None:
        lines.append("")
        lines.append(f"Transaction: {transaction.tx_hash or '-'}")
        lines.append(f"Status: {transaction.status.value}")
        if transaction.status == TxStatus.CONFIRMED:
            lines.append(f"Block: {transaction.block_number}")
        if transaction.chain_id:
            lines.append(f"Chain ID: {transaction.chain_id}")
        if transaction.contract_address:
            lines.append(f"Contract: {transaction.contract_address}")
    lines.append("")
    lines.append("Verify: recompute the result hash from the facts above and compare.")
    return "\n".join(lines) + "\n"


def parse_summary_report(text: str) -> dict[str, Any]:
    """
    Extract attested facts and hashes from a report.

    Unknown lines are ignored. Integer fields are parsed as int; a
    non-numeric value raises ValueError.
    """
    labels = dict(_FACT_LABELS + _HASH_LABELS)
    parsed: dict[str, Any] = {}
    for line in (text or "").splitlines():
        label, sep, value = line.partition(": ")
        if not sep or label not in labels:
            continue
        name = labels[label]
        if name in parsed:
            continue
        parsed[name] = int(value) if name in _INT_FIELDS else value
    return parsed


def verify_summary_report(text: str) -> bool:
    """True iff the facts in the report re-hash to the report's own result hash."""
    try:
        parsed = parse_summary_report(text)
        expected = parsed.get("result_hash")
        if not expected:
            return False
        return hmac.compare_digest(compute_result_hash(parsed), str(expected))
    except (TypeError, ValueError):
        return False
