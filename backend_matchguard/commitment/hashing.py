"""
Canonical encoding and SHA-256 hashing of attested match facts.

resultHash covers exactly the minimal attested fact: both team names, both
scores, and the optional top scorer with their goals. The encoding fixes
key order (sorted keys), separators, text normalization (NFC, whitespace
collapsed) and number formatting (integral values as integers) so
semantically identical records always hash identically across platforms.
"""

from __future__ import annotations

import hashlib
import json
import math
import unicodedata
from typing import Any

from backend_matchguard.validation.models import MatchRecord, as_utc

RESULT_HASH_SCHEME = "matchguard/result/v1"
MATCH_DATA_HASH_SCHEME = "matchguard/match-data/v1"

# Field names as they appear in the canonical result encoding
RESULT_FIELDS = (
    "home_team",
    "away_team",
    "home_score",
    "away_score",
    "top_scorer",
    "top_scorer_goals",
)


def canonical_text(value: Any) -> str | None:
    """
    NFC-normalized text with every whitespace run (newlines included) collapsed
    to one space and the ends trimmed. None and blank strings become None.
    """
    if value is None:
        return None
    text = " ".join(unicodedata.normalize("NFC", str(value)).split())
    return text or None


def canonical_int(value: Any) -> int:
    """
    Integer form of a count. Accepts ints, integral floats and numeric strings.

    Raises ValueError for fractional, non-finite or non-numeric input.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a count: {value!r}")
    if isinstance(value, int):
        return value
    number = float(str(value).strip()) if isinstance(value, str) else float(value)
    if math.isnan(number) or math.isinf(number) or not number.is_integer():
        raise ValueError(f"Not an integral count: {value!r}")
    return int(number)


def canonical_number(value: Any) -> int | float:
    """Integral numbers as int, everything else as float; non-finite raises ValueError."""
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f"Not a finite number: {value!r}")
    return int(number) if number.is_integer() else number


def canonical_json(data: Any) -> bytes:
    """Deterministic UTF-8 JSON: sorted keys, no whitespace, no NaN."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")


def sha256_hex(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def result_fields(
    home_team: Any,
    away_team: Any,
    home_score: Any,
    away_score: Any,
    top_scorer: Any = None,
    top_scorer_goals: Any = None,
) -> dict[str, Any]:
    """
    Canonical dict of the attested result fields.

    Team names are required. Missing scores count as 0. A top scorer without
    goals (or goals without a scorer) keeps the missing side as null.
    """
    home = canonical_text(home_team)
    away = canonical_text(away_team)
    if home is None or away is None:
        raise ValueError("home_team and away_team are required for the result hash")
    return {
        "home_team": home,
        "away_team": away,
        "home_score": canonical_int(home_score if home_score is not None else 0),
        "away_score": canonical_int(away_score if away_score is not None else 0),
        "top_scorer": canonical_text(top_scorer),
        "top_scorer_goals": canonical_int(top_scorer_goals) if top_scorer_goals is not None else None,
    }


def result_fields_from_record(record: MatchRecord) -> dict[str, Any]:
    return result_fields(
        record.home_team,
        record.away_team,
        record.home_score,
        record.away_score,
        record.top_scorer,
        record.top_scorer_goals,
    )


def compute_result_hash(fields: dict[str, Any]) -> str:
    """SHA-256 hex of the canonical result encoding; fields are re-canonicalized first."""
    canonical = result_fields(*(fields.get(name) for name in RESULT_FIELDS))
    return sha256_hex(canonical_json({"scheme": RESULT_HASH_SCHEME, "result": canonical}))


def compute_record_result_hash(record: MatchRecord) -> str:
    return compute_result_hash(result_fields_from_record(record))


def match_data_fields(record: MatchRecord) -> dict[str, Any]:
    """Canonical dict of the full match record for the optional full-data hash."""
    data = record.to_dict()
    data.update(result_fields_from_record(record))
    data["id"] = canonical_text(record.id)
    data["date"] = as_utc(record.date).isoformat()
    data["duration_minutes"] = canonical_number(record.duration_minutes)
    data["player_goals"] = canonical_int(record.player_goals)
    data["player_assists"] = canonical_int(record.player_assists)
    data["player_team"] = canonical_text(record.player_team)
    data["result"] = canonical_text(str(record.result).lower()) if record.result else None
    data["player_id"] = canonical_text(record.player_id)
    if record.stats is not None:
        data["stats"] = {
            side: {
                "goals": canonical_int(team.goals),
                "assists": canonical_int(team.assists),
                "possession": canonical_number(team.possession),
                "pass_accuracy": canonical_number(team.pass_accuracy),
            }
            for side, team in (("home", record.stats.home), ("away", record.stats.away))
        }
    return data


def compute_match_data_hash(record: MatchRecord) -> str:
    """SHA-256 hex over the whole canonicalized record."""
    return sha256_hex(canonical_json({"scheme": MATCH_DATA_HASH_SCHEME, "match": match_data_fields(record)}))


__all__ = [
    "RESULT_FIELDS",
    "canonical_int",
    "canonical_json",
    "canonical_number",
    "canonical_text",
    "compute_match_data_hash",
    "compute_record_result_hash",
    "compute_result_hash",
    "match_data_fields",
    "result_fields",
    "result_fields_from_record",
    "sha256_hex",
]
