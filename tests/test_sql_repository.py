"""
Tests for SqlCommitmentRepository (SQLAlchemy, temporary SQLite via conftest):
write-once inserts, compare-and-swap updates, persistence across instances.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

from backend_matchguard.commitment import (
    CommitmentRecord,
    InMemoryCommitmentRepository,
    OnChainMatchSummary,
    OnChainTransaction,
    SqlCommitmentRepository,
    TxStatus,
    create_repository,
)

SUBMITTED_AT = datetime(2026, 6, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


def _record(match_id="m-1", tx_hash="0xaaa", home_score=2) -> CommitmentRecord:
    summary = OnChainMatchSummary(
        match_id=match_id,
        home_team="Lions",
        away_team="Tigers",
        home_score=home_score,
        away_score=1,
        timestamp=datetime(2026, 5, 31, 18, 30, tzinfo=timezone.utc),
        result_hash="ab" * 32,
        top_scorer="Ada",
        top_scorer_goals=2,
        match_data_hash="cd" * 32,
    )
    tx = OnChainTransaction(
        match_id=match_id,
        tx_hash=tx_hash,
        status=TxStatus.PENDING,
        submitted_at=SUBMITTED_AT,
        contract_address="0xcontract",
        chain_id=8453,
    )
    return CommitmentRecord(summary=summary, transaction=tx)


def test_insert_and_get_round_trip(sql_repository):
    """A stored record reads back equal, timestamps included."""
    record = _record()
    stored, created = sql_repository.insert_if_absent(record)
    assert created is True
    assert stored == record
    assert sql_repository.get("m-1") == record
    assert sql_repository.get("missing") is None


def test_insert_is_write_once(sql_repository):
    """Second insert for the same match id returns the first record (unique match_id)."""
    first = _record()
    sql_repository.insert_if_absent(first)
    stored, created = sql_repository.insert_if_absent(_record(tx_hash="0xbbb", home_score=9))
    assert created is False
    assert stored == first
    assert len(sql_repository.list_all()) == 1


def test_compare_and_swap(sql_repository):
    """Update applies only while the stored transaction is still the expected one."""
    record = _record()
    sql_repository.insert_if_absent(record)
    confirmed_tx = record.transaction.confirmed(123, SUBMITTED_AT)
    confirmed = record.with_transaction(confirmed_tx)
    assert sql_repository.compare_and_swap(record, confirmed) is True
    assert sql_repository.get("m-1").transaction.status == TxStatus.CONFIRMED
    assert sql_repository.get("m-1").transaction.block_number == 123
    # Stale expectation loses
    failed = record.with_transaction(record.transaction.failed("late"))
    assert sql_repository.compare_and_swap(record, failed) is False
    assert sql_repository.get("m-1").transaction.status == TxStatus.CONFIRMED


def test_compare_and_swap_from_failed_without_tx_hash(sql_repository):
    """Failed submissions have no tx hash; retry still swaps them."""
    failed = _record(tx_hash=None)
    failed = failed.with_transaction(replace(failed.transaction, status=TxStatus.FAILED, error="down"))
    sql_repository.insert_if_absent(failed)
    retry = _record(tx_hash="0xccc")
    retry = retry.with_transaction(replace(retry.transaction, attempts=2))
    assert sql_repository.compare_and_swap(failed, retry) is True
    assert sql_repository.get("m-1").transaction.tx_hash == "0xccc"


def test_find_by_tx_hash(sql_repository):
    sql_repository.insert_if_absent(_record())
    assert sql_repository.find_by_tx_hash("0xaaa").match_id == "m-1"
    assert sql_repository.find_by_tx_hash("0xzzz") is None


def test_persists_across_instances(tmp_path):
    """Two repositories on the same file see the same write-once state."""
    url = f"sqlite:///{tmp_path / 'shared.db'}"
    first = SqlCommitmentRepository(url)
    second = SqlCommitmentRepository(url)
    try:
        first.insert_if_absent(_record())
        stored, created = second.insert_if_absent(_record(tx_hash="0xother"))
        assert created is False
        assert stored.transaction.tx_hash == "0xaaa"
    finally:
        first.dispose()
        second.dispose()


def test_sql_store_round_trip(sql_store, submitter, match_factory):
    """The store behaves the same over SQL: commit, confirm, verify."""
    match = match_factory(home_score=2, away_score=1)
    tx = sql_store.commit(match)
    submitter.confirm(tx.tx_hash, block_number=77)
    assert sql_store.get_transaction(match.id).block_number == 77
    assert sql_store.verify(match.id, match) is True
    assert sql_store.verify(match.id, match_factory(home_score=3, away_score=1)) is False


def test_create_repository_selects_backend(tmp_path):
    assert isinstance(create_repository(""), InMemoryCommitmentRepository)
    repo = create_repository(f"sqlite:///{tmp_path / 'x.db'}")
    assert isinstance(repo, SqlCommitmentRepository)
    repo.dispose()
