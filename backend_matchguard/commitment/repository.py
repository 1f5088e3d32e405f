"""
Commitment persistence: write-once per match id, compare-and-swap updates.

InMemoryCommitmentRepository keeps frozen records in a dict behind a lock.
SqlCommitmentRepository stores them in the match_commitments table (SQLite
or PostgreSQL via SQLAlchemy); the unique match_id constraint makes the
write-once rule hold across processes, and conditional UPDATEs give the
same compare-and-swap the in-memory repository does.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Protocol

from sqlalchemy import Column, Float, Integer, String, create_engine, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from backend_matchguard.commitment.models import (
    CommitmentRecord,
    OnChainMatchSummary,
    OnChainTransaction,
    TxStatus,
)
from backend_matchguard.matchguard_logging import get_logger
from backend_matchguard.validation.models import as_utc

logger = get_logger(__name__)


def _tx_version(tx: OnChainTransaction) -> tuple[str | None, str, int]:
    """Fields that identify a transaction state for compare-and-swap."""
    return (tx.tx_hash, tx.status.value, tx.attempts)


class CommitmentRepository(Protocol):
    def get(self, match_id: str) -> CommitmentRecord | None: ...

    def find_by_tx_hash(self, tx_hash: str) -> CommitmentRecord | None: ...

    def insert_if_absent(self, record: CommitmentRecord) -> tuple[CommitmentRecord, bool]:
        """Store record unless match_id exists. Returns (stored record, created)."""
        ...

    def compare_and_swap(self, expected: CommitmentRecord, new: CommitmentRecord) -> bool:
        """Replace expected with new iff the stored transaction is still expected's. True on success."""
        ...

    def list_all(self) -> list[CommitmentRecord]: ...


class InMemoryCommitmentRepository:
    """Thread-safe dict of frozen CommitmentRecords; publishing is a single reference swap."""

    def __init__(self) -> None:
        self._records: dict[str, CommitmentRecord] = {}
        self._by_tx_hash: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, match_id: str) -> CommitmentRecord | None:
        with self._lock:
            return self._records.get(match_id)

    def find_by_tx_hash(self, tx_hash: str) -> CommitmentRecord | None:
        with self._lock:
            match_id = self._by_tx_hash.get(tx_hash)
            if match_id is None:
                return None
            record = self._records.get(match_id)
        if record is None or record.transaction.tx_hash != tx_hash:
            return None
        return record

    def insert_if_absent(self, record: CommitmentRecord) -> tuple[CommitmentRecord, bool]:
        with self._lock:
            existing = self._records.get(record.match_id)
            if existing is not None:
                return existing, False
            self._publish(record)
            return record, True

    def compare_and_swap(self, expected: CommitmentRecord, new: CommitmentRecord) -> bool:
        with self._lock:
            current = self._records.get(expected.match_id)
            if current is None or _tx_version(current.transaction) != _tx_version(expected.transaction):
                return False
            self._publish(new)
            return True

    def list_all(self) -> list[CommitmentRecord]:
        with self._lock:
            return list(self._records.values())

    def _publish(self, record: CommitmentRecord) -> None:
        self._records[record.match_id] = record
        if record.transaction.tx_hash:
            self._by_tx_hash[record.transaction.tx_hash] = record.match_id


# -----------------------------------------------------------------------------
# SQLAlchemy model
# -----------------------------------------------------------------------------

Base = declarative_base()


class MatchCommitment(Base):
    """One row per committed match: the attested summary plus its current transaction."""

    __tablename__ = "match_commitments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(String(128), unique=True, nullable=False, index=True)
    home_team = Column(String(256), nullable=False)
    away_team = Column(String(256), nullable=False)
    home_score = Column(Integer, nullable=False)
    away_score = Column(Integer, nullable=False)
    top_scorer = Column(String(256), nullable=True)
    top_scorer_goals = Column(Integer, nullable=True)
    match_timestamp = Column(Float, nullable=False)  # Unix seconds
    result_hash = Column(String(64), nullable=False)
    match_data_hash = Column(String(64), nullable=True)

    tx_hash = Column(String(128), nullable=True, index=True)
    status = Column(String(16), nullable=False, index=True)
    block_number = Column(Integer, nullable=True)
    submitted_at = Column(Float, nullable=False)  # Unix seconds
    confirmed_at = Column(Float, nullable=True)  # Unix seconds
    contract_address = Column(String(128), nullable=False, default="")
    chain_id = Column(Integer, nullable=False, default=0)
    error = Column(String(1024), nullable=True)
    attempts = Column(Integer, nullable=False, default=1)


def _to_unix(value: datetime | None) -> float | None:
    return as_utc(value).timestamp() if value is not None else None


def _from_unix(value: float | None) -> datetime | None:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value is not None else None


def _transaction_columns(tx: OnChainTransaction) -> dict[str, Any]:
    return {
        "tx_hash": tx.tx_hash,
        "status": tx.status.value,
        "block_number": tx.block_number,
        "submitted_at": _to_unix(tx.submitted_at),
        "confirmed_at": _to_unix(tx.confirmed_at),
        "contract_address": tx.contract_address,
        "chain_id": tx.chain_id,
        "error": tx.error[:1024] if tx.error else None,
        "attempts": tx.attempts,
    }


def _row_columns(record: CommitmentRecord) -> dict[str, Any]:
    s = record.summary
    columns = {
        "match_id": s.match_id,
        "home_team": s.home_team,
        "away_team": s.away_team,
        "home_score": s.home_score,
        "away_score": s.away_score,
        "top_scorer": s.top_scorer,
        "top_scorer_goals": s.top_scorer_goals,
        "match_timestamp": _to_unix(s.timestamp),
        "result_hash": s.result_hash,
        "match_data_hash": s.match_data_hash,
    }
    columns.update(_transaction_columns(record.transaction))
    return columns


def _row_to_record(row: MatchCommitment) -> CommitmentRecord:
    summary = OnChainMatchSummary(
        match_id=row.match_id,
        home_team=row.home_team,
        away_team=row.away_team,
        home_score=row.home_score,
        away_score=row.away_score,
        timestamp=_from_unix(row.match_timestamp),
        result_hash=row.result_hash,
        top_scorer=row.top_scorer,
        top_scorer_goals=row.top_scorer_goals,
        match_data_hash=row.match_data_hash,
    )
    transaction = OnChainTransaction(
        match_id=row.match_id,
        tx_hash=row.tx_hash,
        status=TxStatus(row.status),
        submitted_at=_from_unix(row.submitted_at),
        block_number=row.block_number,
        confirmed_at=_from_unix(row.confirmed_at),
        contract_address=row.contract_address or "",
        chain_id=row.chain_id or 0,
        error=row.error,
        attempts=row.attempts or 1,
    )
    return CommitmentRecord(summary=summary, transaction=transaction)


def _create_engine(db_url: str):
    connect_args: dict[str, Any] = {}
    kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(db_url, connect_args=connect_args, **kwargs)


class SqlCommitmentRepository:
    """SQLAlchemy-backed repository. Creates the match_commitments table on first use."""

    def __init__(self, db_url: str) -> None:
        self._engine = _create_engine(db_url)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        Base.metadata.create_all(bind=self._engine)
        logger.info("commitment_db_ready", url=db_url.split("?")[0].split("//")[-1])

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Context manager for a single session. Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, match_id: str) -> CommitmentRecord | None:
        with self._session_scope() as session:
            row = session.query(MatchCommitment).filter(MatchCommitment.match_id == match_id).first()
            return _row_to_record(row) if row is not None else None

    def find_by_tx_hash(self, tx_hash: str) -> CommitmentRecord | None:
        with self._session_scope() as session:
            row = session.query(MatchCommitment).filter(MatchCommitment.tx_hash == tx_hash).first()
            return _row_to_record(row) if row is not None else None

    def insert_if_absent(self, record: CommitmentRecord) -> tuple[CommitmentRecord, bool]:
        try:
            with self._session_scope() as session:
                session.add(MatchCommitment(**_row_columns(record)))
            return record, True
        except IntegrityError:
            existing = self.get(record.match_id)
            if existing is None:
                raise
            logger.info("commitment_insert_lost_race", match_id=record.match_id)
            return existing, False

    def compare_and_swap(self, expected: CommitmentRecord, new: CommitmentRecord) -> bool:
        tx_hash, status, attempts = _tx_version(expected.transaction)
        tx_clause = MatchCommitment.tx_hash.is_(None) if tx_hash is None else MatchCommitment.tx_hash == tx_hash
        stmt = (
            update(MatchCommitment)
            .where(
                MatchCommitment.match_id == expected.match_id,
                MatchCommitment.status == status,
                MatchCommitment.attempts == attempts,
                tx_clause,
            )
            .values(**_row_columns(new))
        )
        with self._session_scope() as session:
            result = session.execute(stmt)
            return result.rowcount == 1

    def list_all(self) -> list[CommitmentRecord]:
        with self._session_scope() as session:
            rows = session.query(MatchCommitment).order_by(MatchCommitment.id).all()
            return [_row_to_record(row) for row in rows]

    def dispose(self) -> None:
        self._engine.dispose()


def create_repository(db_url: str = "") -> CommitmentRepository:
    """In-memory repository for an empty URL, otherwise SQLAlchemy."""
    if not (db_url or "").strip():
        return InMemoryCommitmentRepository()
    return SqlCommitmentRepository(db_url.strip())
