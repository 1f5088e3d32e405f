"""
Commitment store: write-once, tamper-evident commitments of match results.

commit() hashes the attested facts, hands the payload to the injected chain
submitter and records a pending transaction. Confirmation and failure
arrive later through handle_confirmation/handle_failure (pushed by the
submitter or an HTTP callback) or poll_pending(), and are applied exactly
once. verify() recomputes the result hash from a current record and
compares it to the stored one.

Writes are serialized per match id; the repository publishes whole frozen
records, so readers never observe a partially written commitment.
"""

from __future__ import annotations

import hmac
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from backend_matchguard.commitment.hashing import (
    compute_match_data_hash,
    compute_record_result_hash,
    compute_result_hash,
    result_fields,
    result_fields_from_record,
)
from backend_matchguard.commitment.models import (
    CommitmentRecord,
    OnChainMatchSummary,
    OnChainTransaction,
    TxStatus,
)
from backend_matchguard.commitment.report import generate_summary_report
from backend_matchguard.commitment.repository import CommitmentRepository, InMemoryCommitmentRepository
from backend_matchguard.commitment.submitter import ChainReceipt, ChainSubmitter
from backend_matchguard.config.settings import DEFAULT_CHAIN_ID, DEFAULT_PENDING_TIMEOUT_SEC, Settings
from backend_matchguard.core.exceptions import (
    ChainSubmissionError,
    CommitmentNotFoundError,
    ContractViolationError,
    require_match_id,
)
from backend_matchguard.matchguard_logging import bind_match, get_logger
from backend_matchguard.validation.models import MatchRecord, as_utc

logger = get_logger(__name__)

# Receipts that arrive before their commitment is published are held this long (by count)
MAX_UNCLAIMED_RECEIPTS = 1024

# Per-match write locks are striped over a fixed pool; ids sharing a stripe serialize
KEY_LOCK_STRIPES = 64

_HASH_INPUT_ERRORS = (TypeError, ValueError, AttributeError)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CommitmentStoreConfig:
    """Chain target and pending-timeout policy for the store."""

    pending_timeout_sec: float = DEFAULT_PENDING_TIMEOUT_SEC
    chain_id: int = DEFAULT_CHAIN_ID
    contract_address: str = ""
    compute_match_data_hash: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> CommitmentStoreConfig:
        return cls(
            pending_timeout_sec=settings.pending_timeout_sec,
            chain_id=settings.chain_id,
            contract_address=settings.contract_address,
        )


def build_summary(match: MatchRecord, match_id: str, *, include_match_data_hash: bool = True) -> OnChainMatchSummary:
    """
    Derive the attested summary for match. Raises TypeError/ValueError on malformed input.

    The full-data hash is optional: if the record cannot be fully
    canonicalized, the summary is still built with match_data_hash=None.
    """
    fields = result_fields_from_record(match)
    match_data_hash = None
    if include_match_data_hash:
        try:
            match_data_hash = compute_match_data_hash(match)
        except _HASH_INPUT_ERRORS as e:
            logger.warning("match_data_hash_skipped", match_id=match_id, error=str(e))
    return OnChainMatchSummary(
        match_id=match_id,
        home_team=fields["home_team"],
        away_team=fields["away_team"],
        home_score=fields["home_score"],
        away_score=fields["away_score"],
        top_scorer=fields["top_scorer"],
        top_scorer_goals=fields["top_scorer_goals"],
        timestamp=as_utc(match.date),
        result_hash=compute_result_hash(fields),
        match_data_hash=match_data_hash,
    )


def detect_modifications(summary: OnChainMatchSummary, record: MatchRecord) -> list[str]:
    """Names of attested fields whose canonical value differs between summary and record."""
    committed = result_fields(**summary.result_fields())
    current = result_fields_from_record(record)
    return [name for name in committed if committed[name] != current[name]]


class CommitmentStore:
    """
    Keyed commitment state: match_id -> (summary, transaction).

    One instance per process (or per app); construct it explicitly and pass
    it to call sites. submitter is any object with submit(payload) -> tx_hash;
    if it also has subscribe(listener) the store registers for receipts, and
    if it has get_receipt(tx_hash) poll_pending() can pull them.
    """

    def __init__(
        self,
        submitter: ChainSubmitter,
        repository: CommitmentRepository | None = None,
        config: CommitmentStoreConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._submitter = submitter
        self._repository = repository if repository is not None else InMemoryCommitmentRepository()
        self._config = config or CommitmentStoreConfig()
        self._clock = clock
        self._key_locks = tuple(threading.RLock() for _ in range(KEY_LOCK_STRIPES))
        self._receipts_lock = threading.Lock()
        self._unclaimed_receipts: dict[str, ChainReceipt] = {}
        subscribe = getattr(submitter, "subscribe", None)
        if callable(subscribe):
            subscribe(self._on_receipt)

    @property
    def config(self) -> CommitmentStoreConfig:
        return self._config

    def _lock_for(self, match_id: str) -> threading.RLock:
        return self._key_locks[hash(match_id) % len(self._key_locks)]

    # -------------------------------------------------------------------------
    # commit / verify
    # -------------------------------------------------------------------------

    def commit(self, match: MatchRecord) -> OnChainTransaction:
        """
        Commit match and return its transaction.

        Idempotent per match id: if a pending or confirmed commitment exists it
        is returned unchanged. A failed commitment is replaced by a new
        submission. Submission failures come back as a failed transaction;
        only a missing match id raises (MatchIdRequiredError).
        """
        transaction, _ = self.commit_with_status(match)
        return transaction

    def commit_with_status(self, match: MatchRecord) -> tuple[OnChainTransaction, bool]:
        """
        Like commit(), also reporting whether this call stored a new commitment.

        The flag is False for an existing commitment, a lost race, and a
        hashing failure (nothing is stored).
        """
        match_id = require_match_id(getattr(match, "id", None))
        log = bind_match(match_id)
        with self._lock_for(match_id):
            existing = self._repository.get(match_id)
            if existing is not None and existing.transaction.status != TxStatus.FAILED:
                log.info(
                    "commitment_exists",
                    tx_hash=existing.transaction.tx_hash,
                    status=existing.transaction.status.value,
                )
                return existing.transaction, False

            attempts = existing.transaction.attempts + 1 if existing is not None else 1
            try:
                summary = build_summary(
                    match,
                    match_id,
                    include_match_data_hash=self._config.compute_match_data_hash,
                )
            except _HASH_INPUT_ERRORS as e:
                log.warning("commitment_hash_failed", error=str(e))
                return self._new_transaction(match_id, None, attempts, error=f"hashing failed: {e}"), False

            transaction = self._submit(summary, attempts)
            record = CommitmentRecord(summary=summary, transaction=transaction)
            with self._receipts_lock:
                if existing is None:
                    stored, created = self._repository.insert_if_absent(record)
                else:
                    created = self._repository.compare_and_swap(existing, record)
                    stored = record if created else self._repository.get(match_id)
                early = None
                if created and transaction.tx_hash:
                    early = self._unclaimed_receipts.pop(transaction.tx_hash, None)

            if not created:
                log.warning("commitment_race_lost", discarded_tx_hash=transaction.tx_hash)
                return (stored.transaction if stored is not None else transaction), False

            log.info(
                "commitment_retried" if existing is not None else "commitment_submitted",
                tx_hash=transaction.tx_hash,
                status=transaction.status.value,
                attempts=attempts,
                result_hash=summary.result_hash,
            )
            if early is not None:
                return self._apply_receipt(stored, early), True
            return transaction, True

    def verify(self, match_id: str, current_record: MatchRecord) -> bool | None:
        """
        True if current_record still hashes to the committed result hash, False if not.

        None when there is nothing to verify against: no commitment for
        match_id, or its transaction failed. A record that cannot be hashed
        verifies as False. Never writes.
        """
        match_id = require_match_id(match_id)
        record = self._repository.get(match_id)
        if record is None or record.transaction.status == TxStatus.FAILED:
            return None
        try:
            current_hash = compute_record_result_hash(current_record)
        except _HASH_INPUT_ERRORS as e:
            logger.warning("verify_hash_failed", match_id=match_id, error=str(e))
            return False
        matched = hmac.compare_digest(current_hash, record.summary.result_hash)
        if not matched:
            logger.warning(
                "commitment_hash_mismatch",
                match_id=match_id,
                modified=detect_modifications(record.summary, current_record),
            )
        return matched

    # -------------------------------------------------------------------------
    # Out-of-band completion
    # -------------------------------------------------------------------------

    def handle_confirmation(self, tx_hash: str, block_number: int) -> OnChainTransaction | None:
        """Mark tx_hash confirmed in block_number. Duplicates are no-ops. None for an unknown tx."""
        if isinstance(block_number, bool) or not isinstance(block_number, int) or block_number < 0:
            raise ContractViolationError(f"block_number must be a non-negative integer, got {block_number!r}")
        receipt = ChainReceipt(tx_hash=self._require_tx_hash(tx_hash), confirmed=True, block_number=block_number)
        return self._handle_receipt(receipt)

    def handle_failure(self, tx_hash: str, reason: str = "") -> OnChainTransaction | None:
        """Mark tx_hash failed. Ignored once the transaction is terminal. None for an unknown tx."""
        receipt = ChainReceipt(tx_hash=self._require_tx_hash(tx_hash), confirmed=False, error=reason or "failed")
        return self._handle_receipt(receipt)

    def poll_pending(self) -> list[OnChainTransaction]:
        """Pull receipts for pending transactions from the submitter; return the ones that changed."""
        get_receipt = getattr(self._submitter, "get_receipt", None)
        if not callable(get_receipt):
            return []
        updated: list[OnChainTransaction] = []
        for record in self._repository.list_all():
            tx = record.transaction
            if tx.status != TxStatus.PENDING or not tx.tx_hash:
                continue
            try:
                receipt = get_receipt(tx.tx_hash)
            except Exception as e:
                logger.warning("receipt_poll_failed", match_id=tx.match_id, tx_hash=tx.tx_hash, error=str(e))
                continue
            if receipt is None:
                continue
            result = self._handle_receipt(receipt)
            if result is not None and result.status != TxStatus.PENDING:
                updated.append(result)
        return updated

    def _on_receipt(self, receipt: ChainReceipt) -> None:
        self._handle_receipt(receipt)

    @staticmethod
    def _require_tx_hash(tx_hash: Any) -> str:
        if not isinstance(tx_hash, str) or not tx_hash.strip():
            raise ContractViolationError("tx_hash must be a non-empty string")
        return tx_hash.strip()

    def _handle_receipt(self, receipt: ChainReceipt) -> OnChainTransaction | None:
        with self._receipts_lock:
            record = self._repository.find_by_tx_hash(receipt.tx_hash)
            if record is None:
                self._hold_unclaimed(receipt)
                return None
        with self._lock_for(record.match_id):
            current = self._repository.get(record.match_id)
            if current is None:
                return None
            return self._apply_receipt(current, receipt)

    def _hold_unclaimed(self, receipt: ChainReceipt) -> None:
        if len(self._unclaimed_receipts) >= MAX_UNCLAIMED_RECEIPTS:
            oldest = next(iter(self._unclaimed_receipts))
            del self._unclaimed_receipts[oldest]
        self._unclaimed_receipts[receipt.tx_hash] = receipt
        logger.info("receipt_for_unknown_tx", tx_hash=receipt.tx_hash, confirmed=receipt.confirmed)

    def _apply_receipt(self, record: CommitmentRecord, receipt: ChainReceipt) -> OnChainTransaction:
        """Apply receipt to record's transaction once. Caller holds the match lock."""
        tx = record.transaction
        log = bind_match(record.match_id)
        if tx.tx_hash != receipt.tx_hash:
            log.info("receipt_for_superseded_tx", tx_hash=receipt.tx_hash, current_tx_hash=tx.tx_hash)
            return tx
        if tx.status == TxStatus.CONFIRMED:
            if receipt.confirmed:
                log.debug("duplicate_confirmation", tx_hash=tx.tx_hash, block_number=tx.block_number)
            else:
                log.warning("failure_after_confirmation_ignored", tx_hash=tx.tx_hash, reason=receipt.error)
            return tx
        if tx.status == TxStatus.FAILED:
            log.info("receipt_after_failure_ignored", tx_hash=tx.tx_hash, confirmed=receipt.confirmed)
            return tx

        if receipt.confirmed:
            new_tx = tx.confirmed(receipt.block_number or 0, self._clock())
        else:
            new_tx = tx.failed(receipt.error or "failed")
        if not self._repository.compare_and_swap(record, record.with_transaction(new_tx)):
            current = self._repository.get(record.match_id)
            log.info("receipt_already_applied", tx_hash=tx.tx_hash)
            return current.transaction if current is not None else tx
        if new_tx.status == TxStatus.CONFIRMED:
            log.info("commitment_confirmed", tx_hash=tx.tx_hash, block_number=new_tx.block_number)
        else:
            log.warning("commitment_failed", tx_hash=tx.tx_hash, error=new_tx.error)
        return new_tx

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    def _new_transaction(
        self,
        match_id: str,
        tx_hash: str | None,
        attempts: int,
        *,
        error: str | None = None,
    ) -> OnChainTransaction:
        return OnChainTransaction(
            match_id=match_id,
            tx_hash=tx_hash,
            status=TxStatus.FAILED if error else TxStatus.PENDING,
            submitted_at=self._clock(),
            contract_address=self._config.contract_address,
            chain_id=self._config.chain_id,
            error=error,
            attempts=attempts,
        )

    def _submit(self, summary: OnChainMatchSummary, attempts: int) -> OnChainTransaction:
        payload = {
            "match_id": summary.match_id,
            "result_hash": summary.result_hash,
            "match_data_hash": summary.match_data_hash,
            "summary": summary.to_dict(),
            "chain_id": self._config.chain_id,
            "contract_address": self._config.contract_address,
        }
        try:
            tx_hash = self._submitter.submit(payload)
            if not isinstance(tx_hash, str) or not tx_hash.strip():
                raise ChainSubmissionError(f"submitter returned no transaction hash: {tx_hash!r}")
        except ChainSubmissionError as e:
            logger.warning("chain_submission_failed", match_id=summary.match_id, error=e.message)
            return self._new_transaction(summary.match_id, None, attempts, error=e.message)
        except Exception as e:
            logger.exception("chain_submission_error", match_id=summary.match_id, error=str(e))
            return self._new_transaction(summary.match_id, None, attempts, error=str(e) or type(e).__name__)
        return self._new_transaction(summary.match_id, tx_hash.strip(), attempts)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_commitment(self, match_id: str) -> CommitmentRecord | None:
        return self._repository.get(require_match_id(match_id))

    def require_commitment(self, match_id: str) -> CommitmentRecord:
        record = self.get_commitment(match_id)
        if record is None:
            raise CommitmentNotFoundError(f"No commitment for match {match_id!r}")
        return record

    def get_summary(self, match_id: str) -> OnChainMatchSummary | None:
        record = self.get_commitment(match_id)
        return record.summary if record is not None else None

    def get_transaction(self, match_id: str) -> OnChainTransaction | None:
        record = self.get_commitment(match_id)
        return record.transaction if record is not None else None

    def list_commitments(self) -> list[CommitmentRecord]:
        return sorted(self._repository.list_all(), key=lambda r: as_utc(r.transaction.submitted_at))

    def _tx_is_stale(self, tx: OnChainTransaction, now: datetime) -> bool:
        if tx.status != TxStatus.PENDING:
            return False
        return (as_utc(now) - as_utc(tx.submitted_at)).total_seconds() > self._config.pending_timeout_sec

    def is_stale(self, match_id: str) -> bool:
        """True if the commitment is still pending after pending_timeout_sec. Never changes its status."""
        tx = self.get_transaction(match_id)
        return tx is not None and self._tx_is_stale(tx, self._clock())

    def list_stale(self) -> list[OnChainTransaction]:
        now = self._clock()
        return [r.transaction for r in self.list_commitments() if self._tx_is_stale(r.transaction, now)]

    def detect_modifications(self, match_id: str, record: MatchRecord) -> list[str] | None:
        """Attested fields that differ from the commitment; None if match_id has no commitment."""
        summary = self.get_summary(match_id)
        if summary is None:
            return None
        return detect_modifications(summary, record)

    def summary_report(self, match_id: str) -> str:
        record = self.require_commitment(match_id)
        return generate_summary_report(record.summary, record.transaction)
