"""
Chain-submission collaborator.

The store only needs submit(payload) -> tx_hash. Confirmation and failure
arrive out of band: either pushed to listeners (subscribe) or pulled with
get_receipt(tx_hash). SimulatedChainSubmitter implements all three
in-process for development and tests; a real chain client is injected in
its place.
"""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from backend_matchguard.commitment.hashing import canonical_json
from backend_matchguard.core.exceptions import ChainSubmissionError
from backend_matchguard.matchguard_logging import get_logger

logger = get_logger(__name__)

DEFAULT_START_BLOCK = 1_000_000


@dataclass(frozen=True)
class ChainReceipt:
    """Outcome of a submitted transaction: confirmed with a block number, or failed with an error."""

    tx_hash: str
    confirmed: bool
    block_number: int | None = None
    error: str | None = None


ReceiptListener = Callable[[ChainReceipt], None]


class ChainSubmitter(Protocol):
    def submit(self, payload: dict[str, Any]) -> str:
        """Submit payload and return the pending transaction hash. Raise ChainSubmissionError on failure."""
        ...


class SimulatedChainSubmitter:
    """
    In-process chain: deterministic tx hashes, increasing block numbers.

    Transactions stay pending until confirm() or fail() is called. Set
    fail_submissions to make submit() raise, simulating an unreachable node.
    """

    def __init__(self, *, start_block: int = DEFAULT_START_BLOCK, fail_submissions: bool = False) -> None:
        self.fail_submissions = fail_submissions
        self._next_block = start_block
        self._nonce = 0
        self._payloads: dict[str, dict[str, Any]] = {}
        self._receipts: dict[str, ChainReceipt] = {}
        self._listeners: list[ReceiptListener] = []
        self._lock = threading.Lock()

    @property
    def submitted(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._payloads.values())

    def submit(self, payload: dict[str, Any]) -> str:
        if self.fail_submissions:
            raise ChainSubmissionError("simulated chain rejected the submission")
        with self._lock:
            self._nonce += 1
            digest = hashlib.sha256(canonical_json(payload) + str(self._nonce).encode("ascii"))
            tx_hash = "0x" + digest.hexdigest()
            self._payloads[tx_hash] = payload
        logger.debug("simulated_tx_submitted", tx_hash=tx_hash, match_id=payload.get("match_id"))
        return tx_hash

    def subscribe(self, listener: ReceiptListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def confirm(self, tx_hash: str, block_number: int | None = None) -> ChainReceipt:
        """Mine tx_hash (in the next block unless block_number is given) and notify listeners."""
        with self._lock:
            if tx_hash not in self._payloads:
                raise KeyError(tx_hash)
            if block_number is None:
                block_number = self._next_block
            self._next_block = max(self._next_block, block_number) + 1
            receipt = ChainReceipt(tx_hash=tx_hash, confirmed=True, block_number=block_number)
            self._receipts[tx_hash] = receipt
        self._notify(receipt)
        return receipt

    def fail(self, tx_hash: str, reason: str = "reverted") -> ChainReceipt:
        with self._lock:
            if tx_hash not in self._payloads:
                raise KeyError(tx_hash)
            receipt = ChainReceipt(tx_hash=tx_hash, confirmed=False, error=reason)
            self._receipts[tx_hash] = receipt
        self._notify(receipt)
        return receipt

    def get_receipt(self, tx_hash: str) -> ChainReceipt | None:
        with self._lock:
            return self._receipts.get(tx_hash)

    def _notify(self, receipt: ChainReceipt) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(receipt)
            except Exception as e:
                logger.warning("receipt_listener_failed", tx_hash=receipt.tx_hash, error=str(e))
