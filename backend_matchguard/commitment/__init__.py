"""Commitment store: canonical hashing, chain submission tracking, verification and report export."""

from backend_matchguard.commitment.hashing import (
    canonical_json,
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
from backend_matchguard.commitment.report import (
    generate_summary_report,
    parse_summary_report,
    verify_summary_report,
)
from backend_matchguard.commitment.repository import (
    CommitmentRepository,
    InMemoryCommitmentRepository,
    SqlCommitmentRepository,
    create_repository,
)
from backend_matchguard.commitment.store import (
    CommitmentStore,
    CommitmentStoreConfig,
    build_summary,
    detect_modifications,
)
from backend_matchguard.commitment.submitter import (
    ChainReceipt,
    ChainSubmitter,
    SimulatedChainSubmitter,
)

__all__ = [
    "ChainReceipt",
    "ChainSubmitter",
    "CommitmentRecord",
    "CommitmentRepository",
    "CommitmentStore",
    "CommitmentStoreConfig",
    "InMemoryCommitmentRepository",
    "OnChainMatchSummary",
    "OnChainTransaction",
    "SimulatedChainSubmitter",
    "SqlCommitmentRepository",
    "TxStatus",
    "build_summary",
    "canonical_json",
    "compute_match_data_hash",
    "compute_record_result_hash",
    "compute_result_hash",
    "create_repository",
    "detect_modifications",
    "generate_summary_report",
    "parse_summary_report",
    "result_fields",
    "result_fields_from_record",
    "verify_summary_report",
]
