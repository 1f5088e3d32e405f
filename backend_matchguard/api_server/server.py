"""
FastAPI server: HTTP surface over the match validator and the commitment store.

Validation endpoints are pure (nothing is stored). Commitment endpoints go
through the single CommitmentStore held on app.state; chain callbacks are
accepted on /chain/confirmations and /chain/failures, and a background
thread polls pending receipts when the submitter supports it.
"""

from __future__ import annotations

import threading
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field, field_validator

from backend_matchguard.commitment import (
    CommitmentRecord,
    CommitmentStore,
    CommitmentStoreConfig,
    SimulatedChainSubmitter,
    create_repository,
)
from backend_matchguard.config import Settings, get_settings
from backend_matchguard.core.exceptions import CommitmentNotFoundError, ContractViolationError
from backend_matchguard.matchguard_logging import get_logger
from backend_matchguard.validation import (
    MatchRecord,
    MatchValidator,
    ValidatorConfig,
    parse_datetime,
    assess_fairness,
    build_player_profile,
    generate_validation_report,
)

logger = get_logger(__name__)

POLLER_SHUTDOWN_JOIN_SEC = 5.0


# -----------------------------------------------------------------------------
# Request models
# -----------------------------------------------------------------------------


class TeamStatsModel(BaseModel):
    goals: int = 0
    assists: int = 0
    possession: float = Field(50.0, description="Percent of time in possession")
    pass_accuracy: float = Field(0.0, description="Percent of completed passes")


class MatchStatsModel(BaseModel):
    home: TeamStatsModel
    away: TeamStatsModel


class MatchModel(BaseModel):
    """One reported match. date accepts ISO-8601 or a Unix timestamp (seconds or milliseconds)."""

    id: str = Field(..., description="Match id, unique per reporting player")
    home_team: str
    away_team: str
    date: datetime
    duration_minutes: float
    player_goals: int = 0
    player_assists: int = 0
    home_score: int | None = None
    away_score: int | None = None
    player_team: str = Field("home", description="Side the reporting player played for: home or away")
    result: str | None = Field(None, description="win, loss or draw; derived from scores if omitted")
    player_id: str | None = None
    top_scorer: str | None = None
    top_scorer_goals: int | None = None
    stats: MatchStatsModel | None = None

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v: Any) -> datetime:
        try:
            return parse_datetime(v)
        except (TypeError, ValueError) as e:
            raise ValueError(f"date must be ISO-8601 or a Unix timestamp: {e}") from e

    def to_record(self) -> MatchRecord:
        return MatchRecord.from_dict(self.model_dump())


class ValidateRequest(BaseModel):
    """POST /validate body: candidate match plus the same player's history."""

    match: MatchModel
    history: list[MatchModel] = Field(default_factory=list)


class ProfileRequest(BaseModel):
    history: list[MatchModel] = Field(default_factory=list)


class FairnessRequest(BaseModel):
    matches: list[MatchModel] = Field(default_factory=list)


class MatchBody(BaseModel):
    """POST /commitments and POST /commitments/{match_id}/verify body."""

    match: MatchModel


class ConfirmationRequest(BaseModel):
    tx_hash: str = Field(..., min_length=1)
    block_number: int = Field(..., ge=0)


class FailureRequest(BaseModel):
    tx_hash: str = Field(..., min_length=1)
    reason: str = Field("", max_length=1024)


# -----------------------------------------------------------------------------
# Dependencies (services live on app.state, one instance per app)
# -----------------------------------------------------------------------------


def get_validator(request: Request) -> MatchValidator:
    return request.app.state.validator


def get_store(request: Request) -> CommitmentStore:
    return request.app.state.store


def _commitment_view(store: CommitmentStore, record: CommitmentRecord) -> dict[str, Any]:
    return {
        "summary": record.summary.to_dict(),
        "transaction": record.transaction.to_dict(),
        "stale": store.is_stale(record.match_id),
    }


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    """Liveness check: API is up."""
    return {"status": "ok"}


@router.post("/validate")
def validate_match(body: ValidateRequest, validator: MatchValidator = Depends(get_validator)) -> dict[str, Any]:
    """Validate one match against the player's history. Data problems come back as issues, never as HTTP errors."""
    result = validator.validate(body.match.to_record(), [m.to_record() for m in body.history])
    response = result.to_dict()
    response["suspicious"] = validator.is_suspicious(result)
    response["report"] = generate_validation_report(result)
    return response


@router.post("/profile")
def player_profile(body: ProfileRequest) -> dict[str, Any]:
    return build_player_profile([m.to_record() for m in body.history]).to_dict()


@router.post("/fairness")
def fairness(body: FairnessRequest, validator: MatchValidator = Depends(get_validator)) -> dict[str, Any]:
    """Rate a player's whole history: Excellent, Good, Fair or Poor."""
    return assess_fairness([m.to_record() for m in body.matches], validator).to_dict()


@router.post("/commitments")
def create_commitment(body: MatchBody, store: CommitmentStore = Depends(get_store)) -> JSONResponse:
    """
    Commit a match result. Returns 201 when this request stored a commitment,
    otherwise 200 with the existing transaction (or the unstored failed one
    when the result could not be hashed).
    """
    transaction, created = store.commit_with_status(body.match.to_record())
    return JSONResponse(status_code=201 if created else 200, content=transaction.to_dict())


@router.get("/commitments")
def list_commitments(stale_only: bool = False, store: CommitmentStore = Depends(get_store)) -> list[dict[str, Any]]:
    views = [_commitment_view(store, r) for r in store.list_commitments()]
    if stale_only:
        views = [v for v in views if v["stale"]]
    return views


@router.get("/commitments/{match_id}")
def get_commitment(match_id: str, store: CommitmentStore = Depends(get_store)) -> dict[str, Any]:
    return _commitment_view(store, store.require_commitment(match_id))


@router.post("/commitments/{match_id}/verify")
def verify_commitment(match_id: str, body: MatchBody, store: CommitmentStore = Depends(get_store)) -> dict[str, Any]:
    """verified is true (unchanged), false (tampered or drifted) or null (nothing committed yet)."""
    return {"match_id": match_id, "verified": store.verify(match_id, body.match.to_record())}


@router.get("/commitments/{match_id}/report", response_class=PlainTextResponse)
def commitment_report(match_id: str, store: CommitmentStore = Depends(get_store)) -> PlainTextResponse:
    return PlainTextResponse(store.summary_report(match_id))


@router.post("/chain/confirmations")
def chain_confirmation(body: ConfirmationRequest, store: CommitmentStore = Depends(get_store)) -> JSONResponse:
    """Out-of-band confirmation. 202 when the tx is not (yet) known; duplicates return the confirmed tx."""
    transaction = store.handle_confirmation(body.tx_hash, body.block_number)
    if transaction is None:
        return JSONResponse(status_code=202, content={"tx_hash": body.tx_hash, "transaction": None})
    return JSONResponse(status_code=200, content={"tx_hash": body.tx_hash, "transaction": transaction.to_dict()})


@router.post("/chain/failures")
def chain_failure(body: FailureRequest, store: CommitmentStore = Depends(get_store)) -> JSONResponse:
    transaction = store.handle_failure(body.tx_hash, body.reason)
    if transaction is None:
        return JSONResponse(status_code=202, content={"tx_hash": body.tx_hash, "transaction": None})
    return JSONResponse(status_code=200, content={"tx_hash": body.tx_hash, "transaction": transaction.to_dict()})


# -----------------------------------------------------------------------------
# Lifespan: receipt poller (never blocks the API)
# -----------------------------------------------------------------------------


def run_receipt_poller(store: CommitmentStore, stop_event: threading.Event, interval_sec: float) -> None:
    """Call store.poll_pending() every interval_sec until stop_event is set."""
    while not stop_event.wait(interval_sec):
        try:
            updated = store.poll_pending()
            if updated:
                logger.info("receipt_poll_applied", count=len(updated))
        except Exception as e:
            logger.exception("receipt_poll_error", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the receipt poller in a background thread; signal stop on shutdown."""
    interval = app.state.settings.poll_interval_sec
    stop_event = threading.Event()
    thread = None
    if interval > 0:
        thread = threading.Thread(
            target=run_receipt_poller,
            args=(app.state.store, stop_event, interval),
            name="receipt-poller",
            daemon=True,
        )
        thread.start()
        logger.info("receipt_poller_started", interval_sec=interval)

    yield

    stop_event.set()
    if thread is not None:
        thread.join(timeout=POLLER_SHUTDOWN_JOIN_SEC)
        if thread.is_alive():
            logger.warning("receipt_poller_shutdown_timeout", timeout_sec=POLLER_SHUTDOWN_JOIN_SEC)
        else:
            logger.info("receipt_poller_stopped")


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    *,
    validator: MatchValidator | None = None,
    store: CommitmentStore | None = None,
) -> FastAPI:
    """
    Build the API with explicitly constructed services.

    Missing services are built from settings: a validator with
    ValidatorConfig.from_settings, and a store over the simulated chain with
    an in-memory or SQLAlchemy repository depending on settings.db_url.
    """
    settings = settings or get_settings()
    if validator is None:
        validator = MatchValidator(config=ValidatorConfig.from_settings(settings))
    if store is None:
        store = CommitmentStore(
            SimulatedChainSubmitter(),
            repository=create_repository(settings.db_url),
            config=CommitmentStoreConfig.from_settings(settings),
        )

    app = FastAPI(
        title="MatchGuard API",
        description="Match validation, fairness rating and tamper-evident result commitments.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.validator = validator
    app.state.store = store
    app.include_router(router)

    @app.exception_handler(ContractViolationError)
    def contract_violation_handler(request: Request, exc: ContractViolationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": exc.message, "code": exc.code})

    @app.exception_handler(CommitmentNotFoundError)
    def not_found_handler(request: Request, exc: CommitmentNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.message, "code": exc.code})

    return app
