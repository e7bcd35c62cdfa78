"""
FastAPI server for operating a live auction.

Provides HTTP endpoints to start or resume an auction, record decisions,
run the end-of-auction distribution and export the ledger.
"""

import logging
import threading
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .api_serializers import (
    AuctionStateResponse,
    BidRequest,
    ResumeAuctionRequest,
    StageRequest,
    StartAuctionRequest,
    serialize_session
)
from .errors import (
    AuctionStateError,
    DistributionError,
    MalformedSnapshot,
    StorageReadEmpty,
    ValidationRejected
)
from .models import AuctionConfig
from .session import AuctionSession
from .synchronizer import SnapshotSynchronizer, build_synchronizer
from ..loaders import players_from_records, teams_from_records

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="CCL Auction API",
    description="Operate a live team auction and follow its state",
    version="1.0.0"
)

# CORS middleware for the audience screen
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class NoActiveAuctionError(Exception):
    """Raised when an operation needs an auction and none is loaded."""


class AuctionHolder:
    """The one auction this server controls."""

    def __init__(self):
        self.session: Optional[AuctionSession] = None
        self.synchronizer: Optional[SnapshotSynchronizer] = None
        self._lock = threading.Lock()

    def configure(self, synchronizer: SnapshotSynchronizer) -> None:
        with self._lock:
            self.synchronizer = synchronizer
            self.session = None

    def get_synchronizer(self) -> SnapshotSynchronizer:
        with self._lock:
            if self.synchronizer is None:
                self.synchronizer = build_synchronizer()
            return self.synchronizer

    def set_session(self, session: AuctionSession) -> None:
        with self._lock:
            if self.session is not None and self.session.auction_id != session.auction_id:
                logger.info(f"Replacing auction {self.session.auction_id} with {session.auction_id}")
            self.session = session

    def require_session(self) -> AuctionSession:
        with self._lock:
            if self.session is None:
                raise NoActiveAuctionError("No active auction. Start or resume one first.")
            return self.session


# Global auction holder instance
auction_holder = AuctionHolder()


def configure(synchronizer: SnapshotSynchronizer) -> None:
    """Use the given replicas for every auction started or resumed."""
    auction_holder.configure(synchronizer)


# ===== Error Handlers =====

@app.exception_handler(NoActiveAuctionError)
def handle_no_active_auction(request: Request, exc: NoActiveAuctionError):
    return JSONResponse(status_code=404, content={'detail': str(exc)})


@app.exception_handler(ValidationRejected)
def handle_rejected_bid(request: Request, exc: ValidationRejected):
    logger.info(f"Bid rejected: {exc}")
    reason = getattr(exc.reason, 'value', exc.reason)
    return JSONResponse(
        status_code=422,
        content={
            'detail': str(exc),
            'reason': reason,
            'suggested_amount': exc.suggested_amount
        }
    )


@app.exception_handler(AuctionStateError)
def handle_state_error(request: Request, exc: AuctionStateError):
    logger.warning(f"Illegal transition: {exc}")
    return JSONResponse(status_code=409, content={'detail': str(exc)})


@app.exception_handler(DistributionError)
def handle_distribution_error(request: Request, exc: DistributionError):
    logger.warning(f"Distribution rejected: {exc}")
    return JSONResponse(status_code=409, content={'detail': str(exc)})


@app.exception_handler(StorageReadEmpty)
def handle_missing_snapshot(request: Request, exc: StorageReadEmpty):
    return JSONResponse(status_code=404, content={'detail': str(exc)})


@app.exception_handler(MalformedSnapshot)
def handle_malformed_snapshot(request: Request, exc: MalformedSnapshot):
    logger.error(f"Cannot resume: {exc}")
    return JSONResponse(status_code=502, content={'detail': str(exc)})


# ===== Auction Lifecycle =====

@app.post("/auction/start", response_model=AuctionStateResponse)
def start_auction(request: StartAuctionRequest):
    """
    Create a new auction from player and team records.

    Raises:
        422 Unprocessable Entity: If the records or parameters are invalid
    """
    try:
        players = players_from_records(request.players)
        teams = teams_from_records(request.teams)
        auction_config = AuctionConfig(
            min_players_per_team=request.min_players_per_team,
            max_players_per_team=request.max_players_per_team,
            cap_budget_percent=request.cap_budget_percent,
            capped_category=request.capped_category,
            bid_increment=request.bid_increment
        )
    except ValueError as e:
        logger.warning(f"Cannot start auction: {e}")
        raise HTTPException(status_code=422, detail=str(e))

    session = AuctionSession.create(
        players,
        teams,
        auction_holder.get_synchronizer(),
        auction_config=auction_config,
        auction_id=request.auction_id,
        shuffle=request.shuffle,
        seed=request.seed
    )
    auction_holder.set_session(session)

    logger.info(f"Started auction {session.auction_id} via API")
    return serialize_session(session)


@app.post("/auction/resume", response_model=AuctionStateResponse)
def resume_auction(request: ResumeAuctionRequest):
    """
    Rebuild an auction from storage.

    Raises:
        404 Not Found: If no replica holds the auction
        502 Bad Gateway: If every stored snapshot is malformed
    """
    session = AuctionSession.resume(request.auction_id, auction_holder.get_synchronizer())
    auction_holder.set_session(session)
    return serialize_session(session)


@app.get("/auction/state", response_model=AuctionStateResponse)
def get_state():
    return serialize_session(auction_holder.require_session())


@app.get("/auction/snapshot")
def get_snapshot():
    """Full snapshot document as written to the replicas."""
    return auction_holder.require_session().snapshot()


# ===== Bidding =====

@app.post("/auction/bid", response_model=AuctionStateResponse)
def sell_player(request: BidRequest):
    """
    Sell the player on the block.

    Raises:
        422 Unprocessable Entity: If the bid breaks a bidding rule
        409 Conflict: If there is no biddable player or the team is unknown
    """
    session = auction_holder.require_session()
    session.sell(request.team_name, request.amount)
    return serialize_session(session)


@app.post("/auction/unsold", response_model=AuctionStateResponse)
def mark_unsold():
    session = auction_holder.require_session()
    session.unsold()
    return serialize_session(session)


@app.post("/auction/next", response_model=AuctionStateResponse)
def next_player():
    session = auction_holder.require_session()
    session.next_player()
    return serialize_session(session)


@app.post("/auction/undo", response_model=AuctionStateResponse)
def undo_last():
    session = auction_holder.require_session()
    session.undo()
    return serialize_session(session)


@app.post("/auction/next-round", response_model=AuctionStateResponse)
def next_round():
    """
    Start the next round with the unsold remainder.

    Raises:
        409 Conflict: If players in the current round are still undecided
    """
    session = auction_holder.require_session()
    session.next_round()
    return serialize_session(session)


# ===== Distribution =====

@app.post("/auction/distribution/stage", response_model=AuctionStateResponse)
def stage_assignment(request: StageRequest):
    session = auction_holder.require_session()
    session.stage(request.player_id, request.team_name, request.amount)
    return serialize_session(session)


@app.delete("/auction/distribution/{index}", response_model=AuctionStateResponse)
def withdraw_assignment(index: int):
    """Withdraw the staged assignment at ``index`` (0-based)."""
    session = auction_holder.require_session()
    session.withdraw(index)
    return serialize_session(session)


@app.post("/auction/distribution/confirm", response_model=AuctionStateResponse)
def confirm_distribution():
    session = auction_holder.require_session()
    session.confirm()
    return serialize_session(session)


# ===== Reports =====

@app.get("/auction/ledger.csv")
def export_ledger():
    """Ledger as CSV with a UTF-8 BOM for spreadsheet compatibility."""
    session = auction_holder.require_session()
    csv_text = session.ledger.to_report().to_csv(index=False)
    return Response(
        content='\ufeff' + csv_text,
        media_type='text/csv; charset=utf-8',
        headers={'Content-Disposition': f'attachment; filename="ledger_{session.auction_id}.csv"'}
    )


@app.on_event("shutdown")
def shutdown_event():
    """Wait for queued remote writes before the server exits."""
    synchronizer = auction_holder.synchronizer
    if synchronizer is not None and not synchronizer.close():
        logger.warning("Server stopped with remote writes still queued; local snapshots are current")


@app.get("/health")
def health_check():
    """Health check endpoint."""
    session = auction_holder.session
    return {
        "status": "healthy",
        "auction_id": session.auction_id if session else None,
        "sync_status": auction_holder.synchronizer.status.value if auction_holder.synchronizer else None
    }
