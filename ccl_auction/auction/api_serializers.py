"""
Request and response models for the auction HTTP API.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .. import config
from .session import AuctionSession


# ========== Requests ==========

class StartAuctionRequest(BaseModel):
    """Request model for creating an auction."""
    players: List[Dict[str, Any]] = Field(..., description="Player records (id, name, category, owner, ...)")
    teams: List[Dict[str, Any]] = Field(..., description="Team records (name, purse)")
    auction_id: Optional[str] = Field(None, description="Explicit auction id (generated if omitted)")
    shuffle: bool = Field(True, description="Order players owners-first with shuffled groups")
    seed: Optional[int] = Field(None, description="Seed for a reproducible order")
    min_players_per_team: int = Field(config.MIN_PLAYERS_PER_TEAM, ge=0)
    max_players_per_team: int = Field(config.MAX_PLAYERS_PER_TEAM, ge=1)
    cap_budget_percent: float = Field(config.CAP_BUDGET_PERCENT, ge=0, le=100)
    capped_category: str = Field(config.CAPPED_CATEGORY)
    bid_increment: int = Field(config.BID_INCREMENT, gt=0)


class ResumeAuctionRequest(BaseModel):
    auction_id: str = Field(..., description="Auction to rebuild from storage")


class BidRequest(BaseModel):
    """Sell the player on the block."""
    team_name: str
    amount: int = Field(..., description="Winning bid in units")


class StageRequest(BaseModel):
    """Stage one distribution assignment."""
    player_id: str
    team_name: str
    amount: int = Field(0, ge=0, description="Price charged, zero allowed")


# ========== Responses ==========

class PlayerResponse(BaseModel):
    id: str
    name: str
    category: str
    owner: bool
    photo: Optional[str] = None


class TeamStateResponse(BaseModel):
    """Projected state for one team."""
    name: str
    original_purse: int
    spent: int
    balance: int
    acquired_count: int
    needed_players: int
    cap_budget: int
    cap_left: int
    reserve: int
    max_bid: int
    is_at_risk: bool
    is_full: bool
    is_complete: bool


class LedgerEntryResponse(BaseModel):
    round: int
    attempt: int
    timestamp: str = Field(description="ISO-8601 timestamp")
    player_id: str
    category: str
    team_name: str
    amount: Optional[int] = None
    status: str


class StagedAssignmentResponse(BaseModel):
    player_id: str
    team_name: str
    amount: int


class AuctionStateResponse(BaseModel):
    """Response for every auction operation."""
    auction_id: str
    revision: int
    round: int
    phase: str
    current_player: Optional[PlayerResponse] = None
    teams: List[TeamStateResponse]
    ledger: List[LedgerEntryResponse]
    distribution_available: bool
    staged: List[StagedAssignmentResponse] = Field(default_factory=list)
    sync_failures: Dict[str, str] = Field(default_factory=dict, description="Replica -> error for its most recent write")


# ========== Serializer Functions ==========

def serialize_session(session: AuctionSession) -> AuctionStateResponse:
    """
    Transform a session's current state to the response format.

    Team values come from the projector; nothing is recomputed here.
    """
    state = session.state
    player = state.current_player

    return AuctionStateResponse(
        auction_id=state.auction_id,
        revision=state.revision,
        round=state.round,
        phase=state.phase.value,
        current_player=PlayerResponse(
            id=player.id,
            name=player.name,
            category=player.category,
            owner=player.owner,
            photo=player.photo
        ) if player is not None else None,
        teams=[
            TeamStateResponse(
                name=team.name,
                original_purse=team.original_purse,
                spent=team.spent,
                balance=team.balance,
                acquired_count=team.acquired_count,
                needed_players=team.needed_players,
                cap_budget=team.cap_budget,
                cap_left=team.cap_left,
                reserve=team.reserve,
                max_bid=team.max_bid,
                is_at_risk=team.is_at_risk,
                is_full=team.is_full,
                is_complete=team.is_complete
            )
            for team in state.team_states()
        ],
        ledger=[
            LedgerEntryResponse(
                round=entry.round,
                attempt=entry.attempt,
                timestamp=entry.timestamp.isoformat(),
                player_id=entry.player_id,
                category=entry.category,
                team_name=entry.team_name,
                amount=entry.amount,
                status=entry.status.value
            )
            for entry in state.ledger
        ],
        distribution_available=session.is_distribution_available(),
        staged=[
            StagedAssignmentResponse(
                player_id=a.player_id,
                team_name=a.team_name,
                amount=a.amount
            )
            for a in session.plan.assignments
        ],
        sync_failures=session.synchronizer.failures()
    )
