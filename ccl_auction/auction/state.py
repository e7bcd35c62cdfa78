"""
The complete, immutable state of one auction.

An AuctionState is only ever replaced, never mutated: the round controller
and distribution allocator take a state and return the next one.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .ledger import Ledger
from .models import AuctionConfig, AuctionCursor, Player, Team
from .projector import TeamState, find_team_state, project


class AuctionPhase(str, Enum):
    BIDDING = 'Bidding'
    DECIDED = 'Decided'
    ROUND_COMPLETE = 'RoundComplete'
    COMPLETE = 'AuctionComplete'


@dataclass(frozen=True)
class AuctionState:
    """Ledger, cursor and the immutable records they refer to."""

    auction_id: str
    config: AuctionConfig
    players: Tuple[Player, ...]
    teams: Tuple[Team, ...]
    ledger: Ledger = field(default_factory=Ledger)
    cursor: AuctionCursor = field(default_factory=AuctionCursor)
    revision: int = 0

    def __post_init__(self):
        player_ids = [p.id for p in self.players]
        if len(set(player_ids)) != len(player_ids):
            raise ValueError("Player ids must be unique")
        team_names = [t.name for t in self.teams]
        if len(set(team_names)) != len(team_names):
            raise ValueError("Team names must be unique")

    @property
    def players_by_id(self) -> Dict[str, Player]:
        return {player.id: player for player in self.players}

    def player(self, player_id: str) -> Player:
        """
        Raises:
            KeyError: If the player id is unknown
        """
        for player in self.players:
            if player.id == player_id:
                return player
        raise KeyError(f"Unknown player: {player_id}")

    def has_team(self, team_name: str) -> bool:
        return any(team.name == team_name for team in self.teams)

    @property
    def round(self) -> int:
        return self.cursor.round

    @property
    def current_player(self) -> Optional[Player]:
        player_id = self.cursor.current_player_id
        return self.player(player_id) if player_id is not None else None

    def team_states(self) -> List[TeamState]:
        return project(self.ledger, self.teams, self.config)

    def team_state(self, team_name: str) -> TeamState:
        """
        Raises:
            KeyError: If the team is unknown
        """
        state = find_team_state(self.team_states(), team_name)
        if state is None:
            raise KeyError(f"Unknown team: {team_name}")
        return state

    def is_frozen(self, player_id: str) -> bool:
        return self.ledger.is_frozen(player_id)

    def unsold_players(self) -> List[Player]:
        """Players with no Sold entry anywhere, in load order."""
        sold = self.ledger.sold_player_ids()
        return [player for player in self.players if player.id not in sold]

    @property
    def phase(self) -> AuctionPhase:
        if self.cursor.complete:
            return AuctionPhase.COMPLETE
        player_id = self.cursor.current_player_id
        if player_id is None:
            return AuctionPhase.ROUND_COMPLETE
        if self.ledger.has_decision(player_id, self.cursor.round):
            return AuctionPhase.DECIDED
        return AuctionPhase.BIDDING

    def with_changes(self, **changes) -> 'AuctionState':
        return replace(self, **changes)
