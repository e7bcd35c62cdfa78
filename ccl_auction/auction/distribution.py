"""
End-of-auction distribution of players nobody bought.

Once every team has reached the minimum roster size, the remaining unsold
players can be assigned directly to teams that still have room. The
operator stages one assignment per player, may withdraw any of them, and
then confirms; confirmation writes every staged assignment to the ledger
as a single batch and completes the auction.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import List, Optional, Tuple

from .errors import AuctionStateError, DistributionError
from .models import EntryStatus, LedgerEntry, Player
from .projector import TeamState
from .state import AuctionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StagedAssignment:
    player_id: str
    team_name: str
    amount: int

    def to_dict(self) -> dict:
        return {
            'playerId': self.player_id,
            'teamName': self.team_name,
            'amount': self.amount
        }


def all_teams_met_minimum(state: AuctionState) -> bool:
    return all(team.is_complete for team in state.team_states())


def is_distribution_available(state: AuctionState) -> bool:
    """Every team has its minimum and at least one player is globally unsold."""
    if state.cursor.complete:
        return False
    return all_teams_met_minimum(state) and bool(state.unsold_players())


@dataclass(frozen=True)
class DistributionPlan:
    """Staged, not yet committed, distribution assignments."""

    assignments: Tuple[StagedAssignment, ...] = ()

    def __len__(self) -> int:
        return len(self.assignments)

    def staged_for_team(self, team_name: str) -> List[StagedAssignment]:
        return [a for a in self.assignments if a.team_name == team_name]

    def is_staged(self, player_id: str) -> bool:
        return any(a.player_id == player_id for a in self.assignments)

    def eligible_teams(self, state: AuctionState) -> List[TeamState]:
        """
        Teams that have met the minimum and still have a free slot,
        counting assignments already staged for them.
        """
        config = state.config
        eligible = []
        for team in state.team_states():
            count = team.acquired_count + len(self.staged_for_team(team.name))
            if config.min_players_per_team <= count < config.max_players_per_team:
                eligible.append(team)
        return eligible

    def remaining_players(self, state: AuctionState) -> List[Player]:
        """Globally unsold players without a staged assignment."""
        return [p for p in state.unsold_players() if not self.is_staged(p.id)]

    def next_player(self, state: AuctionState) -> Optional[Player]:
        remaining = self.remaining_players(state)
        return remaining[0] if remaining else None

    def stage(
        self,
        state: AuctionState,
        player_id: str,
        team_name: str,
        amount: int = 0
    ) -> 'DistributionPlan':
        """
        Stage an assignment.

        Args:
            state: Current auction state
            player_id: Globally unsold player to assign
            team_name: Eligible receiving team
            amount: Price charged, zero allowed

        Returns:
            New plan with the assignment added

        Raises:
            DistributionError: If distribution is unavailable or the
                assignment is invalid
        """
        if not is_distribution_available(state):
            raise DistributionError(
                "Distribution requires every team to reach the minimum "
                "and at least one unsold player"
            )
        if state.ledger.is_frozen(player_id):
            raise DistributionError(f"Player {player_id} is already sold")
        if player_id not in state.players_by_id:
            raise DistributionError(f"Unknown player: {player_id}")
        if self.is_staged(player_id):
            raise DistributionError(f"Player {player_id} is already staged")
        if amount < 0:
            raise DistributionError("Distribution amount cannot be negative")

        team = next((t for t in self.eligible_teams(state) if t.name == team_name), None)
        if team is None:
            raise DistributionError(f"Team {team_name} is not eligible for distribution")

        committed = sum(a.amount for a in self.staged_for_team(team_name))
        if amount > team.balance - committed:
            raise DistributionError(
                f"{team_name} cannot afford {amount} "
                f"(balance {team.balance - committed} after staged assignments)"
            )

        logger.info(f"Staged distribution: {player_id} -> {team_name} ({amount})")
        return replace(
            self,
            assignments=self.assignments + (StagedAssignment(player_id, team_name, amount),)
        )

    def withdraw(self, index: int) -> 'DistributionPlan':
        """
        Remove a staged assignment. No ledger effect.

        Raises:
            DistributionError: If the index is out of range
        """
        if not 0 <= index < len(self.assignments):
            raise DistributionError(f"No staged assignment at position {index}")
        removed = self.assignments[index]
        logger.info(f"Withdrew staged distribution: {removed.player_id} -> {removed.team_name}")
        return replace(
            self,
            assignments=self.assignments[:index] + self.assignments[index + 1:]
        )

    def to_list(self) -> List[dict]:
        return [a.to_dict() for a in self.assignments]


def confirm_distribution(
    state: AuctionState,
    plan: DistributionPlan,
    timestamp: Optional[datetime] = None
) -> AuctionState:
    """
    Commit every staged assignment as Sold entries and complete the auction.

    Entries are written in staging order with the current round number.

    Raises:
        DistributionError: If nothing is staged
        AuctionStateError: If the auction is already complete
    """
    if state.cursor.complete:
        raise AuctionStateError("Auction is complete")
    if not plan.assignments:
        raise DistributionError("No assignments staged")

    timestamp = timestamp or datetime.now()
    round_number = state.cursor.round
    players = state.players_by_id

    entries = []
    for assignment in plan.assignments:
        player = players[assignment.player_id]
        attempt = state.ledger.next_attempt(player.id, round_number)
        entries.append(LedgerEntry(
            round=round_number,
            attempt=attempt,
            timestamp=timestamp,
            player_id=player.id,
            category=player.category,
            status=EntryStatus.SOLD,
            team_name=assignment.team_name,
            amount=assignment.amount
        ))

    try:
        ledger = state.ledger.extend(entries)
    except ValueError as e:
        raise DistributionError(str(e)) from e

    logger.info(f"Distribution confirmed: {len(entries)} players assigned. Auction complete.")
    return state.with_changes(
        ledger=ledger,
        cursor=replace(state.cursor, complete=True)
    )
