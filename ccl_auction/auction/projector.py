"""
Team ledger projector.

Folds the ledger into per-team state. This is the single place where
balance, roster size, capped-category spend, reserve and maximum bid are
computed; every view (controller, observer, API, reports) reads them from
here rather than recomputing them.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import pandas as pd

from .ledger import Ledger
from .models import AuctionConfig, Team

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TeamState:
    """Derived state for one team. Never persisted as truth."""

    name: str
    original_purse: int
    spent: int
    balance: int
    acquired_count: int
    cap_spent: int
    cap_budget: int
    needed_players: int      # Players still required to reach the minimum
    reserve: int             # Balance that must be kept back to reach the minimum
    max_bid: int             # Largest bid the reserve rule allows
    is_full: bool
    is_complete: bool
    logo_ref: Optional[str] = None

    @property
    def cap_left(self) -> int:
        return max(0, self.cap_budget - self.cap_spent)

    @property
    def is_at_risk(self) -> bool:
        """Balance can no longer cover the minimum bids still required."""
        return self.acquired_count > 0 and self.needed_players > 1 and self.balance < self.reserve

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'originalPurse': self.original_purse,
            'spent': self.spent,
            'balance': self.balance,
            'acquiredCount': self.acquired_count,
            'neededPlayers': self.needed_players,
            'capSpent': self.cap_spent,
            'capBudget': self.cap_budget,
            'capLeft': self.cap_left,
            'reserve': self.reserve,
            'maxBid': self.max_bid,
            'isAtRisk': self.is_at_risk,
            'isFull': self.is_full,
            'isComplete': self.is_complete
        }


def reserve_for(acquired_count: int, config: AuctionConfig) -> int:
    """
    Balance a team must keep to still reach its minimum roster.

    A team that needs at most one more player may go all-in.
    """
    needed = max(0, config.min_players_per_team - acquired_count)
    return max(0, needed - 1) * config.bid_increment


def project(
    ledger: Ledger,
    teams: Iterable[Team],
    config: Optional[AuctionConfig] = None
) -> List[TeamState]:
    """
    Fold the ledger into per-team state.

    Args:
        ledger: Auction ledger
        teams: Team base records (output keeps this order)
        config: Auction parameters (defaults if None)

    Returns:
        List of TeamState, one per team

    Pure and idempotent: the same ledger always yields identical output.
    """
    config = config or AuctionConfig()
    teams = list(teams)

    spent = {team.name: 0 for team in teams}
    acquired = {team.name: 0 for team in teams}
    cap_spent = {team.name: 0 for team in teams}

    for entry in ledger:
        if not entry.is_sold:
            continue
        if entry.team_name not in spent:
            logger.warning(f"Ledger entry for unknown team '{entry.team_name}' ignored")
            continue
        amount = entry.amount or 0
        spent[entry.team_name] += amount
        acquired[entry.team_name] += 1
        if config.is_capped(entry.category):
            cap_spent[entry.team_name] += amount

    states = []
    for team in teams:
        balance = team.original_purse - spent[team.name]
        count = acquired[team.name]
        reserve = reserve_for(count, config)
        states.append(TeamState(
            name=team.name,
            original_purse=team.original_purse,
            spent=spent[team.name],
            balance=balance,
            acquired_count=count,
            cap_spent=cap_spent[team.name],
            cap_budget=config.cap_budget(team.original_purse),
            needed_players=max(0, config.min_players_per_team - count),
            reserve=reserve,
            max_bid=max(0, balance - reserve),
            is_full=count >= config.max_players_per_team,
            is_complete=count >= config.min_players_per_team,
            logo_ref=team.logo_ref
        ))

    return states


def find_team_state(states: Sequence[TeamState], team_name: str) -> Optional[TeamState]:
    for state in states:
        if state.name == team_name:
            return state
    return None


def team_summary(states: Sequence[TeamState]) -> pd.DataFrame:
    """
    Get summary statistics for all teams.

    Returns:
        DataFrame with name, acquired, needed, spent, balance, cap_left,
        max_bid sorted by team name
    """
    summary_data = []
    for state in states:
        summary_data.append({
            'name': state.name,
            'acquired': state.acquired_count,
            'needed': state.needed_players,
            'spent': state.spent,
            'balance': state.balance,
            'cap_left': state.cap_left,
            'max_bid': state.max_bid
        })

    columns = ['name', 'acquired', 'needed', 'spent', 'balance', 'cap_left', 'max_bid']
    return pd.DataFrame(summary_data, columns=columns).sort_values('name').reset_index(drop=True)
