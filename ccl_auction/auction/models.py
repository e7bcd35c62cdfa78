"""
Core data structures for the auction: players, teams, ledger entries,
the round cursor and the immutable auction parameters.

Every record converts to and from the camelCase dictionaries used in the
persisted snapshot, so a state written on one device can be rebuilt on
another without any other input.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .. import config


class EntryStatus(str, Enum):
    """Outcome recorded for a player in the ledger."""

    SOLD = 'Sold'
    UNSOLD = 'Unsold'


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('yes', 'true', '1', 'y')
    return bool(value)


@dataclass(frozen=True)
class Player:
    """An auctionable player. Never created or destroyed during an auction."""

    id: str
    name: str
    category: str = ''
    owner: bool = False              # Team owners are auctioned first
    photo: Optional[str] = None      # URL or inline base64 image
    attributes: Dict[str, Any] = field(default_factory=dict, hash=False)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = dict(self.attributes)
        data.update({
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'owner': self.owner,
        })
        if self.photo is not None:
            data['photo'] = self.photo
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Player':
        """Create Player from dictionary (JSON deserialization)."""
        attributes = dict(data)
        player_id = attributes.pop('id')
        name = attributes.pop('name')
        return cls(
            id=str(player_id),
            name=str(name),
            category=attributes.pop('category', None) or '',
            owner=_as_bool(attributes.pop('owner', False)),
            photo=attributes.pop('photo', None) or None,
            attributes=attributes
        )

    def without_photo(self) -> 'Player':
        return Player(
            id=self.id,
            name=self.name,
            category=self.category,
            owner=self.owner,
            photo=None,
            attributes=self.attributes
        )


@dataclass(frozen=True)
class Team:
    """A bidding team. Balance and roster size are derived from the ledger."""

    name: str
    original_purse: int
    logo_ref: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            'name': self.name,
            'originalPurse': self.original_purse,
        }
        if self.logo_ref is not None:
            data['logoRef'] = self.logo_ref
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Team':
        return cls(
            name=str(data['name']),
            original_purse=int(data['originalPurse']),
            logo_ref=data.get('logoRef') or None
        )


@dataclass(frozen=True)
class LedgerEntry:
    """A single sold/unsold decision. The ledger is the source of truth."""

    round: int                 # Round the decision was made in
    attempt: int               # Re-attempt counter for the player within the round
    timestamp: datetime        # When the decision was recorded
    player_id: str
    category: str              # Copied from the player at decision time
    status: EntryStatus
    team_name: str = ''        # Empty if unsold
    amount: Optional[int] = None  # None if unsold

    @property
    def is_sold(self) -> bool:
        return self.status == EntryStatus.SOLD

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'round': self.round,
            'attempt': self.attempt,
            'timestamp': self.timestamp.isoformat(),
            'playerId': self.player_id,
            'category': self.category,
            'teamName': self.team_name,
            'amount': self.amount,
            'status': self.status.value
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'LedgerEntry':
        """
        Create LedgerEntry from dictionary.

        Missing ``teamName``/``amount`` keys are accepted because the remote
        store drops null and empty values.

        Raises:
            ValueError: If a Sold entry has no team or amount
        """
        status = EntryStatus(data['status'])
        amount = data.get('amount')
        entry = cls(
            round=int(data['round']),
            attempt=int(data.get('attempt', 1)),
            timestamp=datetime.fromisoformat(data['timestamp']),
            player_id=str(data['playerId']),
            category=data.get('category') or '',
            status=status,
            team_name=data.get('teamName') or '',
            amount=int(amount) if amount not in (None, '') else None
        )
        if entry.is_sold and (not entry.team_name or entry.amount is None):
            raise ValueError(f"Sold entry for {entry.player_id} has no team or amount")
        return entry


@dataclass(frozen=True)
class AuctionCursor:
    """Position of the auction: round, player index and round sequence."""

    round: int = 1
    player_index: int = 0
    round_sequence: Tuple[str, ...] = ()
    deferred: Tuple[str, ...] = ()   # Capped players pushed from round 1 into round 2
    complete: bool = False

    @property
    def current_player_id(self) -> Optional[str]:
        if 0 <= self.player_index < len(self.round_sequence):
            return self.round_sequence[self.player_index]
        return None

    def to_dict(self) -> dict:
        return {
            'round': self.round,
            'playerIndex': self.player_index,
            'roundSequence': list(self.round_sequence),
            'deferred': list(self.deferred),
            'complete': self.complete
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AuctionCursor':
        return cls(
            round=int(data.get('round', 1)),
            player_index=int(data.get('playerIndex', 0)),
            round_sequence=tuple(str(pid) for pid in as_list(data.get('roundSequence'))),
            deferred=tuple(str(pid) for pid in as_list(data.get('deferred'))),
            complete=_as_bool(data.get('complete', False))
        )


@dataclass(frozen=True)
class AuctionConfig:
    """Immutable auction parameters, fixed when the auction is created."""

    min_players_per_team: int = config.MIN_PLAYERS_PER_TEAM
    max_players_per_team: int = config.MAX_PLAYERS_PER_TEAM
    cap_budget_percent: float = config.CAP_BUDGET_PERCENT
    capped_category: str = config.CAPPED_CATEGORY
    bid_increment: int = config.BID_INCREMENT

    def __post_init__(self):
        if self.min_players_per_team < 0:
            raise ValueError("min_players_per_team must be non-negative")
        if self.max_players_per_team < self.min_players_per_team:
            raise ValueError(
                f"max_players_per_team ({self.max_players_per_team}) is below "
                f"min_players_per_team ({self.min_players_per_team})"
            )
        if not 0 <= self.cap_budget_percent <= 100:
            raise ValueError(f"cap_budget_percent out of range: {self.cap_budget_percent}")
        if self.bid_increment <= 0:
            raise ValueError("bid_increment must be positive")

    def is_capped(self, category: Optional[str]) -> bool:
        return (category or '').strip().lower() == self.capped_category.strip().lower()

    def cap_budget(self, original_purse: int) -> int:
        """Maximum capped-category spend for a purse in round 1."""
        return math.floor(self.cap_budget_percent * original_purse / 100)

    def to_dict(self) -> dict:
        return {
            'minPlayersPerTeam': self.min_players_per_team,
            'maxPlayersPerTeam': self.max_players_per_team,
            'capBudgetPercent': self.cap_budget_percent,
            'cappedCategory': self.capped_category,
            'bidIncrement': self.bid_increment
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AuctionConfig':
        return cls(
            min_players_per_team=int(data.get('minPlayersPerTeam', config.MIN_PLAYERS_PER_TEAM)),
            max_players_per_team=int(data.get('maxPlayersPerTeam', config.MAX_PLAYERS_PER_TEAM)),
            cap_budget_percent=data.get('capBudgetPercent', config.CAP_BUDGET_PERCENT),
            capped_category=data.get('cappedCategory', config.CAPPED_CATEGORY),
            bid_increment=int(data.get('bidIncrement', config.BID_INCREMENT))
        )


def as_list(value: Any) -> list:
    """
    Normalize a JSON array that may have been stored as an object.

    The remote store drops empty arrays entirely and can hand back arrays as
    objects keyed by their index ("0", "1", ...).
    """
    if value is None:
        return []
    if isinstance(value, dict):
        return [value[key] for key in sorted(value, key=lambda k: int(k))]
    return list(value)
