"""
Operator session for one live auction.

AuctionSession holds the current AuctionState, the transient distribution
plan and a SnapshotSynchronizer. Every operation applies one reducer,
bumps the revision and pushes the new snapshot before returning.
"""

import logging
import random
import threading
from pathlib import Path
from typing import List, Optional, Sequence

from .. import config
from .distribution import (
    DistributionPlan,
    StagedAssignment,
    confirm_distribution,
    is_distribution_available
)
from .ledger import Ledger
from .models import AuctionConfig, LedgerEntry, Player, Team
from .projector import TeamState
from .round_controller import (
    advance_round,
    build_auction_order,
    commit_sale,
    commit_unsold,
    next_player,
    start_auction,
    undo
)
from .snapshot import build_snapshot
from .state import AuctionPhase, AuctionState
from .synchronizer import SnapshotSynchronizer, SyncResult

logger = logging.getLogger(__name__)


def generate_auction_id(rng: Optional[random.Random] = None) -> str:
    """Short, human-readable auction id."""
    rng = rng or random.SystemRandom()
    return ''.join(
        rng.choice(config.AUCTION_ID_ALPHABET) for _ in range(config.AUCTION_ID_LENGTH)
    )


class AuctionSession:
    """Single controller for one auction id."""

    def __init__(self, state: AuctionState, synchronizer: SnapshotSynchronizer):
        self.state = state
        self.synchronizer = synchronizer
        self.plan = DistributionPlan()
        self.last_sync: Optional[SyncResult] = None
        self._lock = threading.RLock()

    @classmethod
    def create(
        cls,
        players: Sequence[Player],
        teams: Sequence[Team],
        synchronizer: SnapshotSynchronizer,
        auction_config: Optional[AuctionConfig] = None,
        auction_id: Optional[str] = None,
        shuffle: bool = True,
        seed: Optional[int] = None
    ) -> 'AuctionSession':
        """
        Create a new auction and push its first snapshot.

        Args:
            players: Players in load order
            teams: Participating teams
            synchronizer: Replica fan-out
            auction_config: Auction parameters (defaults from config)
            auction_id: Explicit id (generated if None)
            shuffle: Order players owners-first with shuffled groups
            seed: Seed for a reproducible order

        Returns:
            Session positioned on the first player
        """
        auction_config = auction_config or AuctionConfig()
        if shuffle:
            players = build_auction_order(players, auction_config, seed)

        state = start_auction(
            auction_id or generate_auction_id(),
            players,
            teams,
            auction_config
        )
        session = cls(state, synchronizer)
        session._push()
        return session

    @classmethod
    def resume(cls, auction_id: str, synchronizer: SnapshotSynchronizer) -> 'AuctionSession':
        """
        Rebuild a session from the highest stored revision across replicas.

        Team state is re-projected from the ledger and the restored snapshot
        is pushed back to every replica before any bid is accepted, so a
        replica that was behind catches up. The revision is not bumped and
        a replica is never overwritten with an older revision than any
        readable replica holds.

        Raises:
            StorageReadEmpty: If no replica holds the auction
            MalformedSnapshot: If every stored snapshot is malformed
        """
        state = synchronizer.fetch_latest(auction_id)
        session = cls(state, synchronizer)
        session._push()

        logger.info(
            f"Resumed auction {auction_id} at round {state.round}, "
            f"revision {state.revision}, {len(state.ledger)} ledger entries"
        )
        return session

    # ===== Read access =====

    @property
    def auction_id(self) -> str:
        return self.state.auction_id

    @property
    def ledger(self) -> Ledger:
        return self.state.ledger

    @property
    def phase(self) -> AuctionPhase:
        return self.state.phase

    @property
    def current_player(self) -> Optional[Player]:
        return self.state.current_player

    def team_states(self) -> List[TeamState]:
        return self.state.team_states()

    def is_distribution_available(self) -> bool:
        return is_distribution_available(self.state)

    def snapshot(self) -> dict:
        return build_snapshot(self.state)

    # ===== Mutations =====

    def _push(self) -> None:
        self.last_sync = self.synchronizer.push(self.state)

    def _apply(self, new_state: AuctionState) -> None:
        self.state = new_state.with_changes(revision=self.state.revision + 1)
        self._push()

    def sell(self, team_name: str, amount: int) -> LedgerEntry:
        """
        Sell the player on the block.

        Raises:
            ValidationRejected: If the bid breaks a bidding rule
            AuctionStateError: If nothing can be sold right now
        """
        with self._lock:
            self._apply(commit_sale(self.state, team_name, amount))
            return self.state.ledger.last()

    def unsold(self) -> LedgerEntry:
        with self._lock:
            self._apply(commit_unsold(self.state))
            return self.state.ledger.last()

    def next_player(self) -> Optional[Player]:
        with self._lock:
            self._apply(next_player(self.state))
            return self.state.current_player

    def undo(self) -> LedgerEntry:
        """
        Remove the most recent ledger entry.

        Any staged distribution is discarded since it may no longer be valid.
        """
        with self._lock:
            new_state, entry = undo(self.state)
            self.plan = DistributionPlan()
            self._apply(new_state)
            return entry

    def next_round(self) -> AuctionState:
        with self._lock:
            self._apply(advance_round(self.state))
            return self.state

    def stage(self, player_id: str, team_name: str, amount: int = 0) -> StagedAssignment:
        """
        Stage a distribution assignment. Staging is not persisted.

        Raises:
            DistributionError: If the assignment is not allowed
        """
        with self._lock:
            self.plan = self.plan.stage(self.state, player_id, team_name, amount)
            return self.plan.assignments[-1]

    def withdraw(self, index: int) -> None:
        with self._lock:
            self.plan = self.plan.withdraw(index)

    def confirm(self) -> int:
        """
        Commit the staged distribution and complete the auction.

        Returns:
            Number of players assigned
        """
        with self._lock:
            count = len(self.plan)
            self._apply(confirm_distribution(self.state, self.plan))
            self.plan = DistributionPlan()
            return count

    # ===== Reports =====

    def export_ledger(self, output_path: Optional[Path] = None) -> Path:
        """Write the ledger CSV and return its path."""
        output_path = Path(output_path or Path(config.EXPORT_DIR) / f"ledger_{self.auction_id}.csv")
        self.state.ledger.export_to_csv(output_path)
        return output_path
