"""
Read-only observer feed for the audience screen.

Subscribes to a replica, rebuilds the state from each snapshot it receives
and hands a view model to a render callback. Team values always come from
the projector. Snapshots that arrive late (revision not newer than the one
already shown) are dropped.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .errors import MalformedSnapshot, StorageError
from .models import LedgerEntry, Player
from .projector import TeamState, team_summary
from .snapshot import restore_state
from .state import AuctionPhase, AuctionState
from .stores import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObserverView:
    """Everything the audience screen shows for one revision."""

    auction_id: str
    revision: int
    round: int
    phase: AuctionPhase
    current_player: Optional[Player]
    teams: List[TeamState] = field(default_factory=list)
    last_entry: Optional[LedgerEntry] = None
    sold_count: int = 0
    unsold_count: int = 0

    @classmethod
    def from_state(cls, state: AuctionState) -> 'ObserverView':
        return cls(
            auction_id=state.auction_id,
            revision=state.revision,
            round=state.round,
            phase=state.phase,
            current_player=state.current_player,
            teams=state.team_states(),
            last_entry=state.ledger.last(),
            sold_count=len(state.ledger.sold_player_ids()),
            unsold_count=len(state.unsold_players())
        )


def render_text(view: ObserverView) -> str:
    """Plain-text board for a terminal."""
    lines = [f"Auction {view.auction_id}  |  Round {view.round}  |  {view.phase.value}"]

    if view.current_player is not None:
        player = view.current_player
        owner = ' (owner)' if player.owner else ''
        lines.append(f"On the block: {player.name} [{player.category}]{owner}")

    if view.last_entry is not None:
        entry = view.last_entry
        if entry.is_sold:
            lines.append(f"Last: {entry.player_id} sold to {entry.team_name} for {entry.amount}")
        else:
            lines.append(f"Last: {entry.player_id} unsold")

    lines.append(f"Sold {view.sold_count}, remaining {view.unsold_count}")
    lines.append('')
    lines.append(team_summary(view.teams).to_string(index=False))
    return '\n'.join(lines)


class ObserverFeed:
    """Follows one auction and renders each newer revision."""

    def __init__(
        self,
        store: SnapshotStore,
        auction_id: str,
        render: Callable[[ObserverView], None],
        local_store: Optional[SnapshotStore] = None
    ):
        """
        Args:
            store: Replica to subscribe to
            auction_id: Auction to follow
            render: Called with a view for every accepted snapshot
            local_store: Optional replica used to show something immediately
                and to fill in attachments stripped from the remote copy
        """
        self.store = store
        self.auction_id = auction_id
        self.render = render
        self.local_store = local_store
        self.last_revision: Optional[int] = None
        self.last_view: Optional[ObserverView] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        """Prime from the local replica, then subscribe."""
        if self.local_store is not None:
            try:
                self.handle_snapshot(self.local_store.get(self.auction_id))
            except StorageError as e:
                logger.warning(f"Could not prime observer from local store: {e}")

        self._unsubscribe = self.store.subscribe(self.auction_id, self.handle_snapshot)
        logger.info(f"Observing auction {self.auction_id} via {self.store.name}")

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
            logger.info(f"Stopped observing auction {self.auction_id}")

    def handle_snapshot(self, data: Optional[dict]) -> bool:
        """
        Render a snapshot if it is newer than the last one shown.

        Returns:
            True if the snapshot was rendered
        """
        if data is None:
            return False

        if self.local_store is not None:
            data = self.local_store.hydrate(self.auction_id, data)

        try:
            state = restore_state(data)
        except MalformedSnapshot as e:
            logger.warning(f"Ignoring malformed snapshot for {self.auction_id}: {e}")
            return False

        with self._lock:
            if self.last_revision is not None and state.revision <= self.last_revision:
                logger.debug(
                    f"Dropping stale revision {state.revision} "
                    f"(showing {self.last_revision})"
                )
                return False
            self.last_revision = state.revision
            view = ObserverView.from_state(state)
            self.last_view = view

        self.render(view)
        return True
