"""
Live auction subsystem.

The ledger is the single source of truth; team balances and roster counts
are projected from it. Each operator action produces a new AuctionState,
which is pushed as a full snapshot to every replica so any device can
resume the auction from the last write.
"""

from .errors import (
    AuctionError,
    AuctionStateError,
    DistributionError,
    MalformedSnapshot,
    StorageReadEmpty,
    StorageWriteFailed,
    ValidationRejected,
)
from .models import AuctionConfig, Player, Team, LedgerEntry, EntryStatus
from .ledger import Ledger
from .projector import TeamState, project
from .state import AuctionState, AuctionPhase
from .session import AuctionSession
from .synchronizer import SnapshotSynchronizer
from .stores import LocalSnapshotStore, MemorySnapshotStore, RemoteSnapshotStore
from .observer import ObserverFeed

__all__ = [
    'AuctionError',
    'AuctionStateError',
    'DistributionError',
    'MalformedSnapshot',
    'StorageReadEmpty',
    'StorageWriteFailed',
    'ValidationRejected',
    'AuctionConfig',
    'Player',
    'Team',
    'LedgerEntry',
    'EntryStatus',
    'Ledger',
    'TeamState',
    'project',
    'AuctionState',
    'AuctionPhase',
    'AuctionSession',
    'SnapshotSynchronizer',
    'LocalSnapshotStore',
    'MemorySnapshotStore',
    'RemoteSnapshotStore',
    'ObserverFeed',
]
