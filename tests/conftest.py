"""Shared fixtures for the auction tests."""

import threading
from datetime import datetime, timedelta
from typing import List

import pytest

from ccl_auction.auction.models import AuctionConfig, Player, Team
from ccl_auction.auction.round_controller import start_auction
from ccl_auction.auction.stores import MemorySnapshotStore
from ccl_auction.auction.synchronizer import SnapshotSynchronizer

INLINE_PHOTO = 'data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAAB'


def make_players(ids: List[str], category: str = 'red') -> List[Player]:
    return [Player(id=pid, name=f"Player {pid}", category=category) for pid in ids]


def make_teams(names: List[str], purse: int = 10000) -> List[Team]:
    return [Team(name=name, original_purse=purse) for name in names]


class GatedStore(MemorySnapshotStore):
    """Background replica whose writes block until ``gate`` is set."""

    def __init__(self, name: str = 'remote'):
        super().__init__(name=name, strip_finalized_attachments=True, background=True)
        self.gate = threading.Event()
        self.started = threading.Event()

    def put(self, auction_id, snapshot):
        self.started.set()
        self.gate.wait(timeout=5)
        super().put(auction_id, snapshot)


class Clock:
    """Deterministic timestamps for ledger entries."""

    def __init__(self):
        self.current = datetime(2026, 1, 23, 18, 0, 0)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=30)
        return self.current


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def default_config():
    return AuctionConfig()


@pytest.fixture
def small_config():
    """One-player minimum so distribution scenarios stay small."""
    return AuctionConfig(
        min_players_per_team=1,
        max_players_per_team=3,
        cap_budget_percent=65,
        capped_category='blue',
        bid_increment=100
    )


@pytest.fixture
def three_player_state():
    return start_auction(
        'TEST01',
        make_players(['p1', 'p2', 'p3']),
        make_teams(['Alpha', 'Bravo'])
    )


@pytest.fixture
def remote_store():
    return MemorySnapshotStore(name='remote', strip_finalized_attachments=True)


@pytest.fixture
def local_store():
    return MemorySnapshotStore(name='local')


@pytest.fixture
def synchronizer(remote_store, local_store):
    return SnapshotSynchronizer([remote_store, local_store])
