import pytest

from ccl_auction import config
from ccl_auction.auction.errors import AuctionStateError, StorageReadEmpty, ValidationRejected
from ccl_auction.auction.models import AuctionConfig
from ccl_auction.auction.session import AuctionSession, generate_auction_id
from ccl_auction.auction.state import AuctionPhase
from ccl_auction.auction.synchronizer import SnapshotSynchronizer

from conftest import GatedStore, make_players, make_teams


@pytest.fixture
def session(synchronizer):
    return AuctionSession.create(
        make_players(['p1', 'p2', 'p3']),
        make_teams(['Alpha', 'Bravo']),
        synchronizer,
        auction_id='SESS01',
        shuffle=False
    )


def test_generate_auction_id():
    auction_id = generate_auction_id()

    assert len(auction_id) == config.AUCTION_ID_LENGTH
    assert set(auction_id) <= set(config.AUCTION_ID_ALPHABET)


def test_create_pushes_initial_snapshot(session, remote_store):
    assert session.state.revision == 0
    assert remote_store.documents['SESS01']['revision'] == 0
    assert session.current_player.id == 'p1'


def test_create_with_seed_is_reproducible(synchronizer):
    players = make_players(['p1', 'p2', 'p3', 'p4', 'p5'])
    first = AuctionSession.create(players, make_teams(['Alpha']), synchronizer, seed=11)
    second = AuctionSession.create(players, make_teams(['Alpha']), synchronizer, seed=11)

    assert first.state.cursor.round_sequence == second.state.cursor.round_sequence


def test_each_operation_bumps_revision_and_pushes(session, remote_store):
    session.sell('Alpha', 500)
    session.next_player()
    session.unsold()

    assert session.state.revision == 3
    assert remote_store.documents['SESS01']['revision'] == 3
    assert len(remote_store.documents['SESS01']['ledger']) == 2


def test_rejected_bid_changes_nothing(session, remote_store):
    writes = remote_store.write_count

    with pytest.raises(ValidationRejected):
        session.sell('Alpha', 550)

    assert session.state.revision == 0
    assert remote_store.write_count == writes


def test_undo_restores_balance(session):
    session.sell('Bravo', 900)
    entry = session.undo()

    assert entry.team_name == 'Bravo'
    assert session.state.team_state('Bravo').balance == 10000
    assert session.state.revision == 2


def test_full_auction_with_distribution(synchronizer):
    session = AuctionSession.create(
        make_players(['a1', 'a2', 'u1', 'u2']),
        make_teams(['Alpha', 'Bravo'], purse=1000),
        synchronizer,
        auction_config=AuctionConfig(min_players_per_team=1, max_players_per_team=3),
        auction_id='DIST02',
        shuffle=False
    )
    session.sell('Alpha', 100)
    session.next_player()
    session.sell('Bravo', 100)
    session.next_player()
    session.unsold()
    session.next_player()
    session.unsold()

    assert session.is_distribution_available()
    session.stage('u1', 'Alpha', 0)
    session.stage('u2', 'Bravo', 0)
    assert session.confirm() == 2

    assert session.phase == AuctionPhase.COMPLETE
    assert len(session.plan) == 0
    assert len(session.ledger) == 6


def test_next_round_requires_decisions(session):
    with pytest.raises(AuctionStateError):
        session.next_round()


def test_resume_rebuilds_identical_state(session, remote_store, local_store):
    session.sell('Alpha', 1200)
    session.next_player()
    session.unsold()
    writes = remote_store.write_count

    resumed = AuctionSession.resume('SESS01', SnapshotSynchronizer([remote_store, local_store]))

    assert resumed.state == session.state
    assert resumed.state.team_states() == session.state.team_states()
    assert remote_store.write_count == writes + 1
    assert remote_store.documents['SESS01']['revision'] == session.state.revision


def test_resume_from_local_when_remote_lost(session, remote_store, local_store):
    session.sell('Alpha', 1200)
    remote_store.documents.clear()

    resumed = AuctionSession.resume('SESS01', SnapshotSynchronizer([remote_store, local_store]))

    assert resumed.state == session.state
    assert remote_store.documents['SESS01']['revision'] == session.state.revision


def test_resume_unknown_auction(synchronizer):
    with pytest.raises(StorageReadEmpty):
        AuctionSession.resume('NOPE00', synchronizer)


def test_export_ledger(session, tmp_path):
    session.sell('Alpha', 500)

    path = session.export_ledger(tmp_path / 'ledger.csv')

    assert path.exists()
    assert path.read_bytes().startswith(b'\xef\xbb\xbf')


def test_resume_keeps_sales_made_while_remote_was_down(session, remote_store, local_store):
    remote_store.available = False
    session.sell('Alpha', 500)
    session.next_player()
    session.sell('Bravo', 700)
    assert local_store.documents['SESS01']['revision'] == 3
    remote_store.available = True

    resumed = AuctionSession.resume('SESS01', SnapshotSynchronizer([remote_store, local_store]))

    assert resumed.state.revision == 3
    assert len(resumed.ledger) == 2
    assert local_store.documents['SESS01']['revision'] == 3
    assert remote_store.documents['SESS01']['revision'] == 3


def test_slow_remote_does_not_hold_up_operator(local_store):
    remote = GatedStore()
    synchronizer = SnapshotSynchronizer([remote, local_store])
    session = AuctionSession.create(
        make_players(['p1', 'p2', 'p3']),
        make_teams(['Alpha', 'Bravo']),
        synchronizer,
        auction_id='SLOW01',
        shuffle=False
    )
    assert remote.started.wait(5)

    session.sell('Alpha', 500)
    session.next_player()
    session.unsold()

    assert remote.write_count == 0
    assert local_store.documents['SLOW01']['revision'] == 3

    remote.gate.set()
    assert synchronizer.close(timeout=5)
    assert remote.write_count == 2
    assert remote.documents['SLOW01']['revision'] == 3
