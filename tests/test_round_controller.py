import pytest

from ccl_auction.auction.errors import AuctionStateError, ValidationRejected
from ccl_auction.auction.models import AuctionConfig, EntryStatus, Player
from ccl_auction.auction.round_controller import (
    advance_round,
    all_teams_at_cap,
    build_auction_order,
    commit_sale,
    commit_unsold,
    is_round_exhausted,
    next_player,
    start_auction,
    undo
)
from ccl_auction.auction.state import AuctionPhase
from ccl_auction.auction.validator import RejectReason

from conftest import make_players, make_teams


def test_start_positions_on_first_player(three_player_state):
    state = three_player_state

    assert state.round == 1
    assert state.cursor.round_sequence == ('p1', 'p2', 'p3')
    assert state.current_player.id == 'p1'
    assert state.phase == AuctionPhase.BIDDING


def test_start_requires_teams():
    with pytest.raises(ValueError):
        start_auction('X', make_players(['p1']), [])


def test_sale_records_entry_without_advancing(three_player_state, clock):
    state = commit_sale(three_player_state, 'Alpha', 1200, clock())

    entry = state.ledger.last()
    assert entry.status == EntryStatus.SOLD
    assert entry.team_name == 'Alpha'
    assert entry.amount == 1200
    assert entry.round == 1
    assert entry.attempt == 1
    assert state.current_player.id == 'p1'
    assert state.phase == AuctionPhase.DECIDED
    assert state.team_state('Alpha').balance == 8800


def test_rejected_bid_leaves_state_unchanged(three_player_state):
    with pytest.raises(ValidationRejected) as excinfo:
        commit_sale(three_player_state, 'Alpha', 1250)

    assert excinfo.value.reason == RejectReason.NOT_A_MULTIPLE
    assert len(three_player_state.ledger) == 0


def test_unknown_team_is_rejected(three_player_state):
    with pytest.raises(AuctionStateError):
        commit_sale(three_player_state, 'Nobody', 100)


def test_frozen_player_cannot_be_sold_again(three_player_state, clock):
    state = commit_sale(three_player_state, 'Alpha', 500, clock())

    with pytest.raises(AuctionStateError):
        commit_sale(state, 'Bravo', 600, clock())
    with pytest.raises(AuctionStateError):
        commit_unsold(state, clock())


def test_sale_after_unsold_in_same_round_counts_attempts(three_player_state, clock):
    state = commit_unsold(three_player_state, clock())
    state = commit_sale(state, 'Bravo', 300, clock())

    assert [e.attempt for e in state.ledger] == [1, 2]
    assert state.ledger.is_frozen('p1')


def test_three_unsold_roll_over_to_round_two(three_player_state, clock):
    state = three_player_state
    for _ in range(3):
        state = commit_unsold(state, clock())
        state = next_player(state)

    assert is_round_exhausted(state)
    assert state.phase == AuctionPhase.ROUND_COMPLETE

    state = advance_round(state)

    assert state.round == 2
    assert state.cursor.round_sequence == ('p1', 'p2', 'p3')
    assert state.cursor.player_index == 0
    assert state.current_player.id == 'p1'


def test_sold_players_leave_the_next_round(three_player_state, clock):
    state = commit_sale(three_player_state, 'Alpha', 500, clock())
    state = next_player(state)
    state = commit_unsold(state, clock())
    state = next_player(state)
    state = commit_sale(state, 'Bravo', 700, clock())
    state = next_player(state)

    state = advance_round(state)

    assert state.cursor.round_sequence == ('p2',)


def test_advance_round_requires_every_decision(three_player_state, clock):
    state = commit_unsold(three_player_state, clock())

    with pytest.raises(AuctionStateError):
        advance_round(state)


def test_all_sold_completes_auction(clock):
    state = start_auction('X', make_players(['p1', 'p2']), make_teams(['Alpha']))
    state = commit_sale(state, 'Alpha', 100, clock())
    state = next_player(state)
    state = commit_sale(state, 'Alpha', 100, clock())
    state = next_player(state)

    state = advance_round(state)

    assert state.cursor.complete
    assert state.phase == AuctionPhase.COMPLETE
    with pytest.raises(AuctionStateError):
        commit_unsold(state, clock())


def test_next_player_wraps_to_skipped_player(three_player_state, clock):
    state = next_player(three_player_state)
    assert state.current_player.id == 'p2'

    state = commit_unsold(state, clock())
    state = next_player(state)
    state = commit_unsold(state, clock())
    state = next_player(state)

    assert state.current_player.id == 'p1'


def test_capped_scenario_through_rounds(clock):
    players = make_players(['b1', 'b2'], category='blue')
    state = start_auction('X', players, make_teams(['Alpha']))

    state = commit_sale(state, 'Alpha', 1200, clock())
    state = next_player(state)
    with pytest.raises(ValidationRejected) as excinfo:
        commit_sale(state, 'Alpha', 5400, clock())
    assert excinfo.value.reason == RejectReason.EXCEEDS_CAP_BUDGET

    state = commit_unsold(state, clock())
    state = next_player(state)
    state = advance_round(state)
    state = commit_sale(state, 'Alpha', 5400, clock())

    assert state.team_state('Alpha').cap_spent == 6600
    assert state.ledger.last().round == 2


def _deferral_state(clock):
    config = AuctionConfig(min_players_per_team=1, max_players_per_team=5)
    players = make_players(['b1', 'b2'], category='blue') + make_players(['r1'])
    state = start_auction('X', players, make_teams(['Alpha'], purse=1000), config)
    return commit_sale(state, 'Alpha', 600, clock())


def test_capped_player_deferred_when_all_teams_at_cap(clock):
    state = _deferral_state(clock)
    assert all_teams_at_cap(state)

    state = next_player(state)

    assert state.current_player.id == 'r1'
    assert state.cursor.deferred == ('b2',)
    assert 'b2' not in state.cursor.round_sequence

    state = commit_unsold(state, clock())
    state = next_player(state)
    state = advance_round(state)

    assert state.cursor.round_sequence == ('r1', 'b2')
    assert state.cursor.deferred == ()


def test_undo_does_not_restore_deferred_player(clock):
    state = next_player(_deferral_state(clock))

    state = commit_unsold(state, clock())
    state, _ = undo(state)
    state, removed = undo(state)

    assert removed.player_id == 'b1'
    assert state.current_player.id == 'b1'
    assert state.cursor.deferred == ('b2',)


def test_undo_reverts_sale_exactly(three_player_state, clock):
    before = next_player(three_player_state)

    after, removed = undo(commit_sale(before, 'Bravo', 900, clock()))

    assert removed.amount == 900
    assert after == before
    assert after.team_states() == before.team_states()


def test_undo_returns_cursor_to_player(three_player_state, clock):
    state = commit_unsold(three_player_state, clock())
    state = next_player(state)

    state, _ = undo(state)

    assert state.current_player.id == 'p1'
    assert state.phase == AuctionPhase.BIDDING


def test_undo_earlier_round_requeues_player(three_player_state, clock):
    state = commit_sale(three_player_state, 'Alpha', 500, clock())
    state = next_player(state)
    state = commit_unsold(state, clock())
    state = next_player(state)
    state = commit_unsold(state, clock())
    state = next_player(state)
    state = advance_round(state)
    state = commit_unsold(state, clock())

    state, _ = undo(state)
    assert state.cursor.round_sequence == ('p2', 'p3')
    state, _ = undo(state)
    state, _ = undo(state)
    assert state.cursor.round_sequence == ('p2', 'p3')

    state, removed = undo(state)

    assert removed.player_id == 'p1'
    assert state.round == 2
    assert state.cursor.round_sequence == ('p2', 'p3', 'p1')
    assert state.current_player.id == 'p2'


def test_undo_empty_ledger(three_player_state):
    with pytest.raises(AuctionStateError):
        undo(three_player_state)


def test_undo_clears_completion(clock):
    state = start_auction('X', make_players(['p1']), make_teams(['Alpha']))
    state = commit_sale(state, 'Alpha', 100, clock())
    state = advance_round(next_player(state))
    assert state.cursor.complete

    state, _ = undo(state)

    assert not state.cursor.complete
    assert state.current_player.id == 'p1'


def test_build_auction_order_groups_owners_and_capped_first():
    players = [
        Player('r1', 'R1', 'red'),
        Player('b1', 'B1', 'blue'),
        Player('o1', 'O1', 'red', owner=True),
        Player('ob', 'OB', 'Blue', owner=True),
        Player('r2', 'R2', 'red'),
        Player('b2', 'B2', 'blue'),
    ]

    ordered = [p.id for p in build_auction_order(players, AuctionConfig(), seed=7)]

    assert ordered[:2] == ['o1', 'ob']
    assert set(ordered[2:4]) == {'b1', 'b2'}
    assert set(ordered[4:]) == {'r1', 'r2'}
    assert ordered == [p.id for p in build_auction_order(players, AuctionConfig(), seed=7)]


def test_build_auction_order_uses_configured_capped_category():
    players = [
        Player('r1', 'R1', 'red'),
        Player('b1', 'B1', 'blue'),
        Player('g1', 'G1', ' Gold '),
    ]

    ordered = build_auction_order(players, AuctionConfig(capped_category='gold'), seed=3)

    assert ordered[0].id == 'g1'
