import pytest

from ccl_auction.auction.console import handle_command, run_console
from ccl_auction.auction.models import AuctionConfig
from ccl_auction.auction.session import AuctionSession

from conftest import make_players, make_teams


@pytest.fixture
def session(synchronizer):
    return AuctionSession.create(
        make_players(['p1', 'p2']),
        make_teams(['Royal Strikers', 'Bravo'], purse=1000),
        synchronizer,
        auction_config=AuctionConfig(min_players_per_team=1, max_players_per_team=2),
        auction_id='CONS01',
        shuffle=False
    )


def test_sell_with_multi_word_team(session):
    output = handle_command(session, 'sell Royal Strikers 300')

    assert output == 'SOLD p1 to Royal Strikers for 300'
    assert session.state.team_state('Royal Strikers').balance == 700


def test_rejected_bid_suggests_amount(session):
    output = handle_command(session, 'sell Bravo 250')

    assert output.startswith('Rejected:')
    assert '(try 300)' in output
    assert len(session.ledger) == 0


def test_state_errors_are_reported(session):
    assert handle_command(session, 'round').startswith('Error:')
    assert handle_command(session, 'undo').startswith('Error:')
    assert handle_command(session, 'sell Bravo lots').startswith('Error:')


def test_round_flow(session):
    handle_command(session, 'unsold')
    assert handle_command(session, 'next') == 'On the block: Player p2 [red]'
    handle_command(session, 'unsold')
    assert 'exhausted' in handle_command(session, 'next')

    assert handle_command(session, 'round') == 'Round 2 started with 2 players'


def test_distribution_commands(synchronizer):
    session = AuctionSession.create(
        make_players(['a1', 'a2', 'u1']),
        make_teams(['Alpha', 'Bravo'], purse=1000),
        synchronizer,
        auction_config=AuctionConfig(min_players_per_team=1, max_players_per_team=3),
        auction_id='CONS02',
        shuffle=False
    )
    for line in ['sell Alpha 100', 'next', 'sell Bravo 100', 'next', 'unsold']:
        handle_command(session, line)

    assert 'Distribution available' in handle_command(session, 'status')
    assert handle_command(session, 'stage u1 Alpha 0') == 'Staged u1 -> Alpha (0)'
    assert handle_command(session, 'withdraw 1') == 'Withdrew assignment 1'
    assert handle_command(session, 'confirm').startswith('Error:')
    handle_command(session, 'stage u1 Bravo 0')
    assert 'Auction complete' in handle_command(session, 'confirm')


def test_unknown_command(session):
    assert handle_command(session, 'bid 100').startswith("Unknown command 'bid'")
    assert handle_command(session, '   ') == ''


def test_run_console_until_quit(session):
    lines = iter(['sell Bravo 200', 'quit', 'sell Bravo 300'])
    output = []

    run_console(session, read_line=lambda prompt: next(lines), write=output.append)

    assert 'SOLD p1 to Bravo for 200' in output
    assert len(session.ledger) == 1
