from datetime import datetime

import pytest

from ccl_auction.auction.errors import ValidationRejected
from ccl_auction.auction.ledger import Ledger
from ccl_auction.auction.models import AuctionConfig, EntryStatus, LedgerEntry, Team
from ccl_auction.auction.projector import project
from ccl_auction.auction.validator import RejectReason, snap_to_increment, validate_bid

STAMP = datetime(2026, 1, 23, 18, 30, 0)
CONFIG = AuctionConfig()


def _team_state(entries=(), purse=10000, config=CONFIG):
    return project(Ledger(entries), [Team('Alpha', purse)], config)[0]


def test_accepts_valid_bid():
    decision = validate_bid(_team_state(), 1200, False, 1, CONFIG)

    assert decision.accepted
    decision.raise_for_rejection()


@pytest.mark.parametrize('amount, suggested', [(1250, 1300), (1249, 1200), (40, 100), (0, 100)])
def test_rejects_non_multiple_with_suggestion(amount, suggested):
    decision = validate_bid(_team_state(), amount, False, 1, CONFIG)

    assert decision.reason == RejectReason.NOT_A_MULTIPLE
    assert decision.suggested_amount == suggested


def test_snap_to_increment():
    assert snap_to_increment(150, 100) == 200
    assert snap_to_increment(149, 100) == 100
    assert snap_to_increment(10, 100) == 100


def test_reserve_rule_keeps_money_for_minimum_roster():
    state = _team_state()

    assert validate_bid(state, 9500, False, 1, CONFIG).accepted
    decision = validate_bid(state, 9600, False, 1, CONFIG)
    assert decision.reason == RejectReason.EXCEEDS_RESERVE
    assert decision.limit == 9500


def test_capped_category_scenario():
    first = LedgerEntry(1, 1, STAMP, 'b1', 'blue', EntryStatus.SOLD, 'Alpha', 1200)
    state = _team_state([first])

    assert state.cap_budget == 6500
    assert state.cap_spent == 1200

    decision = validate_bid(state, 5400, True, 1, CONFIG)
    assert decision.reason == RejectReason.EXCEEDS_CAP_BUDGET
    assert decision.limit == 5300

    assert validate_bid(state, 5400, True, 2, CONFIG).accepted


def test_cap_does_not_apply_to_other_categories():
    first = LedgerEntry(1, 1, STAMP, 'b1', 'blue', EntryStatus.SOLD, 'Alpha', 6500)
    state = _team_state([first])

    assert validate_bid(state, 2000, False, 1, CONFIG).accepted
    assert not validate_bid(state, 100, True, 1, CONFIG).accepted


def test_roster_full():
    config = AuctionConfig(min_players_per_team=1, max_players_per_team=2)
    entries = [
        LedgerEntry(1, 1, STAMP, f"p{i}", 'red', EntryStatus.SOLD, 'Alpha', 100)
        for i in range(2)
    ]

    decision = validate_bid(_team_state(entries, config=config), 100, False, 1, config)

    assert decision.reason == RejectReason.ROSTER_FULL


def test_raise_for_rejection_carries_reason():
    decision = validate_bid(_team_state(), 150, False, 1, CONFIG)

    with pytest.raises(ValidationRejected) as excinfo:
        decision.raise_for_rejection()

    assert excinfo.value.reason == RejectReason.NOT_A_MULTIPLE
    assert excinfo.value.suggested_amount == 200
