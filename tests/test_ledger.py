from datetime import datetime

import pandas as pd
import pytest

from ccl_auction.auction.ledger import REPORT_COLUMNS, Ledger
from ccl_auction.auction.models import EntryStatus, LedgerEntry

STAMP = datetime(2026, 1, 23, 18, 30, 0)


def _sold(player_id, team, amount, round_number=1, attempt=1):
    return LedgerEntry(
        round=round_number,
        attempt=attempt,
        timestamp=STAMP,
        player_id=player_id,
        category='red',
        status=EntryStatus.SOLD,
        team_name=team,
        amount=amount
    )


def _unsold(player_id, round_number=1, attempt=1):
    return LedgerEntry(
        round=round_number,
        attempt=attempt,
        timestamp=STAMP,
        player_id=player_id,
        category='red',
        status=EntryStatus.UNSOLD
    )


def test_append_returns_new_ledger():
    empty = Ledger()
    ledger = empty.append(_sold('p1', 'Alpha', 500))

    assert len(empty) == 0
    assert len(ledger) == 1
    assert ledger.last().player_id == 'p1'


def test_selling_frozen_player_is_rejected():
    ledger = Ledger().append(_sold('p1', 'Alpha', 500))

    with pytest.raises(ValueError):
        ledger.append(_sold('p1', 'Bravo', 600, round_number=2))


def test_unsold_then_sold_freezes_player():
    ledger = Ledger().append(_unsold('p1')).append(_sold('p1', 'Alpha', 300, round_number=2))

    assert ledger.is_frozen('p1')
    assert ledger.sold_player_ids() == {'p1'}
    assert ledger.sold_entry('p1').amount == 300


def test_extend_is_all_or_nothing():
    ledger = Ledger().append(_sold('p1', 'Alpha', 500))

    with pytest.raises(ValueError):
        ledger.extend([_sold('p2', 'Alpha', 100), _sold('p1', 'Bravo', 100)])

    assert len(ledger) == 1


def test_without_last_drops_most_recent():
    ledger = Ledger().append(_unsold('p1')).append(_sold('p2', 'Alpha', 200))

    shorter, removed = ledger.without_last()

    assert removed.player_id == 'p2'
    assert shorter == Ledger([_unsold('p1')])
    assert Ledger().without_last() == (Ledger(), None)


def test_decisions_are_scoped_to_round():
    ledger = Ledger([_unsold('p1', 1), _unsold('p1', 1, attempt=2), _unsold('p1', 2)])

    assert ledger.has_decision('p1', 1)
    assert not ledger.has_decision('p2', 1)
    assert ledger.next_attempt('p1', 1) == 3
    assert ledger.next_attempt('p1', 2) == 2
    assert ledger.latest_decision('p1', 1).attempt == 2


def test_roundtrip_through_dicts():
    ledger = Ledger([_unsold('p1'), _sold('p2', 'Alpha', 700)])

    assert Ledger.from_list(ledger.to_list()) == ledger


def test_from_list_rejects_sold_without_team():
    data = [{'round': 1, 'attempt': 1, 'timestamp': STAMP.isoformat(),
             'playerId': 'p1', 'category': 'red', 'status': 'Sold', 'amount': 100}]

    with pytest.raises(ValueError):
        Ledger.from_list(data)


def test_report_has_flat_columns():
    ledger = Ledger([_unsold('p1'), _sold('p2', 'Alpha', 700)])

    df = ledger.to_report()

    assert list(df.columns) == REPORT_COLUMNS
    assert df.loc[1, 'team'] == 'Alpha'
    assert df.loc[1, 'amount'] == 700
    assert df.loc[0, 'status'] == 'Unsold'


def test_export_to_csv_writes_bom(tmp_path):
    ledger = Ledger([_sold('p1', 'Alpha', 700)])
    output = tmp_path / 'exports' / 'ledger.csv'

    ledger.export_to_csv(output)

    raw = output.read_bytes()
    assert raw.startswith(b'\xef\xbb\xbf')
    df = pd.read_csv(output, encoding='utf-8-sig')
    assert list(df.columns) == REPORT_COLUMNS
    assert df.loc[0, 'playerId'] == 'p1'


def test_summary_counts():
    ledger = Ledger([_unsold('p1'), _sold('p2', 'Alpha', 700)])

    assert ledger.summary() == {'entries': 2, 'sold': 1, 'unsold': 1}
