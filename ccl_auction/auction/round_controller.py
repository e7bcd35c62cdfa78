"""
Round controller: the bidding state machine.

Each function takes an AuctionState and returns the next one:

    Bidding(player) -> Decided -> Advancing -> Bidding(next) | RoundComplete

- commit_sale / commit_unsold record a decision for the current player
- next_player moves the cursor to the next undecided, unfrozen player
- advance_round starts the next round with the unsold remainder
- undo drops the most recent ledger entry

In round 1 a capped-category player is deferred to round 2 when no team
has at least one bid increment of cap headroom left, so the round cannot
stall on a player nobody is allowed to buy.
"""

import logging
import random
from dataclasses import replace
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from .errors import AuctionStateError
from .ledger import Ledger
from .models import AuctionConfig, AuctionCursor, EntryStatus, LedgerEntry, Player, Team
from .state import AuctionState
from .validator import validate_bid

logger = logging.getLogger(__name__)


def build_auction_order(
    players: Iterable[Player],
    auction_config: AuctionConfig,
    seed: Optional[int] = None
) -> List[Player]:
    """
    Order players for round 1.

    Owners go first (non-capped owners, then capped owners), followed by
    capped players and then everyone else. Each group is shuffled.

    Args:
        players: Players in load order
        auction_config: Auction parameters (decides which players are capped)
        seed: Optional seed for a reproducible shuffle

    Returns:
        Players in auction order
    """
    rng = random.Random(seed)
    is_capped = auction_config.is_capped

    groups = [
        [p for p in players if p.owner and not is_capped(p.category)],
        [p for p in players if p.owner and is_capped(p.category)],
        [p for p in players if not p.owner and is_capped(p.category)],
        [p for p in players if not p.owner and not is_capped(p.category)],
    ]

    ordered = []
    for group in groups:
        rng.shuffle(group)
        ordered.extend(group)

    logger.debug(f"Auction order built for {len(ordered)} players")
    return ordered


def start_auction(
    auction_id: str,
    players: Sequence[Player],
    teams: Sequence[Team],
    config: Optional[AuctionConfig] = None
) -> AuctionState:
    """
    Create the initial state: round 1 over every player in the given order.

    Raises:
        ValueError: If there are no teams or ids are duplicated
    """
    if not teams:
        raise ValueError("An auction needs at least one team")

    state = AuctionState(
        auction_id=auction_id,
        config=config or AuctionConfig(),
        players=tuple(players),
        teams=tuple(teams),
        ledger=Ledger(),
        cursor=AuctionCursor(
            round=1,
            player_index=0,
            round_sequence=tuple(p.id for p in players)
        )
    )

    logger.info(
        f"Auction {auction_id} created: {len(players)} players, {len(teams)} teams"
    )
    return _seek(state, 0, include_start=True)


def all_teams_at_cap(state: AuctionState) -> bool:
    """True when no team has a full bid increment of cap headroom left."""
    states = state.team_states()
    if not states:
        return False
    increment = state.config.bid_increment
    return all(team.cap_left < increment for team in states)


def is_pending(state: AuctionState, player_id: str) -> bool:
    """Neither frozen nor already decided in the current round."""
    return (
        not state.ledger.is_frozen(player_id)
        and not state.ledger.has_decision(player_id, state.cursor.round)
    )


def _should_defer(state: AuctionState, player_id: str) -> bool:
    if state.cursor.round != 1:
        return False
    if not state.config.is_capped(state.player(player_id).category):
        return False
    return all_teams_at_cap(state)


def _seek(state: AuctionState, start: int, include_start: bool) -> AuctionState:
    """
    Move the cursor to the next pending player.

    Searches forward from ``start`` and then wraps to earlier positions.
    Capped players that must be deferred are removed from the sequence on
    the way. With nothing pending the cursor is left past the end.
    """
    cursor = state.cursor
    while True:
        sequence = cursor.round_sequence
        count = len(sequence)
        first = start if include_start else start + 1
        order = list(range(first, count)) + list(range(0, min(first, count)))
        target = next((i for i in order if is_pending(state, sequence[i])), None)

        if target is None:
            cursor = replace(cursor, player_index=count)
            return state.with_changes(cursor=cursor)

        player_id = sequence[target]
        if _should_defer(state, player_id):
            logger.info(
                f"Deferring capped player {player_id} to round 2 "
                f"(all teams at cap in round 1)"
            )
            cursor = replace(
                cursor,
                round_sequence=sequence[:target] + sequence[target + 1:],
                deferred=cursor.deferred + (player_id,),
                player_index=target
            )
            state = state.with_changes(cursor=cursor)
            start, include_start = target, True
            continue

        cursor = replace(cursor, player_index=target)
        return state.with_changes(cursor=cursor)


def _require_current_player(state: AuctionState) -> Player:
    if state.cursor.complete:
        raise AuctionStateError("Auction is complete")
    player = state.current_player
    if player is None:
        raise AuctionStateError(
            f"No player on the block; round {state.cursor.round} is complete"
        )
    if state.ledger.is_frozen(player.id):
        raise AuctionStateError(f"Player {player.id} is already sold")
    return player


def commit_sale(
    state: AuctionState,
    team_name: str,
    amount: int,
    timestamp: Optional[datetime] = None
) -> AuctionState:
    """
    Record the current player as sold.

    Args:
        state: Current auction state
        team_name: Winning team
        amount: Winning bid in units
        timestamp: Decision time (defaults to now)

    Returns:
        New state with a Sold entry appended

    Raises:
        ValidationRejected: If the bid breaks a bidding rule
        AuctionStateError: If there is no biddable player or the team is unknown
    """
    player = _require_current_player(state)
    if not state.has_team(team_name):
        raise AuctionStateError(f"Unknown team: {team_name}")

    round_number = state.cursor.round
    decision = validate_bid(
        state.team_state(team_name),
        amount,
        state.config.is_capped(player.category),
        round_number,
        state.config
    )
    decision.raise_for_rejection()

    entry = LedgerEntry(
        round=round_number,
        attempt=state.ledger.next_attempt(player.id, round_number),
        timestamp=timestamp or datetime.now(),
        player_id=player.id,
        category=player.category,
        status=EntryStatus.SOLD,
        team_name=team_name,
        amount=amount
    )

    logger.info(f"Round {round_number}: {player.name} SOLD to {team_name} for {amount}")
    return state.with_changes(ledger=state.ledger.append(entry))


def commit_unsold(state: AuctionState, timestamp: Optional[datetime] = None) -> AuctionState:
    """
    Record the current player as unsold in this round.

    Raises:
        AuctionStateError: If there is no biddable player
    """
    player = _require_current_player(state)
    round_number = state.cursor.round

    entry = LedgerEntry(
        round=round_number,
        attempt=state.ledger.next_attempt(player.id, round_number),
        timestamp=timestamp or datetime.now(),
        player_id=player.id,
        category=player.category,
        status=EntryStatus.UNSOLD
    )

    logger.info(f"Round {round_number}: {player.name} UNSOLD")
    return state.with_changes(ledger=state.ledger.append(entry))


def next_player(state: AuctionState) -> AuctionState:
    """
    Advance the cursor to the next player still to be decided this round.

    Raises:
        AuctionStateError: If the auction is complete
    """
    if state.cursor.complete:
        raise AuctionStateError("Auction is complete")
    return _seek(state, state.cursor.player_index, include_start=False)


def undecided_players(state: AuctionState) -> List[str]:
    """Players in the round sequence without a decision this round."""
    round_number = state.cursor.round
    return [
        player_id for player_id in state.cursor.round_sequence
        if not state.ledger.has_decision(player_id, round_number)
    ]


def is_round_exhausted(state: AuctionState) -> bool:
    return not undecided_players(state)


def advance_round(state: AuctionState) -> AuctionState:
    """
    Start the next round with the players left unsold in this one.

    Players whose latest decision this round was Unsold, followed by any
    capped players deferred from round 1, form the next sequence. When
    nothing is left the auction is marked complete instead.

    Raises:
        AuctionStateError: If the auction is complete or players are undecided
    """
    cursor = state.cursor
    if cursor.complete:
        raise AuctionStateError("Auction is complete")

    pending = undecided_players(state)
    if pending:
        raise AuctionStateError(
            f"{len(pending)} players still need decisions in round {cursor.round}"
        )

    ledger = state.ledger
    next_sequence = []
    for player_id in cursor.round_sequence:
        if ledger.is_frozen(player_id):
            continue
        latest = ledger.latest_decision(player_id, cursor.round)
        if latest is not None and latest.status == EntryStatus.UNSOLD:
            next_sequence.append(player_id)

    for player_id in cursor.deferred:
        if not ledger.is_frozen(player_id) and player_id not in next_sequence:
            next_sequence.append(player_id)

    if not next_sequence:
        logger.info(f"All players decided after round {cursor.round}. Auction complete.")
        return state.with_changes(
            cursor=replace(cursor, player_index=len(cursor.round_sequence), complete=True)
        )

    logger.info(
        f"Round {cursor.round} complete. Starting round {cursor.round + 1} "
        f"with {len(next_sequence)} players"
    )
    next_cursor = AuctionCursor(
        round=cursor.round + 1,
        player_index=0,
        round_sequence=tuple(next_sequence),
        deferred=(),
        complete=False
    )
    return _seek(state.with_changes(cursor=next_cursor), 0, include_start=True)


def undo(state: AuctionState) -> Tuple[AuctionState, LedgerEntry]:
    """
    Remove the most recent ledger entry.

    Team balances are restored implicitly by re-projection. If no other
    entry in the same round references the player, the cursor returns to
    that player. A player undone from an earlier round who is no longer
    queued anywhere is re-queued at the end of the current round.
    Deferred capped players stay deferred.

    Returns:
        Tuple of (new state, removed entry)

    Raises:
        AuctionStateError: If the ledger is empty
    """
    ledger, entry = state.ledger.without_last()
    if entry is None:
        raise AuctionStateError("Nothing to undo")

    cursor = replace(state.cursor, complete=False)
    player_id = entry.player_id
    sequence = cursor.round_sequence

    if not ledger.is_frozen(player_id) and not ledger.has_decision(player_id, entry.round):
        if entry.round == cursor.round:
            if player_id not in sequence and player_id not in cursor.deferred:
                sequence = sequence + (player_id,)
            if player_id in sequence:
                cursor = replace(
                    cursor,
                    round_sequence=sequence,
                    player_index=sequence.index(player_id)
                )
        elif player_id not in sequence and player_id not in cursor.deferred:
            logger.info(f"Re-queueing {player_id} at the end of round {cursor.round}")
            cursor = replace(cursor, round_sequence=sequence + (player_id,))

    logger.info(
        f"Undo: removed {entry.status.value} entry for {player_id} "
        f"(round {entry.round}, attempt {entry.attempt})"
    )
    return state.with_changes(ledger=ledger, cursor=cursor), entry
