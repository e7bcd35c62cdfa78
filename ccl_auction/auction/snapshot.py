"""
Versioned snapshot schema.

A snapshot is the whole auction as one JSON-compatible document:

    {version, auctionId, revision, cursor, ledger, teams, players, config,
     teamStates}

``teamStates`` is a cache for observers and is recomputed from the ledger on
restore. Everything else is sufficient to rebuild the state on a fresh
device with no other input.
"""

import copy
import logging
from typing import Dict, Optional

from .. import config as app_config
from .errors import MalformedSnapshot
from .ledger import Ledger
from .models import AuctionConfig, AuctionCursor, Player, Team, as_list
from .state import AuctionState

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = app_config.SNAPSHOT_VERSION


def build_snapshot(state: AuctionState) -> dict:
    """Serialize the full auction state."""
    return {
        'version': SNAPSHOT_VERSION,
        'auctionId': state.auction_id,
        'revision': state.revision,
        'cursor': state.cursor.to_dict(),
        'ledger': state.ledger.to_list(),
        'teams': [team.to_dict() for team in state.teams],
        'players': [player.to_dict() for player in state.players],
        'config': state.config.to_dict(),
        'teamStates': [team.to_dict() for team in state.team_states()]
    }


def restore_state(data: Optional[dict]) -> AuctionState:
    """
    Rebuild an AuctionState from a snapshot.

    Team balances and roster sizes are never read from the snapshot; they
    are re-projected from the ledger.

    Args:
        data: Snapshot dictionary

    Returns:
        Restored AuctionState

    Raises:
        MalformedSnapshot: If the document is structurally invalid
    """
    if not isinstance(data, dict):
        raise MalformedSnapshot(f"Snapshot must be an object, got {type(data).__name__}")

    version = data.get('version', SNAPSHOT_VERSION)
    if not isinstance(version, int) or version > SNAPSHOT_VERSION:
        raise MalformedSnapshot(f"Unsupported snapshot version: {version}")

    try:
        auction_id = str(data['auctionId'])
        players = tuple(Player.from_dict(p) for p in as_list(data.get('players')))
        teams = tuple(Team.from_dict(t) for t in as_list(data.get('teams')))
        auction_config = AuctionConfig.from_dict(data.get('config') or {})
        cursor = AuctionCursor.from_dict(data['cursor'])
        ledger = Ledger.from_list(as_list(data.get('ledger')))
        revision = int(data.get('revision', 0))
        state = AuctionState(
            auction_id=auction_id,
            config=auction_config,
            players=players,
            teams=teams,
            ledger=ledger,
            cursor=cursor,
            revision=revision
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise MalformedSnapshot(f"Invalid snapshot: {e}") from e

    _check_references(state)
    logger.debug(
        f"Restored snapshot {auction_id} rev {revision}: "
        f"{len(ledger)} entries, round {cursor.round}"
    )
    return state


def _check_references(state: AuctionState) -> None:
    if not state.teams:
        raise MalformedSnapshot("Snapshot has no teams")

    player_ids = set(state.players_by_id)
    team_names = {team.name for team in state.teams}

    for entry in state.ledger:
        if entry.player_id not in player_ids:
            raise MalformedSnapshot(f"Ledger references unknown player {entry.player_id}")
        if entry.is_sold and entry.team_name not in team_names:
            raise MalformedSnapshot(f"Ledger references unknown team {entry.team_name}")

    cursor = state.cursor
    for player_id in cursor.round_sequence + cursor.deferred:
        if player_id not in player_ids:
            raise MalformedSnapshot(f"Cursor references unknown player {player_id}")
    if cursor.round < 1 or not 0 <= cursor.player_index <= len(cursor.round_sequence):
        raise MalformedSnapshot(
            f"Cursor out of range: round {cursor.round}, index {cursor.player_index}"
        )


def is_inline_attachment(value) -> bool:
    """Inline (base64) images are large; URLs are tiny and always kept."""
    if not isinstance(value, str) or not value:
        return False
    return not value.startswith(('http://', 'https://', '/'))


def strip_finalized_attachments(snapshot: dict) -> dict:
    """
    Copy of a snapshot without inline photos of already sold players.

    Photos are kept for the player currently on the block and for every
    player not yet sold, since they are still needed for play.
    """
    stripped = copy.deepcopy(snapshot)
    sold = {
        entry.get('playerId') for entry in as_list(stripped.get('ledger'))
        if entry.get('status') == 'Sold'
    }
    cursor = stripped.get('cursor') or {}
    sequence = as_list(cursor.get('roundSequence'))
    index = cursor.get('playerIndex', 0)
    active = sequence[index] if 0 <= index < len(sequence) else None

    removed = 0
    for player in as_list(stripped.get('players')):
        player_id = player.get('id')
        if player_id in sold and player_id != active and is_inline_attachment(player.get('photo')):
            del player['photo']
            removed += 1

    if removed:
        logger.debug(f"Stripped {removed} finalized photos from snapshot")
    return stripped


def extract_attachments(snapshot: dict) -> tuple:
    """
    Split inline attachments out of a snapshot.

    Returns:
        Tuple of (snapshot without inline attachments, attachments dict with
        ``players`` (id -> photo) and ``teams`` (name -> logo))
    """
    light = copy.deepcopy(snapshot)
    attachments: Dict[str, Dict[str, str]] = {'players': {}, 'teams': {}}

    for player in as_list(light.get('players')):
        if is_inline_attachment(player.get('photo')):
            attachments['players'][str(player['id'])] = player.pop('photo')

    for team in as_list(light.get('teams')):
        if is_inline_attachment(team.get('logoRef')):
            attachments['teams'][str(team['name'])] = team.pop('logoRef')

    return light, attachments


def attach(snapshot: dict, attachments: dict) -> dict:
    """Restore attachments onto records that lack them."""
    hydrated = copy.deepcopy(snapshot)
    photos = attachments.get('players', {})
    logos = attachments.get('teams', {})

    for player in as_list(hydrated.get('players')):
        if not player.get('photo') and str(player.get('id')) in photos:
            player['photo'] = photos[str(player['id'])]

    for team in as_list(hydrated.get('teams')):
        if not team.get('logoRef') and str(team.get('name')) in logos:
            team['logoRef'] = logos[str(team['name'])]

    return hydrated
