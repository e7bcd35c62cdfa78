"""
Load players and teams for a new auction.

Player and team sheets are usually exported from a spreadsheet, so column
names vary in case and punctuation, blanks are written as "-" and long
descriptions sometimes spill onto continuation rows with no id or name.
"""

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pandas as pd

from . import config
from .auction.models import Player, Team

logger = logging.getLogger(__name__)

EMPTY_MARKERS = {'', '-', '--', '—', 'null', 'none', 'nan', 'undefined'}
FALSE_MARKERS = {'no', 'n', 'false', '0'}

PLAYER_ID_COLUMNS = ['id', 'playerid']
PLAYER_NAME_COLUMNS = ['name', 'playername']
CATEGORY_COLUMNS = ['category', 'bluered']
TEAM_NAME_COLUMNS = ['name', 'team', 'teamname']
PURSE_COLUMNS = ['balance', 'purse', 'openingbalance', 'initialbalance', 'amount']


def _normalize_key(key) -> str:
    return re.sub(r'[^a-z0-9]', '', str(key).lower())


def _clean(value) -> str:
    if value is None:
        return ''
    text = str(value).strip()
    return '' if text.lower() in EMPTY_MARKERS else text


def _pick(row: Dict[str, str], candidates: List[str]) -> str:
    for key in candidates:
        value = row.get(key, '')
        if value:
            return value
    return ''


def normalize_purse(value, default: int = config.DEFAULT_PURSE) -> int:
    """
    Convert a purse to auction units.

    Missing, zero or unparseable purses fall back to the default. Purses
    above the normalization threshold are assumed to be in rupees.
    """
    text = _clean(value).replace(',', '')
    try:
        purse = float(text) if text else 0
    except ValueError:
        logger.warning(f"Unparseable purse '{value}', using default {default}")
        return default

    if purse <= 0:
        return default
    if purse > config.PURSE_NORMALIZATION_THRESHOLD:
        converted = int(round(purse / config.RUPEES_PER_UNIT))
        logger.info(f"Converted purse {purse:.0f} to {converted} units")
        return converted
    return int(purse)


def _merge_continuation_rows(records: Iterable[dict]) -> List[Dict[str, str]]:
    """Fold rows with no id and no name into the preceding player."""
    merged: List[Dict[str, str]] = []
    for record in records:
        row = {_normalize_key(k): _clean(v) for k, v in record.items()}
        if _pick(row, PLAYER_ID_COLUMNS) or _pick(row, PLAYER_NAME_COLUMNS):
            merged.append(row)
            continue
        if not merged:
            continue

        current = merged[-1]
        for key, value in row.items():
            if not value:
                continue
            if 'description' in key and current.get(key):
                current[key] = f"{current[key]} {value}"
            elif not current.get(key):
                current[key] = value
    return merged


def players_from_records(records: Iterable[dict]) -> List[Player]:
    """
    Build players from raw records (CSV rows, JSON objects).

    Raises:
        ValueError: If a named player has no id, or ids repeat
    """
    players = []
    seen = set()

    for index, row in enumerate(_merge_continuation_rows(records), start=1):
        player_id = _pick(row, PLAYER_ID_COLUMNS)
        name = _pick(row, PLAYER_NAME_COLUMNS)
        if not name:
            continue
        if not player_id:
            raise ValueError(f"Player {index} ({name}) is missing an id")
        if player_id in seen:
            raise ValueError(f"Duplicate player id: {player_id}")
        seen.add(player_id)

        owner = _clean(row.get('owner', ''))
        skip = set(PLAYER_ID_COLUMNS + PLAYER_NAME_COLUMNS + CATEGORY_COLUMNS + ['owner', 'photo'])
        attributes = {key: value for key, value in row.items() if key not in skip and value}

        players.append(Player(
            id=player_id,
            name=name,
            category=_pick(row, CATEGORY_COLUMNS),
            owner=bool(owner) and owner.lower() not in FALSE_MARKERS,
            photo=row.get('photo') or None,
            attributes=attributes
        ))

    if not players:
        raise ValueError("No valid players found. Check that a Name column exists and has values.")

    logger.info(f"Loaded {len(players)} players ({sum(p.owner for p in players)} owners)")
    return players


def teams_from_records(records: Iterable[dict], default_purse: int = config.DEFAULT_PURSE) -> List[Team]:
    """
    Build teams from raw records.

    Raises:
        ValueError: If no team has a name, or names repeat
    """
    teams = []
    seen = set()

    for record in records:
        row = {_normalize_key(k): _clean(v) for k, v in record.items()}
        name = _pick(row, TEAM_NAME_COLUMNS)
        if not name:
            logger.warning(f"Skipping team row without a name: {record}")
            continue
        if name in seen:
            raise ValueError(f"Duplicate team name: {name}")
        seen.add(name)

        teams.append(Team(
            name=name,
            original_purse=normalize_purse(_pick(row, PURSE_COLUMNS), default_purse),
            logo_ref=_pick(row, ['logo', 'logoref']) or None
        ))

    if not teams:
        raise ValueError("No valid teams found. Check that a Name column exists and has values.")

    logger.info(f"Loaded {len(teams)} teams")
    return teams


def _read_csv(path) -> pd.DataFrame:
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {path}")
    return pd.read_csv(csv_path, dtype=str, keep_default_na=False, encoding='utf-8-sig')


def load_players(path) -> List[Player]:
    """Load players from a CSV file."""
    return players_from_records(_read_csv(path).to_dict('records'))


def load_teams(path, default_purse: Optional[int] = None) -> List[Team]:
    """Load teams from a CSV file."""
    return teams_from_records(
        _read_csv(path).to_dict('records'),
        default_purse if default_purse is not None else config.DEFAULT_PURSE
    )
