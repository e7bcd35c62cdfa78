"""
Append-only ledger of every sold/unsold decision.

The ledger is the only authoritative record of the auction. Team balances,
roster sizes, frozen players and round rollover are all derived from it.
A Ledger value is immutable: appending returns a new Ledger, so any earlier
state can be kept around, replayed or compared.

The only removal allowed is dropping the single most recent entry (undo).
"""

import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple

import pandas as pd

from .models import EntryStatus, LedgerEntry

logger = logging.getLogger(__name__)

REPORT_COLUMNS = [
    'round', 'attempt', 'timestamp', 'playerId',
    'category', 'team', 'amount', 'status'
]


class Ledger:
    """Immutable, ordered log of ledger entries."""

    __slots__ = ('_entries',)

    def __init__(self, entries: Iterable[LedgerEntry] = ()):
        """
        Initialize ledger.

        Args:
            entries: Entries in chronological order
        """
        self._entries: Tuple[LedgerEntry, ...] = tuple(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LedgerEntry]:
        return iter(self._entries)

    def __getitem__(self, index):
        return self._entries[index]

    def __eq__(self, other) -> bool:
        if not isinstance(other, Ledger):
            return NotImplemented
        return self._entries == other._entries

    def __hash__(self) -> int:
        return hash(self._entries)

    def __repr__(self) -> str:
        return f"Ledger({len(self._entries)} entries)"

    @property
    def entries(self) -> Tuple[LedgerEntry, ...]:
        return self._entries

    def append(self, entry: LedgerEntry) -> 'Ledger':
        """
        Return a new ledger with ``entry`` appended.

        Raises:
            ValueError: If the entry would sell an already frozen player
        """
        if entry.is_sold and self.is_frozen(entry.player_id):
            raise ValueError(f"Player {entry.player_id} is already sold")
        logger.debug(
            f"Ledger append: R{entry.round} #{entry.attempt} {entry.player_id} "
            f"{entry.status.value} {entry.team_name} {entry.amount}"
        )
        return Ledger(self._entries + (entry,))

    def extend(self, entries: Iterable[LedgerEntry]) -> 'Ledger':
        """Append a batch of entries, all-or-nothing."""
        ledger = self
        for entry in entries:
            ledger = ledger.append(entry)
        return ledger

    def without_last(self) -> Tuple['Ledger', Optional[LedgerEntry]]:
        """
        Drop the most recent entry.

        Returns:
            Tuple of (new ledger, removed entry or None if empty)
        """
        if not self._entries:
            return self, None
        return Ledger(self._entries[:-1]), self._entries[-1]

    def last(self) -> Optional[LedgerEntry]:
        return self._entries[-1] if self._entries else None

    def sold_entry(self, player_id: str) -> Optional[LedgerEntry]:
        """Return the Sold entry for a player, if any."""
        for entry in self._entries:
            if entry.is_sold and entry.player_id == player_id:
                return entry
        return None

    def is_frozen(self, player_id: str) -> bool:
        """A player with a Sold entry anywhere is frozen."""
        return self.sold_entry(player_id) is not None

    def sold_player_ids(self) -> set:
        return {entry.player_id for entry in self._entries if entry.is_sold}

    def entries_for(self, player_id: str, round_number: Optional[int] = None) -> List[LedgerEntry]:
        """Entries for a player, optionally restricted to one round."""
        return [
            entry for entry in self._entries
            if entry.player_id == player_id
            and (round_number is None or entry.round == round_number)
        ]

    def has_decision(self, player_id: str, round_number: int) -> bool:
        return any(
            entry.player_id == player_id and entry.round == round_number
            for entry in self._entries
        )

    def latest_decision(self, player_id: str, round_number: int) -> Optional[LedgerEntry]:
        """Most recent entry for a player within a round."""
        for entry in reversed(self._entries):
            if entry.player_id == player_id and entry.round == round_number:
                return entry
        return None

    def next_attempt(self, player_id: str, round_number: int) -> int:
        return len(self.entries_for(player_id, round_number)) + 1

    def to_list(self) -> List[dict]:
        return [entry.to_dict() for entry in self._entries]

    @classmethod
    def from_list(cls, data: Iterable[dict]) -> 'Ledger':
        """
        Build a ledger from serialized entries.

        Raises:
            ValueError: If entries are malformed or sell a player twice
        """
        return cls().extend(LedgerEntry.from_dict(item) for item in data)

    def to_report(self) -> pd.DataFrame:
        """
        Render the ledger as a flat table in chronological order.

        Returns:
            DataFrame with columns: round, attempt, timestamp, playerId,
            category, team, amount, status
        """
        rows = [
            {
                'round': entry.round,
                'attempt': entry.attempt,
                'timestamp': entry.timestamp.isoformat(),
                'playerId': entry.player_id,
                'category': entry.category,
                'team': entry.team_name,
                'amount': entry.amount if entry.amount is not None else '',
                'status': entry.status.value
            }
            for entry in self._entries
        ]
        return pd.DataFrame(rows, columns=REPORT_COLUMNS)

    def export_to_csv(self, output_path: Path) -> None:
        """
        Export ledger to CSV for reporting.

        Args:
            output_path: Path for CSV output file

        The file carries a UTF-8 BOM so spreadsheets open it cleanly.
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        df = self.to_report()
        df.to_csv(output_path, index=False, encoding='utf-8-sig')

        logger.info(f"Exported {len(df)} ledger entries to {output_path}")

    def summary(self) -> dict:
        sold = sum(1 for entry in self._entries if entry.status == EntryStatus.SOLD)
        return {
            'entries': len(self._entries),
            'sold': sold,
            'unsold': len(self._entries) - sold,
        }
