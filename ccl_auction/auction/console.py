"""
Line-oriented operator console.

Commands:
    sell TEAM AMOUNT       Sell the player on the block (TEAM may contain spaces)
    unsold                 Mark the player on the block unsold
    next                   Move to the next undecided player
    undo                   Remove the most recent ledger entry
    round                  Start the next round
    stage PLAYER TEAM AMT  Stage a distribution assignment
    withdraw N             Withdraw staged assignment N (1-based)
    confirm                Confirm the staged distribution
    status                 Show the board
    export [PATH]          Write the ledger CSV
    quit                   Leave the console (the auction stays saved)
"""

import logging
from typing import Callable, Optional

from .errors import AuctionError, ValidationRejected
from .observer import ObserverView, render_text
from .session import AuctionSession

logger = logging.getLogger(__name__)

QUIT_COMMANDS = {'quit', 'exit', 'q'}


def _parse_amount(text: str) -> int:
    try:
        return int(text.replace(',', ''))
    except ValueError:
        raise ValueError(f"Amount must be a whole number, got '{text}'") from None


def _status(session: AuctionSession) -> str:
    text = render_text(ObserverView.from_state(session.state))
    if session.is_distribution_available():
        remaining = session.plan.remaining_players(session.state)
        eligible = session.plan.eligible_teams(session.state)
        text += (
            f"\n\nDistribution available: {len(remaining)} players, "
            f"eligible teams: {', '.join(t.name for t in eligible)}"
        )
        for index, assignment in enumerate(session.plan.assignments, start=1):
            text += f"\n  {index}. {assignment.player_id} -> {assignment.team_name} ({assignment.amount})"
    return text


def _sell(session: AuctionSession, args) -> str:
    if len(args) < 2:
        return "Usage: sell TEAM AMOUNT"
    entry = session.sell(' '.join(args[:-1]), _parse_amount(args[-1]))
    return f"SOLD {entry.player_id} to {entry.team_name} for {entry.amount}"


def _unsold(session: AuctionSession, args) -> str:
    entry = session.unsold()
    return f"UNSOLD {entry.player_id} (round {entry.round}, attempt {entry.attempt})"


def _next(session: AuctionSession, args) -> str:
    player = session.next_player()
    if player is None:
        return f"Round {session.state.round} exhausted. Type 'round' to continue."
    return f"On the block: {player.name} [{player.category}]"


def _undo(session: AuctionSession, args) -> str:
    entry = session.undo()
    return f"Undid {entry.status.value} entry for {entry.player_id}"


def _round(session: AuctionSession, args) -> str:
    state = session.next_round()
    if state.cursor.complete:
        return "Auction complete."
    return f"Round {state.round} started with {len(state.cursor.round_sequence)} players"


def _stage(session: AuctionSession, args) -> str:
    if len(args) < 3:
        return "Usage: stage PLAYER TEAM AMOUNT"
    assignment = session.stage(args[0], ' '.join(args[1:-1]), _parse_amount(args[-1]))
    return f"Staged {assignment.player_id} -> {assignment.team_name} ({assignment.amount})"


def _withdraw(session: AuctionSession, args) -> str:
    if len(args) != 1:
        return "Usage: withdraw N"
    session.withdraw(int(args[0]) - 1)
    return f"Withdrew assignment {args[0]}"


def _confirm(session: AuctionSession, args) -> str:
    count = session.confirm()
    return f"Distribution confirmed: {count} players assigned. Auction complete."


def _export(session: AuctionSession, args) -> str:
    path = session.export_ledger(args[0] if args else None)
    return f"Ledger exported to {path}"


COMMANDS = {
    'sell': _sell,
    'unsold': _unsold,
    'next': _next,
    'undo': _undo,
    'round': _round,
    'stage': _stage,
    'withdraw': _withdraw,
    'confirm': _confirm,
    'status': lambda session, args: _status(session),
    'export': _export,
}


def handle_command(session: AuctionSession, line: str) -> str:
    """
    Run one console command and describe the outcome.

    Rule violations and illegal transitions are reported as text so the
    operator can correct and retry.
    """
    parts = line.split()
    if not parts:
        return ''

    command, args = parts[0].lower(), parts[1:]
    handler = COMMANDS.get(command)
    if handler is None:
        return f"Unknown command '{command}'. Commands: {', '.join(sorted(COMMANDS))}, quit"

    try:
        return handler(session, args)
    except ValidationRejected as e:
        if e.suggested_amount is not None:
            return f"Rejected: {e} (try {e.suggested_amount})"
        return f"Rejected: {e}"
    except AuctionError as e:
        return f"Error: {e}"
    except ValueError as e:
        return f"Error: {e}"


def run_console(
    session: AuctionSession,
    read_line: Callable[[str], str] = input,
    write: Callable[[str], None] = print,
    prompt: Optional[str] = None
) -> None:
    """Read commands until quit or end of input."""
    prompt = prompt or f"[{session.auction_id}]> "
    write(_status(session))

    while True:
        try:
            line = read_line(prompt)
        except EOFError:
            break

        if line.strip().lower() in QUIT_COMMANDS:
            break

        output = handle_command(session, line)
        if output:
            write(output)

    logger.info(f"Console closed for auction {session.auction_id} at revision {session.state.revision}")
