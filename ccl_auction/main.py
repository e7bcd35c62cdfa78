"""
Main CLI entry point for the live team auction.
"""

import argparse
import logging
import os
import sys
import time
from pathlib import Path

from . import config
from .auction.errors import AuctionError
from .auction.models import AuctionConfig
from .auction.observer import ObserverFeed, render_text
from .auction.session import AuctionSession
from .auction.stores import AttachmentStore, LocalSnapshotStore, MemorySnapshotStore, RemoteSnapshotStore
from .auction.synchronizer import build_synchronizer
from .auction.console import run_console
from .loaders import load_players, load_teams


def setup_logging(verbose: bool = False):
    """
    Configure logging for the application.

    Args:
        verbose: Enable verbose (DEBUG) logging
    """
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL)
    logging.basicConfig(
        level=level,
        format=config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='Crash-resilient live team auction',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start a new auction and open the operator console
  python -m ccl_auction.main start --players players.csv --teams teams.csv

  # Resume after a crash, on this or another device
  python -m ccl_auction.main resume K7PM2Q

  # Follow an auction on the audience screen
  python -m ccl_auction.main watch K7PM2Q

  # Export the ledger
  python -m ccl_auction.main export K7PM2Q --output ledger.csv

  # Serve the HTTP API
  python -m ccl_auction.main serve --port 8000
        """
    )

    parser.add_argument(
        '--remote-url',
        type=str,
        default=os.getenv('CCL_AUCTION_REMOTE_URL', config.REMOTE_STORE_URL),
        help='Remote store root URL (or set CCL_AUCTION_REMOTE_URL)'
    )
    parser.add_argument(
        '--data-dir',
        type=str,
        default=None,
        help='Directory for local snapshots and attachments (default: data/)'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    start = subparsers.add_parser('start', help='Create a new auction')
    start.add_argument('--players', required=True, help='Players CSV file')
    start.add_argument('--teams', required=True, help='Teams CSV file')
    start.add_argument('--auction-id', default=None, help='Explicit auction id')
    start.add_argument('--seed', type=int, default=None, help='Seed for the player order')
    start.add_argument('--no-shuffle', action='store_true', help='Keep the CSV player order')
    start.add_argument('--min-players', type=int, default=config.MIN_PLAYERS_PER_TEAM)
    start.add_argument('--max-players', type=int, default=config.MAX_PLAYERS_PER_TEAM)
    start.add_argument('--cap-percent', type=float, default=config.CAP_BUDGET_PERCENT)
    start.add_argument('--capped-category', default=config.CAPPED_CATEGORY)
    start.add_argument('--bid-increment', type=int, default=config.BID_INCREMENT)

    resume = subparsers.add_parser('resume', help='Resume an auction from storage')
    resume.add_argument('auction_id', help='Auction id')

    export = subparsers.add_parser('export', help='Export the ledger as CSV')
    export.add_argument('auction_id', help='Auction id')
    export.add_argument('--output', default=None, help='Output path')

    watch = subparsers.add_parser('watch', help='Follow an auction as an observer')
    watch.add_argument('auction_id', help='Auction id')
    watch.add_argument(
        '--poll-interval',
        type=float,
        default=config.REMOTE_POLL_INTERVAL,
        help=f'Seconds between polls (default: {config.REMOTE_POLL_INTERVAL})'
    )

    serve = subparsers.add_parser('serve', help='Run the HTTP API')
    serve.add_argument('--host', default=config.API_HOST)
    serve.add_argument('--port', type=int, default=config.API_PORT)

    return parser.parse_args(argv)


def _data_paths(args):
    if args.data_dir:
        root = Path(args.data_dir)
        return root / 'auctions', root / 'attachments'
    return Path(config.SNAPSHOT_DIR), Path(config.ATTACHMENT_DIR)


def _synchronizer(args):
    snapshot_dir, attachment_dir = _data_paths(args)
    return build_synchronizer(args.remote_url, snapshot_dir, attachment_dir)


def run_start(args):
    """Create an auction and hand it to the operator console."""
    logger = logging.getLogger(__name__)

    auction_config = AuctionConfig(
        min_players_per_team=args.min_players,
        max_players_per_team=args.max_players,
        cap_budget_percent=args.cap_percent,
        capped_category=args.capped_category,
        bid_increment=args.bid_increment
    )
    players = load_players(args.players)
    teams = load_teams(args.teams)

    session = AuctionSession.create(
        players,
        teams,
        _synchronizer(args),
        auction_config=auction_config,
        auction_id=args.auction_id,
        shuffle=not args.no_shuffle,
        seed=args.seed
    )

    logger.info("=" * 60)
    logger.info(f"AUCTION {session.auction_id} CREATED")
    logger.info("=" * 60)
    logger.info(f"Players: {len(players)}, teams: {len(teams)}")
    logger.info(f"Resume later with: python -m ccl_auction.main resume {session.auction_id}")

    _operate(session)


def _operate(session):
    """Run the console, then wait for queued remote writes before exiting."""
    try:
        run_console(session)
    finally:
        if not session.synchronizer.close():
            logging.getLogger(__name__).warning(
                f"Remote copy of {session.auction_id} may be behind; the local snapshot is current"
            )


def run_resume(args):
    session = AuctionSession.resume(args.auction_id, _synchronizer(args))
    _operate(session)


def run_export(args):
    logger = logging.getLogger(__name__)
    synchronizer = _synchronizer(args)
    state = synchronizer.fetch_latest(args.auction_id)

    output_path = Path(args.output or Path(config.EXPORT_DIR) / f"ledger_{args.auction_id}.csv")
    state.ledger.export_to_csv(output_path)
    logger.info(f"Ledger summary: {state.ledger.summary()}")


def run_watch(args):
    """Print the board whenever a newer revision arrives."""
    logger = logging.getLogger(__name__)
    snapshot_dir, attachment_dir = _data_paths(args)
    local_store = LocalSnapshotStore(snapshot_dir, AttachmentStore(attachment_dir))

    if args.remote_url:
        store = RemoteSnapshotStore(args.remote_url, poll_interval=args.poll_interval)
    else:
        logger.warning("No remote store configured; showing the local snapshot only")
        store = MemorySnapshotStore(name='offline')

    feed = ObserverFeed(
        store,
        args.auction_id,
        render=lambda view: print('\n' + render_text(view), flush=True),
        local_store=local_store
    )
    feed.start()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Observer stopped by user")
    finally:
        feed.stop()


def run_serve(args):
    import uvicorn
    from .auction.api_server import app, configure

    configure(_synchronizer(args))
    uvicorn.run(app, host=args.host, port=args.port)


COMMANDS = {
    'start': run_start,
    'resume': run_resume,
    'export': run_export,
    'watch': run_watch,
    'serve': run_serve,
}


def main(argv=None):
    """Main execution function with command branching."""
    args = parse_arguments(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        COMMANDS[args.command](args)
    except KeyboardInterrupt:
        logger.info("\nInterrupted by user")
    except (AuctionError, ValueError, FileNotFoundError) as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
