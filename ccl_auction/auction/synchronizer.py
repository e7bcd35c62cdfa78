"""
Snapshot synchronizer.

Writes the full auction snapshot to every replica after each mutation and
rebuilds a state from the freshest readable replica on resume. It only
moves snapshots around; it never decides anything about the auction.

Fast replicas (local files, memory) are written on the caller's thread.
Replicas flagged ``background`` (the remote store) are written by a
BackgroundWriter so a slow or unreachable remote never holds up the
operator or the local copy.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .. import config
from .errors import MalformedSnapshot, StorageError, StorageReadEmpty, StorageReadFailed
from .snapshot import build_snapshot, restore_state, strip_finalized_attachments
from .state import AuctionState
from .stores import AttachmentStore, LocalSnapshotStore, RemoteSnapshotStore, SnapshotStore

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    IDLE = 'Idle'
    PUSHING = 'Pushing'


@dataclass
class SyncResult:
    """Outcome of writing one snapshot to every replica."""

    auction_id: str
    revision: int
    written: List[str] = field(default_factory=list)
    queued: List[str] = field(default_factory=list)   # Handed to a background writer
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            'auctionId': self.auction_id,
            'revision': self.revision,
            'written': list(self.written),
            'queued': list(self.queued),
            'failed': dict(self.failed)
        }


class BackgroundWriter:
    """
    Writes snapshots to one replica off the caller's thread.

    Holds at most one pending snapshot. Submitting while a write is in
    flight replaces whatever was pending, so intermediate revisions are
    skipped and only the newest one reaches the replica.
    """

    def __init__(self, replica: SnapshotStore):
        self.replica = replica
        self.last_written_revision: Optional[int] = None
        self.last_error: Optional[str] = None
        self._pending: Optional[Tuple[str, int, dict]] = None
        self._busy = False
        self._closed = False
        self._condition = threading.Condition()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_busy(self) -> bool:
        with self._condition:
            return self._busy or self._pending is not None

    def submit(self, auction_id: str, revision: int, snapshot: dict) -> None:
        with self._condition:
            if self._pending is not None:
                logger.debug(
                    f"{self.replica.name}: revision {revision} supersedes "
                    f"pending revision {self._pending[1]}"
                )
            self._pending = (auction_id, revision, snapshot)
            self._closed = False
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(
                    target=self._run,
                    name=f"snapshot-writer-{self.replica.name}",
                    daemon=True
                )
                self._thread.start()
            self._condition.notify_all()

    def _run(self) -> None:
        while True:
            with self._condition:
                while self._pending is None and not self._closed:
                    self._condition.wait()
                if self._pending is None:
                    return
                auction_id, revision, snapshot = self._pending
                self._pending = None
                self._busy = True

            error = None
            try:
                self.replica.put(auction_id, snapshot)
            except StorageError as e:
                logger.warning(f"Snapshot write to {self.replica.name} failed: {e}")
                error = str(e)
            finally:
                with self._condition:
                    self._busy = False
                    if error is None:
                        self.last_written_revision = revision
                    self.last_error = error
                    self._condition.notify_all()

            if error is None:
                logger.debug(f"Pushed {auction_id} rev {revision} to {self.replica.name}")

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until nothing is pending or in flight.

        Returns:
            True if the writer went idle within the timeout
        """
        with self._condition:
            return self._condition.wait_for(
                lambda: self._pending is None and not self._busy,
                timeout
            )

    def close(self, timeout: Optional[float] = None) -> bool:
        """Flush, then let the worker thread exit."""
        flushed = self.flush(timeout)
        with self._condition:
            self._closed = True
            self._condition.notify_all()
        if not flushed:
            logger.warning(f"Gave up waiting for queued writes to {self.replica.name}")
        return flushed


class SnapshotSynchronizer:
    """
    Best-effort fan-out of snapshots to replicas.

    Replicas are written independently: a failure on one is logged and
    never prevents writing the others. There is no queue. A push requested
    while another is in flight replaces any earlier pending push, and only
    the most recent state is written once the current push finishes. The
    same holds per background replica, whose writer keeps only the newest
    snapshot.
    """

    def __init__(self, replicas: Sequence[SnapshotStore]):
        """
        Args:
            replicas: Stores in read-preference order (remote first)
        """
        if not replicas:
            raise ValueError("At least one replica is required")
        self.replicas = list(replicas)
        self.writers: Dict[str, BackgroundWriter] = {
            replica.name: BackgroundWriter(replica)
            for replica in self.replicas if replica.background
        }
        self.last_result: Optional[SyncResult] = None
        self._pushing = False
        self._pending: Optional[AuctionState] = None
        self._lock = threading.Lock()

    @property
    def status(self) -> SyncStatus:
        with self._lock:
            pushing = self._pushing
        if pushing or any(writer.is_busy for writer in self.writers.values()):
            return SyncStatus.PUSHING
        return SyncStatus.IDLE

    def push(self, state: AuctionState) -> Optional[SyncResult]:
        """
        Write the state's snapshot to every replica.

        Inline replicas are written before this returns; background replicas
        only have the snapshot queued.

        Returns:
            SyncResult for the last snapshot written by this call, or None
            if the push was handed to a push already in flight
        """
        with self._lock:
            if self._pushing:
                self._pending = state
                logger.debug(f"Push of revision {state.revision} superseded pending push")
                return None
            self._pushing = True

        result = None
        try:
            while True:
                result = self._write_all(state)
                with self._lock:
                    if self._pending is None:
                        break
                    state, self._pending = self._pending, None
        finally:
            with self._lock:
                self._pushing = False

        self.last_result = result
        return result

    def _write_all(self, state: AuctionState) -> SyncResult:
        snapshot = build_snapshot(state)
        stripped = None
        result = SyncResult(auction_id=state.auction_id, revision=state.revision)

        for replica in self.replicas:
            payload = snapshot
            if replica.strip_finalized_attachments:
                if stripped is None:
                    stripped = strip_finalized_attachments(snapshot)
                payload = stripped

            writer = self.writers.get(replica.name)
            if writer is not None:
                writer.submit(state.auction_id, state.revision, payload)
                result.queued.append(replica.name)
                continue

            try:
                replica.put(state.auction_id, payload)
                result.written.append(replica.name)
            except StorageError as e:
                logger.warning(f"Snapshot write to {replica.name} failed: {e}")
                result.failed[replica.name] = str(e)

        if result.written:
            logger.debug(
                f"Pushed {state.auction_id} rev {state.revision} to {', '.join(result.written)}"
            )
        elif not result.queued:
            logger.error(f"Snapshot {state.auction_id} rev {state.revision} was not saved anywhere")
        return result

    def failures(self) -> Dict[str, str]:
        """Replicas whose most recent write failed, with the error."""
        failed = dict(self.last_result.failed) if self.last_result else {}
        for name, writer in self.writers.items():
            if writer.last_error:
                failed[name] = writer.last_error
        return failed

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for every background writer to go idle."""
        return all(writer.flush(timeout) for writer in self.writers.values())

    def close(self, timeout: Optional[float] = config.REMOTE_FLUSH_TIMEOUT) -> bool:
        """Flush queued writes and stop the background writers."""
        return all([writer.close(timeout) for writer in self.writers.values()])

    def fetch_latest(self, auction_id: str) -> AuctionState:
        """
        Rebuild the state from the freshest usable snapshot.

        Every replica is read. The snapshot with the highest revision wins;
        on a tie the replica listed first wins. An unreachable, empty or
        malformed replica is skipped, so a remote that fell behind while it
        was down never hides newer local writes.

        Raises:
            StorageReadEmpty: If no replica holds a snapshot for the id
            MalformedSnapshot: If every snapshot found was malformed
        """
        malformed = []
        best: Optional[AuctionState] = None
        best_source = None
        revisions = {}

        for replica in self.replicas:
            try:
                data = replica.get(auction_id)
            except StorageReadFailed as e:
                logger.warning(f"{replica.name} unreachable for {auction_id}: {e}")
                continue
            except MalformedSnapshot as e:
                logger.warning(f"{replica.name} snapshot for {auction_id} is malformed: {e}")
                malformed.append(replica.name)
                continue

            if data is None:
                logger.info(f"No snapshot for {auction_id} in {replica.name}")
                continue

            try:
                state = restore_state(self.hydrate(auction_id, data))
            except MalformedSnapshot as e:
                logger.warning(f"{replica.name} snapshot for {auction_id} is malformed: {e}")
                malformed.append(replica.name)
                continue

            revisions[replica.name] = state.revision
            if best is None or state.revision > best.revision:
                best, best_source = state, replica.name

        if best is not None:
            behind = [name for name, revision in revisions.items() if revision < best.revision]
            if behind:
                logger.warning(
                    f"Replicas behind revision {best.revision} for {auction_id}: "
                    f"{', '.join(f'{name} (rev {revisions[name]})' for name in behind)}"
                )
            logger.info(
                f"Loaded {auction_id} rev {best.revision} from {best_source} "
                f"({len(best.ledger)} ledger entries)"
            )
            return best

        if malformed:
            raise MalformedSnapshot(
                f"Snapshot for {auction_id} is malformed in {', '.join(malformed)}"
            )
        raise StorageReadEmpty(f"No snapshot found for auction {auction_id}")

    def hydrate(self, auction_id: str, data: dict) -> dict:
        """Let every replica fill in attachments it holds."""
        for replica in self.replicas:
            data = replica.hydrate(auction_id, data)
        return data


def build_synchronizer(
    remote_url: Optional[str] = config.REMOTE_STORE_URL,
    snapshot_dir: Path = Path(config.SNAPSHOT_DIR),
    attachment_dir: Path = Path(config.ATTACHMENT_DIR)
) -> SnapshotSynchronizer:
    """
    Standard replica set: the remote store (when configured) followed by
    the local fallback store.
    """
    replicas: List[SnapshotStore] = []
    if remote_url:
        replicas.append(RemoteSnapshotStore(remote_url))
    else:
        logger.warning("No remote store configured; snapshots are saved locally only")
    replicas.append(LocalSnapshotStore(snapshot_dir, AttachmentStore(attachment_dir)))
    return SnapshotSynchronizer(replicas)
