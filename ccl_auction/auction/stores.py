"""
Snapshot replicas.

Every persistence tier implements the same small interface so the
synchronizer can treat them uniformly:

- RemoteSnapshotStore: Firebase Realtime Database style REST document
- LocalSnapshotStore: JSON files on this device, with inline images kept
  in a separate AttachmentStore
- MemorySnapshotStore: in-process replica (observers in the same process,
  tests)
"""

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional

import requests

from .. import config
from .errors import MalformedSnapshot, StorageReadFailed, StorageWriteFailed
from .snapshot import attach, extract_attachments

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[Optional[dict]], None]


def _write_json_atomic(path: Path, data: dict) -> None:
    """Write to a temp file first, then rename over the target."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_file = path.with_suffix('.tmp')
    with open(temp_file, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)
    temp_file.replace(path)


def _read_json(path: Path) -> Optional[dict]:
    """
    Raises:
        StorageReadFailed: If the file cannot be read
        MalformedSnapshot: If the file is not valid JSON
    """
    if not path.exists():
        return None
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise MalformedSnapshot(f"Corrupt JSON in {path}: {e}") from e
    except OSError as e:
        raise StorageReadFailed(f"Failed to read {path}: {e}") from e


class SnapshotStore:
    """Interface shared by every snapshot replica."""

    name = 'store'

    # Whether finalized players' inline photos are dropped before writing
    strip_finalized_attachments = False

    # Whether writes are handed to a background worker (slow or remote tiers)
    background = False

    def put(self, auction_id: str, snapshot: dict) -> None:
        """
        Replace the whole document for an auction.

        Raises:
            StorageWriteFailed: If the write did not complete
        """
        raise NotImplementedError

    def get(self, auction_id: str) -> Optional[dict]:
        """
        Read the whole document for an auction.

        Returns:
            Snapshot dict, or None if nothing is stored under the id

        Raises:
            StorageReadFailed: If the replica cannot be reached
            MalformedSnapshot: If the stored data cannot be decoded
        """
        raise NotImplementedError

    def hydrate(self, auction_id: str, snapshot: dict) -> dict:
        """Fill in attachments this replica holds for another replica's copy."""
        return snapshot

    def subscribe(self, auction_id: str, callback: SnapshotCallback) -> Callable[[], None]:
        """
        Invoke ``callback`` with each new version of the document.

        Returns:
            Function that cancels the subscription
        """
        raise NotImplementedError(f"{self.name} store does not support subscriptions")


class MemorySnapshotStore(SnapshotStore):
    """
    In-process replica.

    Subscribers are called synchronously from ``put``. Setting
    ``available`` to False simulates an unreachable replica.
    """

    strip_finalized_attachments = False

    def __init__(
        self,
        name: str = 'memory',
        strip_finalized_attachments: bool = False,
        background: bool = False
    ):
        self.name = name
        self.strip_finalized_attachments = strip_finalized_attachments
        self.background = background
        self.available = True
        self.documents: Dict[str, dict] = {}
        self.write_count = 0
        self._subscribers: Dict[str, List[SnapshotCallback]] = {}
        self._lock = threading.Lock()

    def put(self, auction_id: str, snapshot: dict) -> None:
        if not self.available:
            raise StorageWriteFailed(f"{self.name} store is unavailable")

        with self._lock:
            self.documents[auction_id] = copy.deepcopy(snapshot)
            self.write_count += 1
            callbacks = list(self._subscribers.get(auction_id, []))

        for callback in callbacks:
            callback(copy.deepcopy(snapshot))

    def get(self, auction_id: str) -> Optional[dict]:
        if not self.available:
            raise StorageReadFailed(f"{self.name} store is unavailable")
        with self._lock:
            document = self.documents.get(auction_id)
        return copy.deepcopy(document) if document is not None else None

    def subscribe(self, auction_id: str, callback: SnapshotCallback) -> Callable[[], None]:
        with self._lock:
            self._subscribers.setdefault(auction_id, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(auction_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe


class RemoteSnapshotStore(SnapshotStore):
    """
    Replica backed by a Firebase Realtime Database style REST endpoint.

    Each auction is one JSON document at ``{base_url}/{collection}/{id}.json``.
    The remote drops null values and empty arrays and may return arrays as
    objects keyed by index; the snapshot decoder tolerates both.
    """

    name = 'remote'
    strip_finalized_attachments = True
    background = True

    def __init__(
        self,
        base_url: str,
        collection: str = config.REMOTE_COLLECTION,
        timeout: float = config.REMOTE_TIMEOUT,
        poll_interval: float = config.REMOTE_POLL_INTERVAL,
        auth_token: Optional[str] = None
    ):
        """
        Initialize remote store.

        Args:
            base_url: Database root URL
            collection: Path segment holding auction documents
            timeout: Request timeout in seconds
            poll_interval: Seconds between polls for subscriptions
            auth_token: Optional database auth token (sent as ``auth`` param)
        """
        self.base_url = base_url.rstrip('/')
        self.collection = collection
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.auth_token = auth_token

        # Session for connection pooling
        self.session = requests.Session()

    def _document_url(self, auction_id: str) -> str:
        return f"{self.base_url}/{self.collection}/{auction_id}.json"

    def _params(self) -> Dict[str, str]:
        return {'auth': self.auth_token} if self.auth_token else {}

    def put(self, auction_id: str, snapshot: dict) -> None:
        url = self._document_url(auction_id)
        try:
            logger.debug(f"PUT {url}")
            response = self.session.put(
                url,
                json=snapshot,
                params=self._params(),
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise StorageWriteFailed(f"Remote write failed for {auction_id}: {e}") from e

    def get(self, auction_id: str) -> Optional[dict]:
        url = self._document_url(auction_id)
        try:
            logger.debug(f"GET {url}")
            response = self.session.get(url, params=self._params(), timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise StorageReadFailed(f"Remote read failed for {auction_id}: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedSnapshot(f"Remote returned invalid JSON for {auction_id}") from e

        if data is None:
            return None
        if not isinstance(data, dict):
            raise MalformedSnapshot(f"Remote document for {auction_id} is not an object")
        return data

    def subscribe(self, auction_id: str, callback: SnapshotCallback) -> Callable[[], None]:
        """
        Poll the document and call back whenever it changes.

        Polling runs in a daemon thread. Read errors are logged and polling
        continues on the next interval.
        """
        stop_event = threading.Event()

        def poll() -> None:
            last_seen = None
            poll_count = 0
            while not stop_event.is_set():
                poll_count += 1
                try:
                    data = self.get(auction_id)
                    if data is not None and data != last_seen:
                        last_seen = data
                        callback(data)
                except (StorageReadFailed, MalformedSnapshot) as e:
                    logger.warning(f"Poll #{poll_count} for {auction_id} failed: {e}")
                stop_event.wait(self.poll_interval)

        thread = threading.Thread(
            target=poll,
            name=f"remote-poll-{auction_id}",
            daemon=True
        )
        thread.start()
        logger.info(f"Polling {self._document_url(auction_id)} every {self.poll_interval}s")

        def unsubscribe() -> None:
            stop_event.set()

        return unsubscribe

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()


class AttachmentStore:
    """Inline images for an auction, one JSON file per auction id."""

    def __init__(self, attachment_dir: Path):
        self.attachment_dir = Path(attachment_dir)

    def _path(self, auction_id: str) -> Path:
        return self.attachment_dir / f"{auction_id}.json"

    def load(self, auction_id: str) -> dict:
        """
        Returns:
            Dict with ``players`` (id -> photo) and ``teams`` (name -> logo)
        """
        try:
            data = _read_json(self._path(auction_id))
        except MalformedSnapshot as e:
            logger.warning(f"Ignoring unreadable attachments for {auction_id}: {e}")
            data = None
        data = data or {}
        return {
            'players': dict(data.get('players') or {}),
            'teams': dict(data.get('teams') or {})
        }

    def merge(self, auction_id: str, attachments: dict) -> None:
        """Add attachments, keeping existing ones not present in the update."""
        if not attachments.get('players') and not attachments.get('teams'):
            return
        current = self.load(auction_id)
        current['players'].update(attachments.get('players', {}))
        current['teams'].update(attachments.get('teams', {}))
        _write_json_atomic(self._path(auction_id), current)
        logger.debug(
            f"Stored attachments for {auction_id}: "
            f"{len(current['players'])} photos, {len(current['teams'])} logos"
        )


class LocalSnapshotStore(SnapshotStore):
    """
    Replica on this device's disk.

    Inline photos and logos are moved into an AttachmentStore on write so
    the snapshot files stay small, and re-attached on read.
    """

    name = 'local'
    strip_finalized_attachments = False

    def __init__(
        self,
        snapshot_dir: Path = Path(config.SNAPSHOT_DIR),
        attachment_store: Optional[AttachmentStore] = None
    ):
        self.snapshot_dir = Path(snapshot_dir)
        self.attachments = attachment_store or AttachmentStore(Path(config.ATTACHMENT_DIR))

    def _path(self, auction_id: str) -> Path:
        return self.snapshot_dir / f"{auction_id}.json"

    def put(self, auction_id: str, snapshot: dict) -> None:
        light, attachments = extract_attachments(snapshot)
        try:
            self.attachments.merge(auction_id, attachments)
            _write_json_atomic(self._path(auction_id), light)
        except (OSError, TypeError, ValueError) as e:
            raise StorageWriteFailed(f"Local write failed for {auction_id}: {e}") from e
        logger.debug(f"Saved local snapshot: {self._path(auction_id)}")

    def get(self, auction_id: str) -> Optional[dict]:
        data = _read_json(self._path(auction_id))
        if data is None:
            return None
        if not isinstance(data, dict):
            raise MalformedSnapshot(f"Local snapshot for {auction_id} is not an object")
        return self.hydrate(auction_id, data)

    def hydrate(self, auction_id: str, snapshot: dict) -> dict:
        return attach(snapshot, self.attachments.load(auction_id))

    def list_auctions(self) -> List[str]:
        """Auction ids with a local snapshot, most recently written first."""
        if not self.snapshot_dir.exists():
            return []
        files = sorted(
            self.snapshot_dir.glob('*.json'),
            key=lambda p: p.stat().st_mtime,
            reverse=True
        )
        return [path.stem for path in files]
