"""Snapshot metadata persistence.

Each snapshot is one pretty-printed JSON file:

    snapshots/<YYYYMMDD_HHMMSS>_<id[:12]>.json

There is no index. Every query scans and parses the directory, which keeps the
directory itself the single source of truth. The store assumes a single writer
per storage root; files are written with a rename so readers never see a
partial snapshot.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from keepsake.errors import AmbiguousSnapshotId, SnapshotNotFound
from keepsake.storage.models import Snapshot
from keepsake.storage.objects import DEFAULT_COMPRESSION_LEVEL, ObjectStore, atomic_write

logger = logging.getLogger(__name__)

FILENAME_TIME_FORMAT = "%Y%m%d_%H%M%S"
ID_PREFIX_LEN = 12


class SnapshotStore:
    """CRUD over immutable snapshot records, plus retention."""

    def __init__(self, root, compression_level=DEFAULT_COMPRESSION_LEVEL):
        self.root = Path(root)
        self.snapshots_dir = self.root / "snapshots"
        self.objects = ObjectStore(self.root / "objects", compression_level)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, snapshot):
        """Assign the content-derived id and persist. Returns the id."""
        snapshot.id = Snapshot.generate_id(snapshot.timestamp, snapshot.message, snapshot.files)
        path = self.snapshots_dir / self._filename(snapshot)
        payload = json.dumps(snapshot.to_dict(), indent=2) + "\n"
        atomic_write(path, payload.encode())
        logger.debug("saved snapshot %s to %s", snapshot.id, path.name)
        return snapshot.id

    def create(self, files, message=None, trigger=None, git_commit=None, timestamp=None):
        """Build a snapshot stamped now (UTC) and save it."""
        snapshot = Snapshot(
            timestamp=timestamp or datetime.now(timezone.utc),
            files=list(files),
            message=message,
            trigger=trigger,
            git_commit=git_commit,
        )
        self.save(snapshot)
        return snapshot

    def delete(self, id_or_prefix):
        """Remove a snapshot's file. Its blobs stay until garbage collection."""
        snapshot = self.load(id_or_prefix)
        for path in self._paths_for(snapshot):
            path.unlink(missing_ok=True)
        logger.debug("deleted snapshot %s", snapshot.id)
        return snapshot

    def cleanup(self, max_count, max_age_days, now=None):
        """Prune by count and age. Returns how many snapshots were removed."""
        now = now or datetime.now(timezone.utc)
        removed = 0
        for i, snapshot in enumerate(self.list()):
            age_days = (now - snapshot.timestamp).days
            if i < max_count and age_days <= max_age_days:
                continue
            try:
                for path in self._paths_for(snapshot):
                    path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Failed to remove snapshot %s: %s", snapshot.short_id, e)
                continue
            removed += 1
        if removed:
            logger.info("cleaned up %d old snapshot(s)", removed)
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self, id_or_prefix):
        """Resolve a full id or id prefix.

        An exact id wins outright. Otherwise the prefix must match exactly one
        snapshot; several matches raise AmbiguousSnapshotId.
        """
        if not id_or_prefix:
            raise SnapshotNotFound(id_or_prefix)
        matches = []
        for snapshot in self._scan():
            if snapshot.id == id_or_prefix:
                return snapshot
            if snapshot.id.startswith(id_or_prefix):
                matches.append(snapshot)

        if not matches:
            raise SnapshotNotFound(id_or_prefix)
        ids = {s.id for s in matches}
        if len(ids) > 1:
            matches.sort(key=lambda s: s.timestamp, reverse=True)
            raise AmbiguousSnapshotId(id_or_prefix, [s.id for s in matches])
        return matches[0]

    def list(self, limit=None):
        """All snapshots, newest first."""
        snapshots = sorted(self._scan(), key=lambda s: s.timestamp, reverse=True)
        if limit is not None:
            snapshots = snapshots[:limit]
        return snapshots

    def latest(self):
        snapshots = self.list(limit=1)
        return snapshots[0] if snapshots else None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _filename(self, snapshot):
        stamp = snapshot.timestamp.astimezone(timezone.utc).strftime(FILENAME_TIME_FORMAT)
        return f"{stamp}_{snapshot.id[:ID_PREFIX_LEN]}.json"

    def _snapshot_files(self):
        if not self.snapshots_dir.exists():
            return []
        return sorted(p for p in self.snapshots_dir.glob("*.json") if p.is_file())

    def _read(self, path):
        return Snapshot.from_dict(json.loads(path.read_text()))

    def _scan(self):
        """Parse every snapshot file, skipping ones that don't parse."""
        snapshots = []
        for path in self._snapshot_files():
            try:
                snapshots.append(self._read(path))
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning("Skipping unreadable snapshot file %s: %s", path.name, e)
        return snapshots

    def _paths_for(self, snapshot):
        """Files on disk that hold this snapshot (normally exactly one)."""
        suffix = f"_{snapshot.id[:ID_PREFIX_LEN]}.json"
        paths = []
        for path in self._snapshot_files():
            if not path.name.endswith(suffix):
                continue
            try:
                if self._read(path).id == snapshot.id:
                    paths.append(path)
            except (OSError, ValueError, KeyError, TypeError):
                continue
        return paths
