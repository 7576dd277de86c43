from keepsake.storage.location import StorageLocation
from keepsake.storage.models import FileEntry, Snapshot
from keepsake.storage.objects import ObjectStore
from keepsake.storage.snapshots import SnapshotStore


def open_snapshot_store(location, config=None):
    """Create a snapshot store for a storage location.

    Config keys:
        compression_level: zstd level for new blobs (default 3)
    """
    config = config or {}
    return SnapshotStore(location.root, config.get("compression_level", 3))


__all__ = [
    "FileEntry",
    "ObjectStore",
    "Snapshot",
    "SnapshotStore",
    "StorageLocation",
    "open_snapshot_store",
]
