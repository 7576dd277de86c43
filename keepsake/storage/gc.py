"""Mark-and-sweep collection of blobs no surviving snapshot references.

Pruning snapshots never deletes blobs on its own; this is the only path that
reclaims object storage.
"""

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class GcStats:
    deleted_objects: int = 0
    deleted_bytes: int = 0
    candidates: list = field(default_factory=list)
    referenced: int = 0
    total_objects: int = 0


def referenced_hashes(store):
    refs = set()
    for snapshot in store.list():
        refs.update(f.hash for f in snapshot.files)
    return refs


def find_unreferenced(store):
    """Stored blob hashes that no snapshot points at."""
    refs = referenced_hashes(store)
    return [h for h in store.objects.list_hashes() if h not in refs]


def collect_garbage(store, dry_run=False):
    """Delete unreferenced blobs. With dry_run, only report candidates."""
    refs = referenced_hashes(store)
    all_objects = store.objects.list_hashes()
    stats = GcStats(
        candidates=[h for h in all_objects if h not in refs],
        referenced=len(refs),
        total_objects=len(all_objects),
    )
    if dry_run:
        return stats

    for object_hash in stats.candidates:
        object_path = store.objects.path_for(object_hash)
        try:
            size = object_path.stat().st_size
            object_path.unlink()
        except FileNotFoundError:
            continue
        stats.deleted_objects += 1
        stats.deleted_bytes += size
        logger.debug("deleted object %s", object_hash)

        prefix_dir = object_path.parent
        if not any(prefix_dir.iterdir()):
            prefix_dir.rmdir()

    logger.info("gc removed %d object(s), %d bytes", stats.deleted_objects, stats.deleted_bytes)
    return stats


def maybe_auto_gc(store, threshold):
    """Collect only once at least `threshold` blobs are unreferenced."""
    if len(find_unreferenced(store)) < max(threshold, 1):
        return None
    return collect_garbage(store)


def format_size(num_bytes):
    kb = num_bytes / 1024
    if kb < 1024:
        return f"{kb:.2f} KB"
    return f"{kb / 1024:.2f} MB"
