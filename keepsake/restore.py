"""Materializing a snapshot back onto disk.

Whole-snapshot restore is destructive, so by default it first saves the
current state as a backup snapshot and then skips any file whose working copy
differs from the snapshot. `force` turns off both.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from keepsake.capture import capture_files
from keepsake.errors import FileNotFoundInSnapshot, KeepsakeError
from keepsake.storage.objects import ObjectStore

logger = logging.getLogger(__name__)

BACKUP_TRIGGER = "auto-backup"


@dataclass
class RestoreResult:
    snapshot: object
    restored: list = field(default_factory=list)
    skipped: list = field(default_factory=list)
    failed: list = field(default_factory=list)
    planned: list = field(default_factory=list)
    backup: object = None
    dry_run: bool = False

    @property
    def restored_count(self):
        return len(self.restored)

    @property
    def skipped_count(self):
        return len(self.skipped)


def _relative_path(project_root, file_path):
    """Normalize a user-supplied path to the manifest's forward-slash form."""
    path = Path(file_path)
    if path.is_absolute():
        try:
            path = path.resolve().relative_to(Path(project_root).resolve())
        except ValueError:
            pass
    return path.as_posix()


def _default_mode():
    # os.umask can only be read by setting it
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _apply_mode(dest, mode):
    """Set the recorded mode, or the umask default for entries without one."""
    try:
        os.chmod(dest, int(mode, 8) if mode else _default_mode())
    except (OSError, ValueError) as e:
        logger.warning("Failed to set mode %s on %s: %s", mode, dest, e)


def _write_entry(store, project_root, entry):
    dest = Path(project_root) / entry.path
    store.objects.restore_file(entry.hash, dest)
    _apply_mode(dest, entry.mode)


def _has_local_changes(project_root, entry):
    dest = Path(project_root) / entry.path
    if not dest.exists():
        return False
    return ObjectStore.compute_hash(dest.read_bytes()) != entry.hash


def create_backup_snapshot(store, project_root, target, config=None, index_path=None):
    """Save the current working directory before a restore. None if nothing to back up."""
    files = capture_files(store, project_root, config, index_path)
    if not files:
        return None
    backup = store.create(
        files,
        message=f"Backup before restore to {target.short_id}",
        trigger=BACKUP_TRIGGER,
    )
    logger.info("created backup snapshot %s", backup.short_id)
    return backup


def restore_file(store, project_root, snapshot, file_path, dry_run=False):
    """Restore a single path from a snapshot. No backup is taken."""
    rel = _relative_path(project_root, file_path)
    entry = snapshot.find_file(rel)
    if entry is None:
        raise FileNotFoundInSnapshot(rel, snapshot.id)

    result = RestoreResult(snapshot=snapshot, dry_run=dry_run)
    if dry_run:
        result.planned.append(entry)
        return result
    _write_entry(store, project_root, entry)
    result.restored.append(entry)
    return result


def restore_snapshot(store, project_root, snapshot_id, file=None, force=False, dry_run=False,
                     config=None, index_path=None):
    """Restore a snapshot (or one file from it) into project_root.

    Raises SnapshotNotFound / AmbiguousSnapshotId for a bad id and
    FileNotFoundInSnapshot for a single-file restore of an unknown path. During
    a whole-snapshot restore a failure on one entry is logged and recorded in
    `failed`; the remaining entries are still restored.
    """
    snapshot = store.load(snapshot_id)

    if file is not None:
        return restore_file(store, project_root, snapshot, file, dry_run)

    result = RestoreResult(snapshot=snapshot, dry_run=dry_run)
    if dry_run:
        result.planned.extend(snapshot.files)
        return result

    if not force:
        result.backup = create_backup_snapshot(store, project_root, snapshot, config, index_path)

    for entry in snapshot.files:
        try:
            if not force and _has_local_changes(project_root, entry):
                logger.info("skipping %s: modified locally", entry.path)
                result.skipped.append(entry)
                continue
            _write_entry(store, project_root, entry)
        except (KeepsakeError, OSError) as e:
            logger.warning("Failed to restore %s: %s", entry.path, e)
            result.failed.append((entry, e))
            continue
        result.restored.append(entry)

    return result
