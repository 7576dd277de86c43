"""Turning a project directory into a snapshot."""

import logging
import os
import stat
import subprocess
from pathlib import Path

from keepsake.ignore import get_ignore_spec, walk_files
from keepsake.storage.gc import maybe_auto_gc
from keepsake.storage.index import Index
from keepsake.storage.models import FileEntry

logger = logging.getLogger(__name__)


def file_mode(st):
    """Permission bits as an octal string, e.g. '644'."""
    return format(stat.S_IMODE(st.st_mode), "o")


def collect_files(project_root, paths, object_store, index=None, compression_level=None):
    """Store the current content of each relative path. Returns FileEntry list.

    Files that vanish or can't be read between enumeration and hashing are
    logged and left out. Symlinks are skipped.
    """
    project_root = Path(project_root)
    files = []
    for rel in paths:
        full = project_root / rel
        try:
            st = os.lstat(full)
        except OSError as e:
            logger.warning("Failed to read metadata for %s: %s", rel, e)
            continue
        if stat.S_ISLNK(st.st_mode) or not stat.S_ISREG(st.st_mode):
            continue

        cached = index.lookup(rel, st.st_size, st.st_mtime_ns) if index is not None else None
        if cached and object_store.exists(cached):
            files.append(FileEntry(rel, cached, st.st_size, file_mode(st)))
            continue

        try:
            object_hash, size = object_store.store_file(full, compression_level)
        except OSError as e:
            logger.warning("Failed to store %s: %s", rel, e)
            continue

        if index is not None:
            index.insert(rel, object_hash, size, st.st_mtime_ns)
        files.append(FileEntry(rel, object_hash, size, file_mode(st)))
    return files


def current_git_commit(project_root):
    """HEAD of the git work tree at project_root, or None."""
    if not (Path(project_root) / ".git").exists():
        return None
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=project_root,
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def capture_files(store, project_root, config=None, index_path=None):
    """Walk the project through the ignore filter and store every file."""
    config = config or {}
    spec = get_ignore_spec(project_root, config.get("ignore_file", ".keepsakeignore"))
    paths = walk_files(project_root, spec)

    index = Index.load(index_path) if index_path else None
    files = collect_files(
        project_root, paths, store.objects, index, config.get("compression_level")
    )
    if index is not None:
        index.retain(f.path for f in files)
        index.save(index_path)
    return files


def take_snapshot(store, project_root, config=None, message=None, trigger=None, auto=False, index_path=None):
    """Capture the project and save it as a new snapshot.

    Returns the saved Snapshot, or None when there was nothing to save (no
    files, or in auto mode a file set identical to the latest snapshot).
    Retention and automatic GC run after the save when enabled in config.
    """
    config = config or {}
    files = capture_files(store, project_root, config, index_path)
    if not files:
        logger.info("no files to snapshot in %s", project_root)
        return None

    if auto:
        latest = store.latest()
        if latest is not None and latest.same_files_as(files):
            logger.debug("skipping auto snapshot, nothing changed since %s", latest.short_id)
            return None

    snapshot = store.create(
        files,
        message=message,
        trigger=trigger,
        git_commit=current_git_commit(project_root),
    )

    if config.get("auto_cleanup", True):
        store.cleanup(config.get("max_snapshots", 1000), config.get("max_age_days", 30))

    if config.get("gc_auto_enabled"):
        maybe_auto_gc(store, config.get("gc_auto", 100))

    return snapshot
