"""Stat cache for snapshot capture.

Maps a relative path to the hash recorded the last time the file was stored,
keyed on (size, mtime_ns). A file whose size and mtime haven't moved is not
re-read. The cache is advisory: a missing or corrupt file just means every
file gets hashed again.
"""

import json
import logging
from pathlib import Path

from keepsake.storage.objects import atomic_write

logger = logging.getLogger(__name__)


class Index:

    def __init__(self, entries=None):
        self.entries = entries or {}

    @classmethod
    def load(cls, index_path):
        index_path = Path(index_path)
        if not index_path.exists():
            return cls()
        try:
            raw = json.loads(index_path.read_text())
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable index %s: %s", index_path, e)
            return cls()
        entries = raw.get("entries") if isinstance(raw, dict) else None
        if not isinstance(entries, dict):
            return cls()
        return cls(entries)

    def save(self, index_path):
        atomic_write(index_path, json.dumps({"entries": self.entries}).encode())

    def lookup(self, path, size, mtime_ns):
        """Cached hash for path if size and mtime still match, else None."""
        entry = self.entries.get(path)
        if entry and entry.get("size") == size and entry.get("mtime_ns") == mtime_ns:
            return entry.get("hash")
        return None

    def insert(self, path, object_hash, size, mtime_ns):
        self.entries[path] = {"hash": object_hash, "size": size, "mtime_ns": mtime_ns}

    def retain(self, paths):
        """Drop entries for paths not in `paths`."""
        keep = set(paths)
        self.entries = {p: e for p, e in self.entries.items() if p in keep}

    def __len__(self):
        return len(self.entries)
