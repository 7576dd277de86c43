"""Error types raised by the snapshot store.

Every failure the CLI knows how to report derives from KeepsakeError, so the
command layer can turn it into a one-line message and a non-zero exit.
"""


class KeepsakeError(Exception):
    """Base class for keepsake failures."""


class NotInitialized(KeepsakeError):
    def __init__(self, path=None):
        self.path = path
        where = f" at {path}" if path else ""
        super().__init__(f"keepsake is not initialized{where}. Run 'keepsake init' first.")


class AlreadyInitialized(KeepsakeError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"keepsake is already initialized at {path}")


class SnapshotNotFound(KeepsakeError):
    def __init__(self, snapshot_id):
        self.snapshot_id = snapshot_id
        super().__init__(f"Snapshot not found: {snapshot_id}")


class AmbiguousSnapshotId(KeepsakeError):
    def __init__(self, prefix, candidates):
        self.prefix = prefix
        self.candidates = list(candidates)
        shown = ", ".join(c[:12] for c in self.candidates[:5])
        super().__init__(f"Ambiguous snapshot id {prefix!r} matches {len(self.candidates)} snapshots: {shown}")


class FileNotFoundInSnapshot(KeepsakeError):
    def __init__(self, path, snapshot_id=None):
        self.path = path
        self.snapshot_id = snapshot_id
        super().__init__(f"File not found in snapshot: {path}")


class ObjectNotFound(KeepsakeError):
    def __init__(self, object_hash):
        self.object_hash = object_hash
        super().__init__(f"Object not found: {object_hash}")


class HashMismatch(KeepsakeError):
    def __init__(self, expected, actual):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Object hash mismatch: expected {expected}, got {actual}")


class CompressionError(KeepsakeError):
    """Raised when a blob cannot be compressed or decompressed."""


class ConfigError(KeepsakeError):
    """Raised for unreadable or invalid configuration files."""


class InvalidName(KeepsakeError):
    """Raised for a context name that can't be used as a directory name."""


class ContextNotFound(KeepsakeError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"Context not found: {name}")


class ContextAlreadyExists(KeepsakeError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"Context already exists: {name}")
