"""Content-addressed blob storage.

Blobs are stored zstd-compressed under a two-character fan-out:

    objects/<hash[:2]>/<hash[2:]>

The hash is always SHA-256 over the *uncompressed* bytes, so the compression
level used for a write never changes an object's address.
"""

import hashlib
import logging
import os
import tempfile
from pathlib import Path

import zstandard

from keepsake.errors import CompressionError, HashMismatch, ObjectNotFound

logger = logging.getLogger(__name__)

DEFAULT_COMPRESSION_LEVEL = 3


def atomic_write(path, data):
    """Write bytes to path via a sibling temp file and rename into place."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=path.suffix)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class ObjectStore:
    """Deduplicating blob store keyed by content hash."""

    def __init__(self, objects_dir, compression_level=DEFAULT_COMPRESSION_LEVEL):
        self.objects_dir = Path(objects_dir)
        self.compression_level = compression_level

    @staticmethod
    def compute_hash(content):
        return hashlib.sha256(content).hexdigest()

    def path_for(self, object_hash):
        if len(object_hash) < 3:
            raise ObjectNotFound(object_hash)
        return self.objects_dir / object_hash[:2] / object_hash[2:]

    def exists(self, object_hash):
        return self.path_for(object_hash).is_file()

    def write(self, content, compression_level=None):
        """Store content and return its hash. Existing content is not rewritten."""
        object_hash = self.compute_hash(content)
        object_path = self.path_for(object_hash)
        if object_path.exists():
            return object_hash

        level = self.compression_level if compression_level is None else compression_level
        try:
            compressed = zstandard.ZstdCompressor(level=level).compress(content)
        except zstandard.ZstdError as e:
            raise CompressionError(f"Failed to compress object {object_hash}: {e}") from e

        atomic_write(object_path, compressed)
        logger.debug("stored object %s (%d bytes)", object_hash, len(content))
        return object_hash

    def read(self, object_hash):
        """Return the raw bytes for a hash, verifying the content on the way out."""
        object_path = self.path_for(object_hash)
        if not object_path.is_file():
            raise ObjectNotFound(object_hash)

        try:
            content = zstandard.ZstdDecompressor().decompress(object_path.read_bytes())
        except zstandard.ZstdError as e:
            raise CompressionError(f"Failed to decompress object {object_hash}: {e}") from e

        actual = self.compute_hash(content)
        if actual != object_hash:
            raise HashMismatch(object_hash, actual)
        return content

    def store_file(self, path, compression_level=None):
        """Store a file's content. Returns (hash, size)."""
        content = Path(path).read_bytes()
        return self.write(content, compression_level), len(content)

    def restore_file(self, object_hash, dest):
        """Write the blob for object_hash to dest, creating parent directories."""
        atomic_write(dest, self.read(object_hash))

    def list_hashes(self):
        """Every stored object hash, in fan-out order."""
        if not self.objects_dir.exists():
            return []
        hashes = []
        for prefix_dir in sorted(self.objects_dir.iterdir()):
            if not prefix_dir.is_dir() or len(prefix_dir.name) != 2:
                continue
            for entry in sorted(prefix_dir.iterdir()):
                # Leftover temp files from an interrupted write are not objects
                if entry.is_file() and not entry.name.startswith(".tmp-"):
                    hashes.append(prefix_dir.name + entry.name)
        return hashes
