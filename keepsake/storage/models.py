import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone


def parse_timestamp(value):
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass
class FileEntry:
    """One row of a snapshot manifest. Paths always use forward slashes."""

    path: str
    hash: str
    size: int
    mode: str = None

    def to_dict(self):
        return {"path": self.path, "hash": self.hash, "size": self.size, "mode": self.mode}

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValueError(f"file entry must be a JSON object: {data!r}")
        if not isinstance(data.get("path"), str) or not isinstance(data.get("hash"), str):
            raise ValueError(f"file entry needs string path and hash: {data!r}")
        return cls(
            path=data["path"],
            hash=data["hash"],
            size=int(data["size"]),
            mode=data.get("mode"),
        )


@dataclass
class Snapshot:
    """Immutable capture of a manifest. `id` stays None until the store saves it."""

    timestamp: datetime
    files: list = field(default_factory=list)
    message: str = None
    trigger: str = None
    git_commit: str = None
    id: str = None

    @staticmethod
    def generate_id(timestamp, message, files):
        h = hashlib.sha256()
        h.update(timestamp.isoformat().encode())
        h.update(b"\0")
        h.update((message or "").encode())
        for entry in files:
            h.update(b"\0")
            h.update(entry.path.encode())
            h.update(b"\0")
            h.update(entry.hash.encode())
        return h.hexdigest()

    @property
    def short_id(self):
        return (self.id or "")[:7]

    @property
    def file_count(self):
        return len(self.files)

    @property
    def total_size(self):
        return sum(f.size for f in self.files)

    def find_file(self, path):
        for entry in self.files:
            if entry.path == path:
                return entry
        return None

    def manifest(self):
        """path -> hash mapping for this snapshot's files."""
        return {f.path: f.hash for f in self.files}

    def same_files_as(self, files):
        """True when `files` has exactly this snapshot's (path, hash) pairs."""
        return len(files) == len(self.files) and {f.path: f.hash for f in files} == self.manifest()

    def to_dict(self):
        data = {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "files": [f.to_dict() for f in self.files],
            "trigger": self.trigger,
            "git_commit": self.git_commit,
        }
        # Optional fields are omitted rather than written as null
        return {k: v for k, v in data.items() if v is not None or k in ("id", "files")}

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValueError("snapshot record must be a JSON object")
        for key in ("id", "timestamp"):
            if not isinstance(data.get(key), str) or not data[key]:
                raise ValueError(f"snapshot {key} must be a non-empty string")
        files = data.get("files", [])
        if not isinstance(files, list):
            raise ValueError("snapshot files must be a list")
        return cls(
            id=data["id"],
            timestamp=parse_timestamp(data["timestamp"]),
            message=data.get("message"),
            files=[FileEntry.from_dict(f) for f in files],
            trigger=data.get("trigger"),
            git_commit=data.get("git_commit"),
        )
