import re
import shutil
from pathlib import Path

from keepsake.errors import (
    AlreadyInitialized,
    ContextAlreadyExists,
    ContextNotFound,
    InvalidName,
    NotInitialized,
)

STORAGE_DIRNAME = ".keepsake"
DEFAULT_CONTEXT = "default"

_CONTEXT_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_-]{0,254}")
_RESERVED_NAMES = {"CON", "PRN", "AUX", "NUL"} | {f"{p}{i}" for p in ("COM", "LPT") for i in range(1, 10)}


def validate_context_name(name):
    if not name or not _CONTEXT_NAME.fullmatch(name):
        raise InvalidName(
            f"Invalid context name {name!r}: use letters, digits, '-' and '_', "
            "starting with a letter or '_' (max 255 chars)"
        )
    if name.upper() in _RESERVED_NAMES:
        raise InvalidName(f"{name!r} is a reserved name")
    return name


class StorageLocation:
    """Resolves where a project's objects and snapshots live on disk.

    The storage root holds the default context. Each named context is a
    separate storage root under `contexts/<name>/` with its own objects,
    snapshots, index and history.
    """

    def __init__(self, root, context=DEFAULT_CONTEXT):
        self.root = Path(root)
        self.context = context

    @classmethod
    def init(cls, project_root, storage_dir=None):
        root = Path(storage_dir) if storage_dir else Path(project_root) / STORAGE_DIRNAME
        if root.exists() and any(root.iterdir()):
            raise AlreadyInitialized(root)
        location = cls(root)
        location._create_dirs()
        return location

    @classmethod
    def find(cls, project_root, storage_dir=None, context=None):
        root = Path(storage_dir) if storage_dir else Path(project_root) / STORAGE_DIRNAME
        if not root.is_dir():
            raise NotInitialized(root)
        location = cls(root)
        return location.for_context(context) if context else location

    # ------------------------------------------------------------------
    # Contexts
    # ------------------------------------------------------------------

    @property
    def contexts_dir(self):
        return self.root / "contexts"

    def _context_root(self, name):
        return self.contexts_dir / validate_context_name(name)

    def for_context(self, name):
        if name == DEFAULT_CONTEXT:
            return StorageLocation(self.root)
        root = self._context_root(name)
        if not (root / "snapshots").is_dir():
            raise ContextNotFound(name)
        return StorageLocation(root, name)

    def create_context(self, name):
        if name == DEFAULT_CONTEXT:
            raise ContextAlreadyExists(name)
        root = self._context_root(name)
        if root.exists():
            raise ContextAlreadyExists(name)
        location = StorageLocation(root, name)
        location._create_dirs()
        return location

    def delete_context(self, name):
        """Remove a named context with all its snapshots and objects."""
        if name == DEFAULT_CONTEXT:
            raise InvalidName("Cannot delete the default context")
        location = self.for_context(name)
        shutil.rmtree(location.root)
        return location

    def list_contexts(self):
        names = [DEFAULT_CONTEXT]
        if self.contexts_dir.is_dir():
            names.extend(sorted(
                p.name for p in self.contexts_dir.iterdir() if (p / "snapshots").is_dir()
            ))
        return names

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _create_dirs(self):
        self.objects_dir.mkdir(parents=True, exist_ok=True)
        self.snapshots_dir.mkdir(parents=True, exist_ok=True)

    @property
    def objects_dir(self):
        return self.root / "objects"

    @property
    def snapshots_dir(self):
        return self.root / "snapshots"

    @property
    def index_path(self):
        return self.root / "index.json"

    @property
    def history_path(self):
        return self.root / "history.jsonl"
