import difflib
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console
from rich.text import Text

from keepsake.storage.objects import ObjectStore

# Sentinel for "compare against the files on disk right now"
WORKING_DIR = object()

ADDED = "added"
MODIFIED = "modified"
DELETED = "deleted"

_STATUS_LETTERS = {ADDED: "A", MODIFIED: "M", DELETED: "D"}
_STATUS_COLORS = {ADDED: "green", MODIFIED: "yellow", DELETED: "red"}


@dataclass
class FileDiff:
    path: str
    status: str
    old_hash: str = None
    new_hash: str = None


def _is_binary(content):
    return b"\x00" in content[:8192]


def manifest_from_snapshot(snapshot):
    return snapshot.manifest()


def manifest_from_disk(project_root, paths):
    """Hash whatever currently exists at each relative path. Missing paths are left out."""
    project_root = Path(project_root)
    manifest = {}
    for rel in paths:
        full = project_root / rel
        if not full.is_file():
            continue
        try:
            manifest[rel] = ObjectStore.compute_hash(full.read_bytes())
        except OSError:
            continue
    return manifest


def compare_manifests(from_files, to_files):
    """Classify every path in either manifest. Unchanged paths are omitted."""
    diffs = []
    for path in sorted(set(from_files) | set(to_files)):
        old = from_files.get(path)
        new = to_files.get(path)
        if new is None:
            diffs.append(FileDiff(path, DELETED, old_hash=old))
        elif old is None:
            diffs.append(FileDiff(path, ADDED, new_hash=new))
        elif old != new:
            diffs.append(FileDiff(path, MODIFIED, old_hash=old, new_hash=new))
    return diffs


def compute_diff(store, from_id, to=WORKING_DIR, project_root=None, extra_paths=None):
    """Compare a snapshot against another snapshot or the working directory.

    Against the working directory only the from-snapshot's paths are hashed,
    plus any extra_paths the caller supplies (e.g. the ignore-filtered walk,
    so new files show up as added).
    """
    from_snapshot = store.load(from_id)
    from_files = manifest_from_snapshot(from_snapshot)

    if to is WORKING_DIR:
        if project_root is None:
            raise ValueError("project_root is required to diff against the working directory")
        paths = set(from_files)
        if extra_paths:
            paths.update(extra_paths)
        to_files = manifest_from_disk(project_root, sorted(paths))
    else:
        to_files = manifest_from_snapshot(store.load(to))

    return compare_manifests(from_files, to_files)


def load_contents(store, diff, project_root=None):
    """(old_bytes, new_bytes) for a FileDiff. A side with no hash is empty.

    When new_hash isn't in the object store (working-directory diffs), the new
    side is read from project_root.
    """
    old = store.objects.read(diff.old_hash) if diff.old_hash else b""
    if not diff.new_hash:
        new = b""
    elif store.objects.exists(diff.new_hash):
        new = store.objects.read(diff.new_hash)
    elif project_root is not None:
        new = (Path(project_root) / diff.path).read_bytes()
    else:
        new = store.objects.read(diff.new_hash)
    return old, new


def line_diff(old_content, new_content):
    """Changed lines as (tag, lineno, text) with tag '-' or '+'.

    Deleted lines carry their 1-based number in the old text, inserted lines
    their number in the new text. Undecodable bytes are replaced, never fatal.
    """
    old_lines = old_content.decode("utf-8", errors="replace").splitlines()
    new_lines = new_content.decode("utf-8", errors="replace").splitlines()

    lines = []
    for tag, i1, i2, j1, j2 in difflib.SequenceMatcher(None, old_lines, new_lines).get_opcodes():
        if tag in ("delete", "replace"):
            for n in range(i1, i2):
                lines.append(("-", n + 1, old_lines[n]))
        if tag in ("insert", "replace"):
            for n in range(j1, j2):
                lines.append(("+", n + 1, new_lines[n]))
    return lines


def diff_to_text(diffs):
    """Name-status listing: one 'A\\tpath' / 'M\\tpath' / 'D\\tpath' per line."""
    return "".join(f"{_STATUS_LETTERS[d.status]}\t{d.path}\n" for d in diffs)


def unified_text(store, diffs, project_root=None, context=3):
    """Unified diff for every changed file, git style."""
    parts = []
    for diff in diffs:
        old, new = load_contents(store, diff, project_root)
        parts.append(f"diff --keepsake a/{diff.path} b/{diff.path}\n")
        if _is_binary(old) or _is_binary(new):
            parts.append(f"Binary files a/{diff.path} and b/{diff.path} differ\n")
            continue
        old_lines = old.decode("utf-8", errors="replace").splitlines(keepends=True)
        new_lines = new.decode("utf-8", errors="replace").splitlines(keepends=True)
        for line in difflib.unified_diff(
            old_lines,
            new_lines,
            fromfile="/dev/null" if diff.status == ADDED else f"a/{diff.path}",
            tofile="/dev/null" if diff.status == DELETED else f"b/{diff.path}",
            n=context,
        ):
            parts.append(line if line.endswith("\n") else line + "\n\\ No newline at end of file\n")
    return "".join(parts)


def display_diff(store, diffs, project_root=None, name_only=False, console=None):
    """Render diffs to the terminal with colored line markers."""
    console = console or Console()

    if not diffs:
        console.print("[dim]No changes detected.[/dim]")
        return

    insertions = deletions = 0
    for diff in diffs:
        color = _STATUS_COLORS[diff.status]
        if name_only:
            console.print(f"[{color}]{_STATUS_LETTERS[diff.status]}[/{color}]\t{diff.path}", highlight=False)
            continue

        console.print(f"\n[bold {color}]── {diff.status.upper()}: {diff.path}[/bold {color}]")
        old, new = load_contents(store, diff, project_root)
        if _is_binary(old) or _is_binary(new):
            console.print(Text("    [binary file]", style="dim"))
            continue

        for tag, lineno, content in line_diff(old, new):
            if tag == "+":
                insertions += 1
                console.print(Text(f"  {lineno:>5} + {content}", style="green"))
            else:
                deletions += 1
                console.print(Text(f"  {lineno:>5} - {content}", style="red"))

    counts = {status: sum(1 for d in diffs if d.status == status) for status in _STATUS_COLORS}
    console.print()
    summary = f"[bold]{len(diffs)} file(s) changed[/bold]"
    if not name_only:
        summary += f" | [green]+{insertions} insertions[/green] | [red]-{deletions} deletions[/red]"
    console.print(
        f"{summary} | "
        f"[green]{counts[ADDED]} added[/green] | "
        f"[yellow]{counts[MODIFIED]} modified[/yellow] | "
        f"[red]{counts[DELETED]} deleted[/red]"
    )
