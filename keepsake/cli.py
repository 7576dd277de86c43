import logging
from datetime import datetime
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from keepsake import __version__
from keepsake.capture import take_snapshot
from keepsake.config import find_config, find_project_root, init_config, load_config
from keepsake.diff import WORKING_DIR, compute_diff, diff_to_text, display_diff, unified_text
from keepsake.errors import InvalidName, KeepsakeError, NotInitialized
from keepsake.ignore import (
    add_ignore_pattern,
    create_default_ignore,
    get_ignore_spec,
    remove_ignore_pattern,
    walk_files,
)
from keepsake.log import read_log, write_log
from keepsake.restore import restore_snapshot
from keepsake.storage import StorageLocation, open_snapshot_store
from keepsake.storage.gc import collect_garbage, format_size
from keepsake.storage.location import DEFAULT_CONTEXT


class Context:
    """Resolved project root, config and storage for one invocation."""

    def __init__(self, storage_dir=None, context=None):
        self.storage_dir = Path(storage_dir) if storage_dir else None
        self.context = context
        self.project_root = find_project_root()
        self._config = None

    @property
    def config(self):
        if self._config is None:
            self._config = load_config(self.project_root)
        return self._config

    def location(self):
        return StorageLocation.find(self.project_root, self.storage_dir, self.context)

    def base_location(self):
        return StorageLocation.find(self.project_root, self.storage_dir)

    @property
    def ignore_path(self):
        return self.project_root / self.config["ignore_file"]

    def store(self):
        return open_snapshot_store(self.location(), self.config)


def _setup_logging(verbose):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _fmt_time(ts):
    return ts.astimezone().strftime("%Y-%m-%d %H:%M:%S")


class KeepsakeGroup(click.Group):
    """Reports KeepsakeError as a one-line message instead of a traceback."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except KeepsakeError as e:
            Console(stderr=True).print(f"[red]error:[/red] {e}", highlight=False)
            raise SystemExit(1)


@click.group(cls=KeepsakeGroup)
@click.version_option(version=__version__)
@click.option("--storage-dir", envvar="KEEPSAKE_DIR", type=click.Path(file_okay=False),
              help="Use this storage directory instead of <project>/.keepsake.")
@click.option("-c", "--context", "context_name", envvar="KEEPSAKE_CONTEXT", default=None,
              help="Use a named context instead of the default snapshot history.")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx, storage_dir, context_name, verbose):
    """keepsake: local content-addressed snapshots of your project."""
    _setup_logging(verbose)
    ctx.obj = Context(storage_dir, context_name)


@main.command()
@click.pass_obj
def init(obj):
    """Initialize snapshot storage for the current project."""
    console = Console()
    project_root = Path.cwd()
    location = StorageLocation.init(project_root, obj.storage_dir)
    console.print(f"[green]Initialized[/green] {location.root}")
    if not find_config(project_root):
        console.print(f"Created {init_config(project_root)}")
    ignore_path = create_default_ignore(project_root)
    if ignore_path:
        console.print(f"Created {ignore_path}")


@main.command()
@click.option("-m", "--message", default=None, help="Describe the snapshot.")
@click.option("-t", "--trigger", default=None, help="What caused the snapshot (e.g. a hook name).")
@click.option("--auto", is_flag=True, help="Quiet mode for hooks: no output, skip if unchanged.")
@click.pass_obj
def snapshot(obj, message, trigger, auto):
    """Capture the current state of the project."""
    console = Console()
    try:
        location = obj.location()
    except NotInitialized:
        if auto:
            return
        raise
    store = open_snapshot_store(location, obj.config)
    before = {s.id for s in store.list()}

    snap = take_snapshot(
        store,
        obj.project_root,
        obj.config,
        message=message,
        trigger=trigger,
        auto=auto,
        index_path=location.index_path,
    )
    if snap is None:
        if not auto:
            console.print("[yellow]![/yellow] No files to snapshot")
        return

    write_log(location.history_path, {
        "event": "snapshot",
        "snapshot": snap.id,
        "files": snap.file_count,
        "trigger": trigger,
    })
    if auto:
        return

    console.print(f"[green]✓[/green] Created snapshot [cyan]{snap.short_id}[/cyan] ({snap.file_count} files)")
    if message:
        console.print(f"  Message: {message}")
    removed = len(before - {s.id for s in store.list()})
    if removed:
        console.print(f"  Cleaned up {removed} old snapshot(s)")


@main.command("log")
@click.option("-n", "--limit", default=20, help="Number of snapshots to show.")
@click.option("--oneline", is_flag=True, help="One line per snapshot.")
@click.pass_obj
def log_cmd(obj, limit, oneline):
    """List snapshots, newest first."""
    console = Console()
    snapshots = obj.store().list(limit)
    if not snapshots:
        console.print("[yellow]![/yellow] No snapshots yet")
        return

    if oneline:
        for s in snapshots:
            console.print(
                f"[cyan]{s.short_id}[/cyan] {_fmt_time(s.timestamp)}  "
                f"[dim]{s.message or '-'}[/dim]  ({s.file_count} files, {format_size(s.total_size)})",
                highlight=False,
            )
        return

    table = Table(title="Snapshots")
    table.add_column("ID", style="bold cyan")
    table.add_column("Date", style="dim")
    table.add_column("Message")
    table.add_column("Trigger", style="dim")
    table.add_column("Files", justify="right")
    table.add_column("Size", justify="right")
    for s in snapshots:
        table.add_row(s.short_id, _fmt_time(s.timestamp), s.message or "", s.trigger or "", str(s.file_count),
                      format_size(s.total_size))
    console.print(table)


@main.command()
@click.argument("snapshot_id")
@click.pass_obj
def show(obj, snapshot_id):
    """Show a snapshot's metadata and files."""
    console = Console()
    s = obj.store().load(snapshot_id)
    console.print(f"[yellow]snapshot[/yellow] [cyan]{s.id}[/cyan]")
    console.print(f"Date:    {_fmt_time(s.timestamp)}")
    if s.message:
        console.print(f"Message: {s.message}")
    if s.trigger:
        console.print(f"Trigger: {s.trigger}")
    if s.git_commit:
        console.print(f"Commit:  {s.git_commit}")
    console.print(f"Files:   {s.file_count} ({format_size(s.total_size)})")
    console.print()
    console.print("[bold]Files[/bold]:")
    for f in s.files:
        console.print(f"  [cyan]{f.path}[/cyan] ({f.size} bytes)", highlight=False)


@main.command()
@click.argument("snapshot_id", required=False)
@click.argument("snapshot_id2", required=False)
@click.option("--name-only", is_flag=True, help="Only list changed paths with their status.")
@click.option("-U", "--unified", "context", type=int, default=None,
              help="Unified diff with N lines of context.")
@click.option("-o", "--output", type=click.Path(dir_okay=False), default=None,
              help="Write the diff to a file instead of the terminal.")
@click.pass_obj
def diff(obj, snapshot_id, snapshot_id2, name_only, context, output):
    """Compare a snapshot with the working directory or another snapshot.

    With no SNAPSHOT_ID the latest snapshot is used.
    """
    console = Console()
    store = obj.store()
    if snapshot_id is None:
        latest = store.latest()
        if latest is None:
            console.print("[yellow]![/yellow] No snapshots yet")
            return
        snapshot_id = latest.id

    if snapshot_id2:
        diffs = compute_diff(store, snapshot_id, snapshot_id2)
    else:
        spec = get_ignore_spec(obj.project_root, obj.config["ignore_file"])
        diffs = compute_diff(
            store,
            snapshot_id,
            WORKING_DIR,
            project_root=obj.project_root,
            extra_paths=walk_files(obj.project_root, spec),
        )

    if output or context is not None:
        if name_only:
            text = diff_to_text(diffs)
        else:
            text = unified_text(store, diffs, obj.project_root, context if context is not None else 3)
        if output:
            Path(output).write_text(text)
            console.print(f"Diff written to [cyan]{output}[/cyan]")
        else:
            click.echo(text, nl=False)
        return

    display_diff(store, diffs, obj.project_root, name_only=name_only, console=console)


@main.command()
@click.argument("snapshot_id")
@click.option("--file", "file_path", default=None, help="Restore only this path.")
@click.option("--force", is_flag=True, help="Overwrite local changes and skip the backup snapshot.")
@click.option("--dry-run", is_flag=True, help="Show what would be restored without writing.")
@click.pass_obj
def restore(obj, snapshot_id, file_path, force, dry_run):
    """Restore files from a snapshot."""
    console = Console()
    location = obj.location()
    store = open_snapshot_store(location, obj.config)

    result = restore_snapshot(
        store,
        obj.project_root,
        snapshot_id,
        file=file_path,
        force=force,
        dry_run=dry_run,
        config=obj.config,
        index_path=location.index_path,
    )

    if dry_run:
        for entry in result.planned:
            console.print(f"[bold cyan]dry-run[/bold cyan] Would restore: {entry.path} ({entry.size} bytes)",
                          highlight=False)
        console.print(f"\n[bold cyan]dry-run[/bold cyan] Would restore {len(result.planned)} file(s)")
        return

    if result.backup is not None:
        console.print(f"[green]✓[/green] Created backup snapshot: [cyan]{result.backup.short_id}[/cyan]")

    if file_path is not None:
        console.print(f"[green]✓[/green] Restored: [cyan]{result.restored[0].path}[/cyan]")
    else:
        console.print(f"\n[green]✓[/green] Restored {result.restored_count} file(s)")
        if result.skipped:
            console.print(f"  Skipped {result.skipped_count} modified file(s) (use --force to overwrite)")
            for entry in result.skipped:
                console.print(f"    [yellow]{entry.path}[/yellow]", highlight=False)
        for entry, error in result.failed:
            console.print(f"  [red]Failed[/red] {entry.path}: {error}", highlight=False)

    write_log(location.history_path, {
        "event": "restore",
        "snapshot": result.snapshot.id,
        "file": file_path,
        "restored": result.restored_count,
        "skipped": result.skipped_count,
        "failed": len(result.failed),
        "backup": result.backup.id if result.backup else None,
    })
    if result.failed:
        raise SystemExit(1)


@main.command()
@click.argument("snapshot_id")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation prompt.")
@click.pass_obj
def delete(obj, snapshot_id, yes):
    """Delete a snapshot. Its objects are reclaimed by 'keepsake gc'."""
    console = Console()
    location = obj.location()
    store = open_snapshot_store(location, obj.config)
    s = store.load(snapshot_id)

    if not yes and not click.confirm(f"Delete snapshot {s.short_id} ({s.file_count} files)?", default=False):
        console.print("[yellow]![/yellow] Deletion cancelled")
        return

    store.delete(s.id)
    write_log(location.history_path, {"event": "delete", "snapshot": s.id})
    console.print(f"[green]✓[/green] Deleted snapshot [cyan]{s.short_id}[/cyan] ({s.file_count} files)")


@main.command()
@click.option("--dry-run", is_flag=True, help="Only report unreferenced objects.")
@click.pass_obj
def gc(obj, dry_run):
    """Delete objects no snapshot references any more."""
    console = Console()
    location = obj.location()
    store = open_snapshot_store(location, obj.config)
    stats = collect_garbage(store, dry_run=dry_run)

    logging.getLogger(__name__).debug(
        "%d referenced, %d total, %d unreferenced",
        stats.referenced, stats.total_objects, len(stats.candidates),
    )
    if not stats.candidates:
        console.print("[green]✓[/green] No unreferenced objects found")
        return
    if dry_run:
        console.print(f"[bold cyan]dry-run[/bold cyan] Would delete {len(stats.candidates)} unreferenced object(s)")
        return

    write_log(location.history_path, {
        "event": "gc",
        "deleted": stats.deleted_objects,
        "bytes": stats.deleted_bytes,
    })
    console.print(
        f"[green]✓[/green] Deleted {stats.deleted_objects} object(s), reclaimed {format_size(stats.deleted_bytes)}"
    )


@main.command()
@click.option("-n", "--limit", default=20, help="Number of entries to show.")
@click.pass_obj
def history(obj, limit):
    """Show the log of snapshot, restore, delete and gc operations."""
    console = Console()
    entries = read_log(obj.location().history_path, limit)
    if not entries:
        console.print("[dim]No history yet.[/dim]")
        return

    table = Table(title="History")
    table.add_column("Time", style="dim")
    table.add_column("Event", style="bold")
    table.add_column("Snapshot", style="cyan")
    table.add_column("Details")

    for entry in entries:
        ts = entry.get("timestamp", "")
        if ts:
            try:
                ts = datetime.fromisoformat(ts).astimezone().strftime("%m-%d %H:%M")
            except ValueError:
                pass
        details = ", ".join(
            f"{k}={v}" for k, v in entry.items()
            if k not in ("timestamp", "event", "snapshot") and v is not None
        )
        table.add_row(ts, entry.get("event", ""), (entry.get("snapshot") or "")[:12], details)

    console.print(table)


@main.group()
def context():
    """Manage named contexts, each with its own snapshot history."""


@context.command("list")
@click.pass_obj
def context_list(obj):
    """List the contexts of this project."""
    console = Console()
    for name in obj.base_location().list_contexts():
        suffix = " (default)" if name == DEFAULT_CONTEXT else ""
        console.print(f"  [cyan]{name}[/cyan]{suffix}", highlight=False)


@context.command("new")
@click.argument("name")
@click.pass_obj
def context_new(obj, name):
    """Create a context."""
    location = obj.base_location().create_context(name)
    write_log(location.history_path, {"event": "context-new", "context": name})
    Console().print(f"[green]✓[/green] Created context '{name}'", highlight=False)


@context.command("delete")
@click.argument("name")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation prompt.")
@click.pass_obj
def context_delete(obj, name, yes):
    """Delete a context with all its snapshots and objects."""
    console = Console()
    if name == DEFAULT_CONTEXT:
        raise InvalidName("Cannot delete the default context")
    base = obj.base_location()
    count = len(open_snapshot_store(base.for_context(name), obj.config).list())

    if not yes and not click.confirm(f"Delete context '{name}' ({count} snapshots)?", default=False):
        console.print("[yellow]![/yellow] Deletion cancelled")
        return

    base.delete_context(name)
    write_log(base.history_path, {"event": "context-delete", "context": name, "snapshots": count})
    console.print(f"[green]✓[/green] Deleted context '{name}'", highlight=False)


@main.group()
def ignore():
    """Manage ignore patterns."""


@ignore.command("list")
@click.pass_obj
def ignore_list(obj):
    """Print the ignore file."""
    console = Console()
    path = obj.ignore_path
    if not path.exists():
        console.print("[yellow]![/yellow] No ignore file found")
        return
    console.print(f"Ignore patterns in {path}:", highlight=False)
    click.echo(path.read_text(), nl=False)


@ignore.command("add")
@click.argument("pattern")
@click.pass_obj
def ignore_add(obj, pattern):
    """Append a pattern to the ignore file."""
    add_ignore_pattern(obj.ignore_path, pattern)
    Console().print(f"[green]✓[/green] Added pattern '{pattern}' to {obj.ignore_path}", highlight=False)


@ignore.command("remove")
@click.argument("pattern")
@click.pass_obj
def ignore_remove(obj, pattern):
    """Remove a pattern from the ignore file."""
    console = Console()
    if not obj.ignore_path.exists():
        console.print("[yellow]![/yellow] No ignore file found")
        return
    if remove_ignore_pattern(obj.ignore_path, pattern):
        console.print(f"[green]✓[/green] Removed pattern '{pattern}' from {obj.ignore_path}", highlight=False)
    else:
        console.print(f"[yellow]![/yellow] Pattern '{pattern}' not found in {obj.ignore_path}", highlight=False)


@ignore.command("edit")
@click.pass_obj
def ignore_edit(obj):
    """Open the ignore file in $EDITOR."""
    path = obj.ignore_path
    create_default_ignore(obj.project_root, obj.config["ignore_file"])
    click.edit(filename=str(path))
    Console().print(f"[green]✓[/green] Edited {path}", highlight=False)
