"""Diff engine: status classification and line-level diffs."""

from datetime import datetime, timedelta, timezone

import pytest
from rich.console import Console

from keepsake.diff import (
    ADDED,
    DELETED,
    MODIFIED,
    WORKING_DIR,
    FileDiff,
    compare_manifests,
    compute_diff,
    diff_to_text,
    display_diff,
    line_diff,
    load_contents,
    unified_text,
)
from keepsake.storage import FileEntry

from conftest import write_files

T0 = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _snapshot(store, files, offset=0):
    entries = []
    for path, content in files.items():
        h = store.objects.write(content.encode())
        entries.append(FileEntry(path, h, len(content)))
    return store.create(entries, timestamp=T0 + timedelta(minutes=offset))


def _summary(diffs):
    return [(d.status, d.path) for d in diffs]


def test_compare_snapshots_classifies_and_sorts(store):
    a = _snapshot(store, {"a.txt": "one\n"})
    b = _snapshot(store, {"a.txt": "two\n", "b.txt": "three\n"}, offset=1)

    diffs = compute_diff(store, a.id, b.id)

    assert _summary(diffs) == [(MODIFIED, "a.txt"), (ADDED, "b.txt")]
    assert diffs[0].old_hash != diffs[0].new_hash


def test_classification_is_symmetric():
    a = {"shared.txt": "h1", "only_a.txt": "h2"}
    b = {"shared.txt": "h1"}
    assert _summary(compare_manifests(a, b)) == [(DELETED, "only_a.txt")]
    assert _summary(compare_manifests(b, a)) == [(ADDED, "only_a.txt")]


def test_unchanged_paths_are_omitted():
    assert compare_manifests({"a": "h"}, {"a": "h"}) == []


def test_diff_against_working_directory(store, project):
    snap = _snapshot(store, {"README.md": "# demo\n", "src/app.py": "print('hello')\n", "gone.txt": "x\n"})
    write_files(project, {"src/app.py": "print('bye')\n", "new.txt": "fresh\n"})

    diffs = compute_diff(store, snap.id, WORKING_DIR, project_root=project)

    # new.txt is not in the snapshot's path set, so it is not seen
    assert _summary(diffs) == [(DELETED, "gone.txt"), (MODIFIED, "src/app.py")]


def test_working_directory_extra_paths_show_additions(store, project):
    snap = _snapshot(store, {"README.md": "# demo\n"})
    write_files(project, {"new.txt": "fresh\n"})

    diffs = compute_diff(store, snap.id, project_root=project, extra_paths=["new.txt", "README.md"])

    assert _summary(diffs) == [(ADDED, "new.txt")]


def test_working_directory_requires_project_root(store):
    snap = _snapshot(store, {"a.txt": "a\n"})
    with pytest.raises(ValueError):
        compute_diff(store, snap.id)


def test_line_diff_reports_changed_lines_with_numbers():
    old = b"a\nb\nc\n"
    new = b"a\nB\nc\nd\n"
    assert line_diff(old, new) == [("-", 2, "b"), ("+", 2, "B"), ("+", 4, "d")]


def test_line_diff_for_added_file_is_all_inserts():
    assert line_diff(b"", b"x\ny\n") == [("+", 1, "x"), ("+", 2, "y")]


def test_line_diff_tolerates_invalid_utf8():
    lines = line_diff(b"ok\n", b"ok\n\xff\xfe bad\n")
    assert len(lines) == 1
    tag, lineno, text = lines[0]
    assert (tag, lineno) == ("+", 2)
    assert "�" in text


def test_load_contents_reads_working_copy_for_unstored_hash(store, project):
    snap = _snapshot(store, {"README.md": "# demo\n"})
    write_files(project, {"README.md": "# changed\n"})
    [diff] = compute_diff(store, snap.id, project_root=project)

    old, new = load_contents(store, diff, project)

    assert old == b"# demo\n"
    assert new == b"# changed\n"


def test_diff_to_text_name_status():
    diffs = [FileDiff("a.txt", ADDED), FileDiff("b.txt", MODIFIED), FileDiff("c.txt", DELETED)]
    assert diff_to_text(diffs) == "A\ta.txt\nM\tb.txt\nD\tc.txt\n"


def test_unified_text(store):
    a = _snapshot(store, {"a.txt": "one\ntwo\n"})
    b = _snapshot(store, {"a.txt": "one\nTWO\n"}, offset=1)

    text = unified_text(store, compute_diff(store, a.id, b.id), context=1)

    assert "--- a/a.txt" in text
    assert "+++ b/a.txt" in text
    assert "-two\n" in text
    assert "+TWO\n" in text


def test_display_diff_renders_summary(store):
    a = _snapshot(store, {"a.txt": "one\n"})
    b = _snapshot(store, {"a.txt": "two\n", "b.txt": "new\n"}, offset=1)
    console = Console(record=True, width=200)

    display_diff(store, compute_diff(store, a.id, b.id), console=console)

    out = console.export_text()
    assert "MODIFIED: a.txt" in out
    assert "ADDED: b.txt" in out
    assert "2 file(s) changed" in out


def test_display_diff_without_changes():
    console = Console(record=True, width=200)
    display_diff(None, [], console=console)
    assert "No changes detected." in console.export_text()
