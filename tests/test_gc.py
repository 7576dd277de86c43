"""Garbage collection of unreferenced objects."""

from keepsake.storage import FileEntry
from keepsake.storage.gc import collect_garbage, find_unreferenced, format_size, maybe_auto_gc


def _snap(store, content):
    h = store.objects.write(content)
    return store.create([FileEntry("f.txt", h, len(content))]), h


def test_gc_deletes_only_unreferenced_objects(store):
    old, h_old = _snap(store, b"old")
    _, h_new = _snap(store, b"new")
    store.delete(old.id)

    stats = collect_garbage(store)

    assert stats.deleted_objects == 1
    assert stats.deleted_bytes > 0
    assert not store.objects.exists(h_old)
    assert store.objects.exists(h_new)


def test_gc_dry_run_keeps_everything(store):
    old, h_old = _snap(store, b"old")
    store.delete(old.id)

    stats = collect_garbage(store, dry_run=True)

    assert stats.candidates == [h_old]
    assert stats.deleted_objects == 0
    assert store.objects.exists(h_old)


def test_gc_with_nothing_to_do(store):
    _snap(store, b"kept")
    stats = collect_garbage(store)
    assert stats.candidates == []
    assert stats.total_objects == 1


def test_auto_gc_threshold(store):
    for content in (b"a", b"b"):
        snap, _ = _snap(store, content)
        store.delete(snap.id)

    assert len(find_unreferenced(store)) == 2
    assert maybe_auto_gc(store, threshold=3) is None
    stats = maybe_auto_gc(store, threshold=2)
    assert stats.deleted_objects == 2


def test_format_size():
    assert format_size(2048) == "2.00 KB"
    assert format_size(3 * 1024 * 1024) == "3.00 MB"
