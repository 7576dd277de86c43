"""Operation history log."""

from keepsake.log import read_log, write_log


def test_write_and_read(tmp_path):
    path = tmp_path / "history.jsonl"
    write_log(path, {"event": "snapshot", "snapshot": "abc"})
    write_log(path, {"event": "restore", "restored": 2})

    entries = read_log(path)

    assert [e["event"] for e in entries] == ["snapshot", "restore"]
    assert all("timestamp" in e for e in entries)
    assert read_log(path, limit=1)[0]["event"] == "restore"


def test_malformed_lines_skipped(tmp_path):
    path = tmp_path / "history.jsonl"
    path.write_text('{"event": "gc"}\nnot json\n\n')
    assert read_log(path) == [{"event": "gc"}]


def test_missing_log(tmp_path):
    assert read_log(tmp_path / "none.jsonl") == []
