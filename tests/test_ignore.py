"""Ignore filtering and file enumeration."""

import os

import pytest

from keepsake.ignore import (
    add_ignore_pattern,
    create_default_ignore,
    get_ignore_spec,
    remove_ignore_pattern,
    should_ignore,
    walk_files,
)

from conftest import write_files


def test_walk_files_is_sorted_and_posix(tmp_path):
    write_files(tmp_path, {"b.txt": "", "a/z.txt": "", "a/b/c.txt": ""})
    assert walk_files(tmp_path) == ["a/b/c.txt", "a/z.txt", "b.txt"]


def test_builtin_names_always_ignored(tmp_path):
    write_files(tmp_path, {".git/config": "", ".keepsake/index.json": "", "sub/.git/x": "", "keep.txt": ""})
    assert walk_files(tmp_path) == ["keep.txt"]


def test_ignore_file_patterns(tmp_path):
    write_files(tmp_path, {
        ".keepsakeignore": "# comment\n*.log\nnode_modules/\n!important.log\n",
        "app.log": "",
        "important.log": "",
        "node_modules/pkg/index.js": "",
        "src/main.py": "",
    })
    spec = get_ignore_spec(tmp_path)
    assert walk_files(tmp_path, spec) == [".keepsakeignore", "important.log", "src/main.py"]


def test_custom_ignore_file_name(tmp_path):
    write_files(tmp_path, {".myignore": "secret.txt\n", "secret.txt": "", "public.txt": ""})
    spec = get_ignore_spec(tmp_path, ".myignore")
    assert "secret.txt" not in walk_files(tmp_path, spec)


def test_should_ignore_directories():
    spec = get_ignore_spec("/nonexistent")
    assert should_ignore(".git", spec, is_dir=True)
    assert not should_ignore("src", spec, is_dir=True)


@pytest.mark.skipif(os.name == "nt", reason="symlinks")
def test_symlinks_are_not_listed(tmp_path):
    write_files(tmp_path, {"real.txt": "x"})
    (tmp_path / "link.txt").symlink_to(tmp_path / "real.txt")
    assert walk_files(tmp_path) == ["real.txt"]


def test_create_default_ignore_does_not_overwrite(tmp_path):
    path = create_default_ignore(tmp_path)
    assert "node_modules/" in path.read_text()
    path.write_text("custom\n")
    assert create_default_ignore(tmp_path) is None
    assert path.read_text() == "custom\n"


def test_add_pattern_creates_file_and_appends(tmp_path):
    path = tmp_path / ".keepsakeignore"
    add_ignore_pattern(path, "*.log")
    assert path.read_text() == "*.log\n"

    path.write_text("*.log")
    add_ignore_pattern(path, "build/")
    assert path.read_text() == "*.log\nbuild/\n"


def test_remove_pattern(tmp_path):
    path = tmp_path / ".keepsakeignore"
    path.write_text("# comment\n*.log\nbuild/\n*.log\n")

    assert remove_ignore_pattern(path, " *.log ") == 2
    assert path.read_text() == "# comment\nbuild/\n"
    assert remove_ignore_pattern(path, "dist/") == 0
    assert path.read_text() == "# comment\nbuild/\n"


def test_remove_pattern_without_file(tmp_path):
    assert remove_ignore_pattern(tmp_path / ".keepsakeignore", "*.log") == 0
    assert not (tmp_path / ".keepsakeignore").exists()
