from pathlib import Path

import pytest

from keepsake import config
from keepsake.storage import StorageLocation, open_snapshot_store


@pytest.fixture(autouse=True)
def isolated_global_config(tmp_path, monkeypatch):
    """Keep the user's ~/.keepsake/config.json out of every test."""
    monkeypatch.setattr(config, "GLOBAL_CONFIG_FILE", tmp_path / "home" / "config.json")


def write_files(root, files):
    for rel, content in files.items():
        path = Path(root) / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            content = content.encode()
        path.write_bytes(content)


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    write_files(root, {
        "README.md": "# demo\n",
        "src/app.py": "print('hello')\n",
        "src/util.py": "def add(a, b):\n    return a + b\n",
    })
    return root


@pytest.fixture
def location(project):
    return StorageLocation.init(project)


@pytest.fixture
def store(location):
    return open_snapshot_store(location)
