import os
from pathlib import Path

import pathspec

# Names that are never snapshotted, whatever the ignore file says
ALWAYS_IGNORE = {
    ".keepsake",
    ".git",
    ".jj",
    ".hg",
    ".svn",
}

DEFAULT_IGNORE_CONTENT = """\
# keepsake ignore file
# Uses gitignore syntax

# Dependencies
node_modules/
vendor/
.venv/
venv/
__pycache__/

# Build outputs
target/
dist/
build/
*.o
*.a
*.so
*.dylib

# IDE and editor
.idea/
.vscode/
*.swp
*.swo
*~

# OS files
.DS_Store
Thumbs.db

# Logs
*.log
logs/

# Temporary files
*.tmp
*.temp
.cache/
"""


def load_ignore_patterns(project_path, ignore_file=".keepsakeignore"):
    """Load patterns from the project's ignore file."""
    path = Path(project_path) / ignore_file
    if not path.exists():
        return []
    patterns = []
    for line in path.read_text().splitlines():
        line = line.rstrip()
        if line and not line.startswith("#"):
            patterns.append(line)
    return patterns


def get_ignore_spec(project_path, ignore_file=".keepsakeignore"):
    """Compile the project's ignore patterns into a gitignore-style matcher."""
    return pathspec.GitIgnoreSpec.from_lines(load_ignore_patterns(project_path, ignore_file))


def should_ignore(rel_path, spec, is_dir=False):
    """Check a forward-slash relative path against the built-ins and the ignore patterns."""
    parts = rel_path.split("/")
    if any(part in ALWAYS_IGNORE for part in parts):
        return True
    if spec is None:
        return False
    return spec.match_file(rel_path + "/" if is_dir else rel_path)


def walk_files(project_path, spec=None):
    """Sorted relative paths (forward slashes) of every non-ignored regular file.

    Ignored directories are pruned without being descended into. Symlinks are
    not followed and not listed.
    """
    root = Path(project_path)
    results = []
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir + "/"

        kept = []
        for name in dirnames:
            if os.path.islink(os.path.join(dirpath, name)):
                continue
            if not should_ignore(rel_dir + name, spec, is_dir=True):
                kept.append(name)
        dirnames[:] = kept

        for name in filenames:
            full = os.path.join(dirpath, name)
            if os.path.islink(full) or not os.path.isfile(full):
                continue
            rel = rel_dir + name
            if not should_ignore(rel, spec):
                results.append(rel)
    return sorted(results)


def create_default_ignore(project_path, ignore_file=".keepsakeignore"):
    """Write the default ignore file unless one already exists."""
    path = Path(project_path) / ignore_file
    if path.exists():
        return None
    path.write_text(DEFAULT_IGNORE_CONTENT)
    return path


def add_ignore_pattern(path, pattern):
    """Append a pattern to an ignore file, creating the file if needed."""
    path = Path(path)
    content = path.read_text() if path.exists() else ""
    if content and not content.endswith("\n"):
        content += "\n"
    path.write_text(content + pattern + "\n")


def remove_ignore_pattern(path, pattern):
    """Drop every line equal to pattern. Returns how many lines were removed."""
    path = Path(path)
    if not path.exists():
        return 0
    lines = path.read_text().splitlines()
    kept = [line for line in lines if line.strip() != pattern.strip()]
    if len(kept) != len(lines):
        path.write_text("".join(line + "\n" for line in kept))
    return len(lines) - len(kept)
