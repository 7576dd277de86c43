"""Operation history.

Appends structured JSON entries to <storage>/history.jsonl. Each entry records
one mutating operation (snapshot, restore, delete, gc) with a timestamp and
whatever counts the operation produced.
"""

import json
from datetime import datetime, timezone
from pathlib import Path


def write_log(log_path, entry):
    """Append a history entry."""
    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    entry = {"timestamp": datetime.now(timezone.utc).isoformat(), **entry}
    with open(log_path, "a") as f:
        f.write(json.dumps(entry) + "\n")
    return entry


def read_log(log_path, limit=None):
    """Entries oldest-first. Lines that aren't valid JSON are skipped."""
    log_path = Path(log_path)
    if not log_path.exists():
        return []
    entries = []
    for line in log_path.read_text().splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entries.append(json.loads(line))
        except json.JSONDecodeError:
            continue
    if limit is not None:
        entries = entries[-limit:]
    return entries
