import json
from pathlib import Path

from keepsake.errors import ConfigError
from keepsake.storage.location import STORAGE_DIRNAME

PROJECT_CONFIG = ".keepsakeconfig"
GLOBAL_CONFIG_FILE = Path.home() / ".keepsake" / "config.json"

DEFAULT_CONFIG = {
    "compression_level": 3,
    "auto_cleanup": True,
    "max_snapshots": 1000,
    "max_age_days": 30,
    "gc_auto_enabled": False,
    "gc_auto": 100,
    "ignore_file": ".keepsakeignore",
}

# key -> (minimum, maximum)
_INT_KEYS = {
    "compression_level": (1, 22),
    "max_snapshots": (1, None),
    "max_age_days": (0, None),
    "gc_auto": (1, None),
}
_BOOL_KEYS = {"auto_cleanup", "gc_auto_enabled"}


def _read_json(path):
    try:
        raw = json.loads(Path(path).read_text())
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return raw


def load_global_config():
    """Load ~/.keepsake/config.json, the user-wide defaults."""
    if GLOBAL_CONFIG_FILE.exists():
        return _read_json(GLOBAL_CONFIG_FILE)
    return {}


def find_config(start=None):
    """Walk up from start (default cwd) to find .keepsakeconfig, like git finds .git."""
    current = Path(start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        config_path = parent / PROJECT_CONFIG
        if config_path.exists():
            return config_path
    return None


def find_project_root(start=None):
    """Directory holding the project's config or storage, else the start directory."""
    current = Path(start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        if (parent / PROJECT_CONFIG).exists() or (parent / STORAGE_DIRNAME / "snapshots").is_dir():
            return parent
    return current


def validate_config(config):
    for key, (low, high) in _INT_KEYS.items():
        value = config.get(key)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{key} must be an integer, got {value!r}")
        if value < low or (high is not None and value > high):
            bounds = f">= {low}" if high is None else f"between {low} and {high}"
            raise ConfigError(f"{key} must be {bounds}, got {value}")
    for key in _BOOL_KEYS:
        if not isinstance(config.get(key), bool):
            raise ConfigError(f"{key} must be true or false, got {config.get(key)!r}")
    if not isinstance(config.get("ignore_file"), str) or not config["ignore_file"]:
        raise ConfigError("ignore_file must be a non-empty string")
    return config


def load_config(start=None):
    # Merge order: defaults → global config → project .keepsakeconfig
    config = {**DEFAULT_CONFIG, **load_global_config()}

    config_path = find_config(start)
    if config_path:
        config.update(_read_json(config_path))

    return validate_config(config)


def init_config(path=None, **overrides):
    """Create a .keepsakeconfig in the given directory."""
    target = Path(path) if path else Path.cwd()
    config_path = target / PROJECT_CONFIG
    init = {
        "max_snapshots": DEFAULT_CONFIG["max_snapshots"],
        "max_age_days": DEFAULT_CONFIG["max_age_days"],
    }
    init.update({k: v for k, v in overrides.items() if v is not None})
    config_path.write_text(json.dumps(init, indent=2) + "\n")
    return config_path
