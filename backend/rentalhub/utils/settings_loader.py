import copy
import os
from pathlib import Path

import yaml

DEFAULTS: dict = {
    "currency_symbol": "₱",
    "backup": {
        "directory": "./data/backups",
        "timeout_seconds": 600,
        "trash_after_days": 15,
        "delete_after_days": 7,
        "cleanup_by_age_days": 30,
    },
    "assistant": {
        "model": "claude-sonnet-4-6",
        "max_tokens": 500,
        "featured_limit": 5,
    },
}


def _settings_path() -> Path:
    """Read RENTALHUB_SETTINGS_PATH at call time (supports env var changes in tests)."""
    return Path(os.getenv("RENTALHUB_SETTINGS_PATH", "config/settings.yaml"))


# Simple dict cache keyed by path to support test env var overrides
_cache: dict[str, dict] = {}


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings() -> dict:
    """Load operational settings, falling back to built-in defaults for missing keys."""
    path = _settings_path()
    cache_key = str(path)
    if cache_key in _cache:
        return _cache[cache_key]

    loaded = {}
    if path.exists():
        with open(path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}

    result = _merge(DEFAULTS, loaded)
    _cache[cache_key] = result
    return result


def clear_settings_cache() -> None:
    _cache.clear()


def get_backup_settings() -> dict:
    settings = load_settings()["backup"]
    # BACKUP_DIR wins over the file so containers can mount a volume
    directory = os.getenv("BACKUP_DIR")
    if directory:
        settings = {**settings, "directory": directory}
    return settings


def get_assistant_settings() -> dict:
    return load_settings().get("assistant", {})


def format_currency(amount) -> str:
    symbol = load_settings().get("currency_symbol", "")
    return f"{symbol}{float(amount):,.2f}"
