"""
Document loader for src/config/.
src/lib/config_loader.py

YAML and JSON documents (JSON is valid YAML) are parsed once and kept
until the file mtime changes, so edits apply on the next load.
"""

import os
import threading
import logging

import yaml

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Cache storage
# ─────────────────────────────────────────────────────────────────────────────

_cache = {}  # path → { "mtime": float, "data": any }
_cache_lock = threading.Lock()

_CONFIG_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "config")

INITIALISE_REGISTERS_FILE = "initialise_registers.yaml"
SCHEDULE_FILE = "schedule.yaml"


_config_dir_override = None


def set_config_dir(path):
    """Read documents from this directory. None restores the default."""
    global _config_dir_override
    _config_dir_override = str(path) if path else None


def get_config_dir():
    """set_config_dir(), then DISPATCHER_CONFIG_DIR, then src/config/."""
    return _config_dir_override or os.environ.get("DISPATCHER_CONFIG_DIR", _CONFIG_DIR)


def get_config_path(name, config_dir=None):
    return os.path.join(config_dir or get_config_dir(), name)


def _load_yaml_with_cache(filepath):
    """Parsed document, re-read only when the file mtime moved."""
    if not os.path.exists(filepath):
        logger.error(f"[ConfigLoader] File not found: {filepath}")
        return None

    mtime = os.path.getmtime(filepath)
    with _cache_lock:
        cached = _cache.get(filepath)
        if cached and cached["mtime"] == mtime:
            return cached["data"]

    with open(filepath, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    basename = os.path.basename(filepath)
    if cached:
        logger.info(f"[ConfigLoader] Reloaded: {basename}")
    else:
        logger.info(f"[ConfigLoader] Loaded: {basename}")

    with _cache_lock:
        _cache[filepath] = {"mtime": mtime, "data": data}
    return data


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────

def load_document(path):
    """
    Load a YAML or JSON document.

    Returns the parsed data, or None if the file does not exist.
    Raises yaml.YAMLError if the file cannot be parsed.
    """
    return _load_yaml_with_cache(str(path))


def invalidate(path=None):
    """Drop one cached document, or all of them."""
    with _cache_lock:
        if path is None:
            _cache.clear()
        else:
            _cache.pop(str(path), None)
