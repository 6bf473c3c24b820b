"""
Vendor settings file — merge a fixed ``env`` payload into JSON.

The settings file belongs to the user; only the payload keys inside
``env`` are ours.  Everything else (other top-level keys, other ``env``
keys) is carried through unchanged and in its original order.

Writes are atomic (temp file in the same directory, then replace) and
the result is readable by the owner only, since the payload holds a
bearer token.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SETTINGS_MODE = 0o600


class SettingsError(Exception):
    """Raised when an existing settings file cannot be merged."""


def merge_env_settings(data: Mapping[str, Any], payload: Mapping[str, str]) -> dict[str, Any]:
    """Return ``data`` with ``payload`` merged into its ``env`` object.

    Payload keys overwrite, other keys are preserved, ``env`` is created
    if absent. ``data`` itself is not modified.

    Raises:
        SettingsError: If ``env`` exists but is not an object.
    """
    merged = dict(data)
    env = merged.get("env")
    if env is None:
        env = {}
    if not isinstance(env, dict):
        raise SettingsError(f"'env' must be a JSON object, got {type(env).__name__}")
    merged["env"] = {**env, **payload}
    return merged


def read_settings(path: Path) -> dict[str, Any]:
    """Load the settings object; missing or blank file → ``{}``."""
    if not path.is_file():
        return {}
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SettingsError(f"Cannot read {path}: {e}") from e
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise SettingsError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(data, dict):
        raise SettingsError(f"Expected a JSON object in {path}, got {type(data).__name__}")
    return data


def dump_settings(data: Mapping[str, Any]) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def write_settings(path: Path, data: Mapping[str, Any]) -> None:
    """Atomically replace ``path`` with ``data``, mode 0600."""
    path.parent.mkdir(parents=True, exist_ok=True)
    content = dump_settings(data)

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".settings_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.chmod(tmp, SETTINGS_MODE)
        os.replace(tmp, path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
    os.chmod(path, SETTINGS_MODE)


def write_env_settings(path: Path, payload: Mapping[str, str]) -> dict[str, Any]:
    """Read, merge ``payload`` into ``env``, write back. Returns the result.

    Raises:
        SettingsError: If the existing file is not a JSON object.
    """
    merged = merge_env_settings(read_settings(path), payload)
    write_settings(path, merged)
    logger.debug("Merged %d env key(s) into %s", len(payload), path)
    return merged
