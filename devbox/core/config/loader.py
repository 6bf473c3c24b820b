"""
Configuration loader — defaults, devbox.yml, then environment.

Precedence (lowest to highest):
    model defaults  <  devbox.yml  <  environment variables  <  CLI flags

CLI flags are applied by the caller on the returned model.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from devbox.core.models.config import ProvisionConfig

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "devbox.yml"

# Environment variable → dotted config key
ENV_OVERRIDES: dict[str, str] = {
    "PYENV_ROOT": "pyenv_root",
    "PYTHON_VERSION": "python_version",
    "POETRY_VERSION": "poetry_version",
    "FORCE_LATEST": "vendor.force_latest",
    "REGION": "vendor.region",
    "TOKEN": "vendor.token",
    "DEVBOX_LOG_FILE": "log_file",
}


class ConfigError(Exception):
    """Raised when the provisioning configuration is invalid or unreadable."""


def find_config_file(
    start_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Path | None:
    """Locate devbox.yml.

    ``DEVBOX_CONFIG`` wins when set; otherwise walk up from ``start_dir``
    (default: cwd) to the filesystem root.
    """
    env = os.environ if environ is None else environ
    explicit = env.get("DEVBOX_CONFIG")
    if explicit:
        return Path(explicit)

    current = (start_dir or Path.cwd()).resolve()
    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def read_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML config file into a mapping.

    Raises:
        ConfigError: If the file is missing, unreadable or not a mapping.
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Layer the recognised environment variables over ``data``.

    Empty values are ignored, except that ``FORCE_LATEST`` is a flag:
    any non-empty value turns it on.

    Raises:
        ConfigError: If an overridden section is present but not a mapping.
    """
    merged = {k: (dict(v) if isinstance(v, dict) else v) for k, v in data.items()}
    for var, key in ENV_OVERRIDES.items():
        value = environ.get(var)
        if not value:
            continue
        if var == "FORCE_LATEST":
            value = True  # type: ignore[assignment]
        if "." in key:
            section, field = key.split(".", 1)
            target = merged.get(section)
            if target is None:
                # An empty "vendor:" key loads as None
                target = merged[section] = {}
            elif not isinstance(target, dict):
                raise ConfigError(
                    f"'{section}' must be a mapping, got {type(target).__name__}"
                )
            target[field] = value
        else:
            merged[key] = value
    return merged


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ProvisionConfig:
    """Load and validate the provisioning config.

    Args:
        path: Explicit config file. If None, searched for; a missing
            file is fine and means "defaults only".
        environ: Environment to read overrides from (default: os.environ).

    Returns:
        Validated ProvisionConfig.

    Raises:
        ConfigError: If an explicit file is missing or any source is invalid.
    """
    env = os.environ if environ is None else environ

    data: dict[str, Any] = {}
    if path is None:
        path = find_config_file(environ=env)
        if path is not None and not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
    if path is not None:
        logger.debug("Loading config from %s", path)
        data = read_config_file(path)

    data = apply_env_overrides(data, env)
    if "home" not in data and env.get("HOME"):
        data["home"] = env["HOME"]

    try:
        config = ProvisionConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.debug(
        "Config: python %s, poetry %s, %d project(s)",
        config.python_version, config.poetry_version, len(config.projects),
    )
    return config
