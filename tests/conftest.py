"""
Shared test fixtures and configuration.
"""

import stat
from collections.abc import Callable
from pathlib import Path

import pytest

from devbox.core.models.config import ProvisionConfig
from devbox.core.models.env import ShellEnv


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """A throwaway home directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def bin_dir(tmp_path: Path) -> Path:
    """A directory for fake executables, put on the test env's PATH."""
    path = tmp_path / "bin"
    path.mkdir()
    return path


@pytest.fixture
def make_exe(bin_dir: Path) -> Callable[..., Path]:
    """Create an executable shell script named ``name`` in ``bin_dir``."""

    def _make(name: str, body: str = "exit 0", directory: Path | None = None) -> Path:
        target = (directory or bin_dir) / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(f"#!/bin/sh\n{body}\n")
        target.chmod(target.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return target

    return _make


@pytest.fixture
def env(bin_dir: Path, home: Path) -> ShellEnv:
    """An env whose PATH is only the fake bin dir."""
    return ShellEnv(path=(str(bin_dir),), variables={"HOME": str(home)})


@pytest.fixture
def config(home: Path) -> ProvisionConfig:
    """Defaults rooted in the throwaway home, no projects."""
    return ProvisionConfig(home=str(home), projects=[])
