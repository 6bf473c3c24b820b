"""
Python adapters — pyenv, a pyenv-managed interpreter, and Poetry.

pyenv and Poetry are installed with their official network installers;
the interpreter is built by pyenv itself.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from devbox.adapters.base import ToolAdapter, version_matches
from devbox.adapters.shell.command import CommandRunner
from devbox.core.models.env import ShellEnv
from devbox.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


def _first_line(result: tuple[int, str] | None) -> str | None:
    if result is None or result[0] != 0:
        return None
    lines = [ln.strip() for ln in result[1].splitlines() if ln.strip()]
    return lines[0] if lines else None


class Pyenv(ToolAdapter):
    """The pyenv version manager, rooted at ``root``."""

    def __init__(self, runner: CommandRunner, root: Path, installer_url: str = "https://pyenv.run"):
        self._runner = runner
        self.root = root
        self.installer_url = installer_url

    @property
    def name(self) -> str:
        return "pyenv"

    def is_present(self, env: ShellEnv) -> bool:
        return self.root.is_dir()

    def install(self, env: ShellEnv) -> Receipt:
        return self._runner.run(
            ["bash", "-c", f"curl -fsSL {self.installer_url} | bash"],
            env=env.with_vars(PYENV_ROOT=str(self.root)),
            tool=self.name,
            action="install",
        )

    def version_string(self, env: ShellEnv) -> str | None:
        exe = env.which("pyenv")
        if exe is None:
            return None
        return _first_line(self._runner.probe([exe, "--version"], env=env))


class PyenvPython(ToolAdapter):
    """A pinned CPython built by pyenv and selected as the global version."""

    def __init__(self, runner: CommandRunner, root: Path, version: str):
        self._runner = runner
        self.root = root
        self.version = version

    @property
    def name(self) -> str:
        return "python"

    @property
    def interpreter(self) -> Path:
        return self.root / "versions" / self.version / "bin" / "python"

    def _is_built(self) -> bool:
        return os.access(self.interpreter, os.X_OK)

    def is_present(self, env: ShellEnv) -> bool:
        if not self._is_built():
            return False
        pyenv = env.which("pyenv")
        if pyenv is None:
            return False
        return _first_line(self._runner.probe([pyenv, "global"], env=env)) == self.version

    def install(self, env: ShellEnv) -> Receipt:
        pyenv = env.which("pyenv")
        if pyenv is None:
            return Receipt.failure(tool=self.name, action="install", error="pyenv is not on PATH")

        built = self._runner.run(
            [pyenv, "install", "-s", self.version],
            env=env,
            tool=self.name,
            action="install",
        )
        if built.failed:
            return built
        return self._runner.run(
            [pyenv, "global", self.version],
            env=env,
            tool=self.name,
            action="select",
        )

    def version_string(self, env: ShellEnv) -> str | None:
        python = env.which("python3")
        if python is None:
            return None
        return _first_line(self._runner.probe([python, "--version"], env=env))


class Poetry(ToolAdapter):
    """Poetry, pinned to ``version``.

    Present only when ``poetry --version`` mentions the pinned version,
    so a mismatched install is replaced.
    """

    def __init__(
        self,
        runner: CommandRunner,
        version: str,
        installer_url: str = "https://install.python-poetry.org",
    ):
        self._runner = runner
        self.required_version = version
        self.installer_url = installer_url

    @property
    def name(self) -> str:
        return "poetry"

    def is_present(self, env: ShellEnv) -> bool:
        if env.which("poetry") is None:
            return False
        return version_matches(self.version_string(env), self.required_version)

    def install(self, env: ShellEnv) -> Receipt:
        return self._runner.run(
            [
                "bash", "-c",
                f"curl -sSL {self.installer_url} | python3 - --version {self.required_version}",
            ],
            env=env,
            tool=self.name,
            action="install",
        )

    def version_string(self, env: ShellEnv) -> str | None:
        if env.which("poetry") is None:
            return None
        return _first_line(self._runner.probe(["poetry", "--version"], env=env))

    # ── Project operations ──────────────────────────────────────

    def configure_in_project(self, project: Path, env: ShellEnv) -> Receipt:
        """``poetry config virtualenvs.in-project true --local``"""
        return self._runner.run(
            ["poetry", "config", "virtualenvs.in-project", "true", "--local"],
            env=env,
            tool=self.name,
            action="config",
            cwd=str(project),
        )

    def env_use(self, project: Path, interpreter: Path, env: ShellEnv) -> Receipt:
        """Bind the project's environment to ``interpreter``."""
        return self._runner.run(
            ["poetry", "env", "use", str(interpreter)],
            env=env,
            tool=self.name,
            action="env-use",
            cwd=str(project),
        )

    def install_dependencies(self, project: Path, env: ShellEnv) -> Receipt:
        return self._runner.run(
            ["poetry", "install", "--no-interaction", "--no-root"],
            env=env,
            tool=self.name,
            action="install-deps",
            cwd=str(project),
        )
