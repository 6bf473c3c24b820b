"""
code-server adapter — editor extensions, only when code-server exists.
"""

from __future__ import annotations

from devbox.adapters.base import ToolAdapter
from devbox.adapters.shell.command import CommandRunner
from devbox.core.models.env import ShellEnv
from devbox.core.models.receipt import Receipt

CLI = "code-server"


class CodeServerExtension(ToolAdapter):
    """A single code-server extension, installed with ``--force``."""

    def __init__(self, runner: CommandRunner, extension: str):
        self._runner = runner
        self.extension = extension

    @property
    def name(self) -> str:
        return f"code-server:{self.extension}"

    def editor_available(self, env: ShellEnv) -> bool:
        return env.which(CLI) is not None

    def is_present(self, env: ShellEnv) -> bool:
        if not self.editor_available(env):
            return False
        result = self._runner.probe([CLI, "--list-extensions"], env=env, timeout=30)
        if result is None or result[0] != 0:
            return False
        wanted = self.extension.lower()
        return any(line.strip().lower() == wanted for line in result[1].splitlines())

    def install(self, env: ShellEnv) -> Receipt:
        if not self.editor_available(env):
            return Receipt.skip(tool=self.name, action="install", reason=f"{CLI} not installed")
        return self._runner.run(
            [CLI, "--install-extension", self.extension, "--force"],
            env=env,
            tool=self.name,
            action="install",
        )
