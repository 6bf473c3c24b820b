"""
Test doubles — a fake tool and a recording command runner.

MockTool stands in for any ToolAdapter; RecordingRunner stands in for
CommandRunner and lets adapter tests assert on the exact commands built
without starting processes.
"""

from __future__ import annotations

import shlex
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from devbox.adapters.base import ToolAdapter
from devbox.core.models.env import ShellEnv
from devbox.core.models.receipt import Receipt


class MockTool(ToolAdapter):
    """Configurable fake tool.

    ``install`` flips the tool to present on success, so a second
    guarded install against the same instance is a no-op.
    """

    def __init__(
        self,
        tool_name: str = "mock",
        present: bool = False,
        version: str | None = None,
        fail_install: bool = False,
        required_version: str | None = None,
    ):
        self._name = tool_name
        self._present = present
        self._version = version
        self._fail_install = fail_install
        self.required_version = required_version
        self.install_calls = 0

    @property
    def name(self) -> str:
        return self._name

    def is_present(self, env: ShellEnv) -> bool:
        if not self._present:
            return False
        if self.required_version:
            return bool(self._version) and self.required_version in self._version
        return True

    def install(self, env: ShellEnv) -> Receipt:
        self.install_calls += 1
        if self._fail_install:
            return Receipt.failure(tool=self._name, action="install", error="Mock failure")
        self._present = True
        if self.required_version:
            self._version = self.required_version
        return Receipt.success(tool=self._name, action="install", output="[mock] installed")

    def version_string(self, env: ShellEnv) -> str | None:
        return self._version if self._present else None


@dataclass
class RecordedCall:
    """One ``run`` invocation seen by RecordingRunner."""

    cmd: list[str]
    tool: str
    action: str
    sudo: bool = False
    sudo_env: dict[str, str] = field(default_factory=dict)
    preserve_env: bool = False
    cwd: str | None = None
    input_text: str | None = None
    path: tuple[str, ...] = ()

    @property
    def command(self) -> str:
        return shlex.join(self.cmd)


class RecordingRunner:
    """CommandRunner double.

    ``fail`` marks commands (matched by substring of the joined command)
    that return a failed receipt; ``probes`` maps a joined probe command
    to its ``(return_code, output)``.
    """

    def __init__(
        self,
        fail: Sequence[str] = (),
        probes: Mapping[str, tuple[int, str]] | None = None,
    ):
        self.dry_run = False
        self.calls: list[RecordedCall] = []
        self.probed: list[str] = []
        self._fail = list(fail)
        self._probes = dict(probes or {})

    @property
    def commands(self) -> list[str]:
        return [c.command for c in self.calls]

    def run(
        self,
        cmd: Sequence[str],
        *,
        env: ShellEnv,
        tool: str,
        action: str,
        sudo: bool = False,
        sudo_env: Mapping[str, str] | None = None,
        preserve_env: bool = False,
        cwd: str | None = None,
        input_text: str | None = None,
    ) -> Receipt:
        call = RecordedCall(
            cmd=list(cmd),
            tool=tool,
            action=action,
            sudo=sudo,
            sudo_env=dict(sudo_env or {}),
            preserve_env=preserve_env,
            cwd=cwd,
            input_text=input_text,
            path=env.path,
        )
        self.calls.append(call)
        if any(pattern in call.command for pattern in self._fail):
            return Receipt.failure(
                tool=tool,
                action=action,
                error=f"Command exited with code 1: {call.command}",
                metadata={"command": call.command, "return_code": 1},
            )
        return Receipt.success(
            tool=tool,
            action=action,
            metadata={"command": call.command, "return_code": 0},
        )

    def probe(
        self,
        cmd: Sequence[str],
        *,
        env: ShellEnv,
        timeout: int = 10,
    ) -> tuple[int, str] | None:
        command = shlex.join(cmd)
        self.probed.append(command)
        return self._probes.get(command)
