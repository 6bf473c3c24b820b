"""
APT adapter — Debian/Ubuntu system packages.

Provides the shared ``apt_install`` helper (used by the R and Node
adapters too) and the ``AptPackages`` tool for the base library list.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from devbox.adapters.base import ToolAdapter
from devbox.adapters.shell.command import CommandRunner
from devbox.core.models.env import ShellEnv
from devbox.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

# apt must never prompt
APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def apt_update(runner: CommandRunner, env: ShellEnv, tool: str = "apt") -> Receipt:
    return runner.run(
        ["apt-get", "update"],
        env=env,
        tool=tool,
        action="apt-update",
        sudo=True,
        sudo_env=APT_ENV,
    )


def apt_install(
    runner: CommandRunner,
    env: ShellEnv,
    packages: Sequence[str],
    tool: str = "apt",
) -> Receipt:
    """``apt-get install -y <packages>`` with sudo and a non-interactive frontend."""
    return runner.run(
        ["apt-get", "install", "-y", *packages],
        env=env,
        tool=tool,
        action="apt-install",
        sudo=True,
        sudo_env=APT_ENV,
    )


def installed_packages(runner: CommandRunner, env: ShellEnv, packages: Sequence[str]) -> set[str]:
    """Names from ``packages`` that dpkg reports as installed."""
    if not packages:
        return set()
    result = runner.probe(
        ["dpkg-query", "-W", "-f=${Package} ${Status}\n", *packages],
        env=env,
    )
    if result is None:
        return set()
    _code, output = result
    found: set[str] = set()
    for line in output.splitlines():
        if line.endswith("install ok installed"):
            found.add(line.split(" ", 1)[0])
    return found


class AptPackages(ToolAdapter):
    """The fixed list of system libraries and build tools.

    Present when dpkg reports every package installed; otherwise one
    ``apt-get update`` followed by one install of the missing ones.
    """

    def __init__(self, runner: CommandRunner, packages: Sequence[str]):
        self._runner = runner
        self.packages = list(packages)

    @property
    def name(self) -> str:
        return "system-packages"

    def missing(self, env: ShellEnv) -> list[str]:
        have = installed_packages(self._runner, env, self.packages)
        return [p for p in self.packages if p not in have]

    def is_present(self, env: ShellEnv) -> bool:
        return not self.missing(env)

    def install(self, env: ShellEnv) -> Receipt:
        missing = self.missing(env) or self.packages
        logger.info("Installing %d system package(s): %s", len(missing), " ".join(missing))

        update = apt_update(self._runner, env, tool=self.name)
        if update.failed:
            return update
        return apt_install(self._runner, env, missing, tool=self.name)
