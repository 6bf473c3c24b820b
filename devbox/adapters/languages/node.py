"""
Node.js adapters — the runtime from NodeSource and global npm packages.

Everything here is best-effort: callers run these as optional steps.
"""

from __future__ import annotations

import logging
import re

from devbox.adapters.base import ToolAdapter
from devbox.adapters.shell.command import CommandRunner
from devbox.adapters.system.apt import apt_install
from devbox.core.models.env import ShellEnv
from devbox.core.models.receipt import Receipt, combine

logger = logging.getLogger(__name__)

# npm dist-tags such as latest or next; versions and ranges are pins
_DIST_TAG = re.compile(r"(?!v\d)[A-Za-z][\w.-]*")


def _version(runner: CommandRunner, command: str, env: ShellEnv) -> str | None:
    if env.which(command) is None:
        return None
    result = runner.probe([command, "--version"], env=env)
    if result is None or result[0] != 0:
        return None
    return result[1].strip() or None


class NodeRuntime(ToolAdapter):
    """Node.js LTS via the NodeSource apt repository."""

    def __init__(self, runner: CommandRunner, setup_url: str = "https://deb.nodesource.com/setup_lts.x"):
        self._runner = runner
        self.setup_url = setup_url

    @property
    def name(self) -> str:
        return "node"

    def is_present(self, env: ShellEnv) -> bool:
        return env.which("node") is not None

    def install(self, env: ShellEnv) -> Receipt:
        receipts = [
            self._runner.run(
                ["bash", "-c", f"curl -fsSL {self.setup_url} | bash -"],
                env=env,
                tool=self.name,
                action="add-repository",
                sudo=True,
                preserve_env=True,
            ),
        ]
        # The distro's own nodejs is still worth having if the repo setup failed
        receipts.append(apt_install(self._runner, env, ["nodejs"], tool=self.name))
        return combine(self.name, "install", receipts)

    def version_string(self, env: ShellEnv) -> str | None:
        return _version(self._runner, "node", env)

    def npm_version(self, env: ShellEnv) -> str | None:
        return _version(self._runner, "npm", env)


class NpmGlobalPackage(ToolAdapter):
    """One ``npm install -g`` package spec.

    A spec on a dist-tag (``npm@latest``, ``pkg@next``) is never
    considered present, so it is re-installed on every run. Untagged and
    version-pinned specs are guarded with ``npm ls -g``.
    """

    def __init__(self, runner: CommandRunner, spec: str):
        self._runner = runner
        self.spec = spec

    @property
    def name(self) -> str:
        return f"npm:{self.spec}"

    @property
    def package(self) -> str:
        """Package name without a version/tag suffix (scopes kept)."""
        head, sep, _tag = self.spec.rpartition("@")
        if sep and head:
            return head
        return self.spec

    @property
    def tag(self) -> str | None:
        if self.package == self.spec:
            return None
        return self.spec[len(self.package) + 1:]

    @property
    def floating(self) -> bool:
        return self.tag is not None and _DIST_TAG.fullmatch(self.tag) is not None

    def is_present(self, env: ShellEnv) -> bool:
        if self.floating or env.which("npm") is None:
            return False
        # npm ls exits non-zero when the installed version does not satisfy a pin
        result = self._runner.probe(["npm", "ls", "-g", "--depth=0", self.spec], env=env, timeout=30)
        return result is not None and result[0] == 0

    def install(self, env: ShellEnv) -> Receipt:
        if env.which("npm") is None:
            return Receipt.failure(tool=self.name, action="install", error="npm is not on PATH")
        return self._runner.run(
            ["npm", "install", "-g", self.spec],
            env=env,
            tool=self.name,
            action="install",
            sudo=True,
            preserve_env=True,
        )
