"""
R adapter — the R runtime and user-library CRAN packages.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from devbox.adapters.base import ToolAdapter
from devbox.adapters.shell.command import CommandRunner
from devbox.adapters.system.apt import apt_install
from devbox.core.models.env import ShellEnv
from devbox.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

R_APT_PACKAGES = ["r-base", "r-base-dev"]


def _r_vector(items: Sequence[str]) -> str:
    return "c(" + ",".join(f'"{i}"' for i in items) + ")"


def install_script(packages: Sequence[str], mirror: str) -> str:
    """R program that installs whichever of ``packages`` are missing.

    Installs into ``R_LIBS_USER`` (created if needed) using all but one core.
    """
    return "\n".join([
        f'options(repos = c(CRAN = "{mirror}"))',
        'dir.create(Sys.getenv("R_LIBS_USER"), recursive = TRUE, showWarnings = FALSE)',
        f"pkgs <- {_r_vector(packages)}",
        "need <- setdiff(pkgs, rownames(installed.packages()))",
        "if (length(need)) {",
        '  install.packages(need, lib = Sys.getenv("R_LIBS_USER"),',
        "                   Ncpus = max(1, parallel::detectCores() - 1))",
        "}",
        "",
    ])


def missing_script(packages: Sequence[str]) -> str:
    """R program printing one missing package name per line."""
    return (
        f"pkgs <- {_r_vector(packages)}; "
        "cat(setdiff(pkgs, rownames(installed.packages())), sep = '\\n')"
    )


class RRuntime(ToolAdapter):
    """R itself, from the distribution's ``r-base`` packages."""

    def __init__(self, runner: CommandRunner):
        self._runner = runner

    @property
    def name(self) -> str:
        return "r"

    def is_present(self, env: ShellEnv) -> bool:
        return env.which("R") is not None

    def install(self, env: ShellEnv) -> Receipt:
        return apt_install(self._runner, env, R_APT_PACKAGES, tool=self.name)

    def version_string(self, env: ShellEnv) -> str | None:
        if not self.is_present(env):
            return None
        result = self._runner.probe(["R", "--version"], env=env)
        if result is None or result[0] != 0:
            return None
        lines = result[1].splitlines()
        return lines[0].strip() if lines else None


class RPackages(ToolAdapter):
    """A fixed set of CRAN packages in the user library."""

    def __init__(self, runner: CommandRunner, packages: Sequence[str], mirror: str):
        self._runner = runner
        self.packages = list(packages)
        self.mirror = mirror

    @property
    def name(self) -> str:
        return "r-packages"

    def missing(self, env: ShellEnv) -> list[str]:
        if env.which("Rscript") is None:
            return list(self.packages)
        result = self._runner.probe(["Rscript", "-e", missing_script(self.packages)], env=env, timeout=60)
        if result is None or result[0] != 0:
            return list(self.packages)
        return [line.strip() for line in result[1].splitlines() if line.strip() in self.packages]

    def is_present(self, env: ShellEnv) -> bool:
        return not self.missing(env)

    def install(self, env: ShellEnv) -> Receipt:
        if env.which("Rscript") is None:
            return Receipt.skip(tool=self.name, action="install", reason="R is not installed")
        return self._runner.run(
            ["Rscript", "-"],
            env=env,
            tool=self.name,
            action="install",
            input_text=install_script(self.packages, self.mirror),
        )
