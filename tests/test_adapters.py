"""
Tests for tool adapters, the command runner and the registry.

Adapter tests use RecordingRunner so they assert on the exact commands
built without starting anything; CommandRunner itself is exercised
with /bin/sh.
"""

import shlex
from pathlib import Path

import pytest

from devbox.adapters.base import version_matches
from devbox.adapters.editors.code_server import CodeServerExtension
from devbox.adapters.languages.node import NodeRuntime, NpmGlobalPackage
from devbox.adapters.languages.python import Poetry, Pyenv, PyenvPython
from devbox.adapters.languages.r import RPackages, RRuntime, install_script
from devbox.adapters.mock import MockTool, RecordingRunner
from devbox.adapters.registry import ToolRegistry
from devbox.adapters.shell.command import CommandRunner
from devbox.adapters.system.apt import AptPackages, installed_packages
from devbox.adapters.vendor.claude import ClaudeCli
from devbox.core.models.env import ShellEnv


# ── CommandRunner ───────────────────────────────────────────────────


@pytest.fixture
def sh_env(bin_dir: Path) -> ShellEnv:
    return ShellEnv(path=(str(bin_dir), "/usr/bin", "/bin"), variables={"GREETING": "hello"})


class TestCommandRunner:
    def test_success_captures_output(self, sh_env):
        receipt = CommandRunner().run(["sh", "-c", 'echo "$GREETING"'], env=sh_env, tool="t", action="a")
        assert receipt.ok
        assert receipt.output == "hello"
        assert receipt.metadata["return_code"] == 0

    def test_nonzero_exit_is_failure(self, sh_env):
        receipt = CommandRunner().run(["sh", "-c", "echo oops; exit 3"], env=sh_env, tool="t", action="a")
        assert receipt.failed
        assert "code 3" in receipt.error
        assert receipt.output == "oops"

    def test_missing_command(self, sh_env):
        receipt = CommandRunner().run(["definitely-not-a-command-xyz"], env=sh_env, tool="t", action="a")
        assert receipt.failed
        assert "Command not found" in receipt.error

    def test_stdin_fed(self, sh_env):
        receipt = CommandRunner().run(["cat"], env=sh_env, tool="t", action="a", input_text="from stdin\n")
        assert receipt.output == "from stdin"

    def test_cwd(self, sh_env, tmp_path: Path):
        receipt = CommandRunner().run(["pwd"], env=sh_env, tool="t", action="a", cwd=str(tmp_path))
        assert receipt.output == str(tmp_path)

    def test_dry_run_runs_nothing(self, sh_env, tmp_path: Path):
        marker = tmp_path / "marker"
        receipt = CommandRunner(dry_run=True).run(
            ["touch", str(marker)], env=sh_env, tool="t", action="a",
        )
        assert receipt.skipped
        assert "[dry-run] would run" in receipt.output
        assert not marker.exists()

    def test_probe(self, sh_env):
        assert CommandRunner().probe(["sh", "-c", "echo probed; exit 2"], env=sh_env) == (2, "probed\n")

    def test_probe_missing(self, sh_env):
        assert CommandRunner().probe(["definitely-not-a-command-xyz"], env=sh_env) is None

    def test_sudo_prefix_for_non_root(self, sh_env, monkeypatch):
        monkeypatch.setattr("devbox.adapters.shell.command.os.geteuid", lambda: 1000)
        argv, _env = CommandRunner._build(
            ["apt-get", "update"], sh_env, True, {"DEBIAN_FRONTEND": "noninteractive"}, True,
        )
        assert argv == ["sudo", "-E", "DEBIAN_FRONTEND=noninteractive", "apt-get", "update"]

    def test_no_sudo_as_root(self, sh_env, monkeypatch):
        monkeypatch.setattr("devbox.adapters.shell.command.os.geteuid", lambda: 0)
        argv, child_env = CommandRunner._build(
            ["apt-get", "update"], sh_env, True, {"DEBIAN_FRONTEND": "noninteractive"}, False,
        )
        assert argv == ["apt-get", "update"]
        assert child_env["DEBIAN_FRONTEND"] == "noninteractive"


# ── System packages ─────────────────────────────────────────────────


DPKG_QUERY = shlex.join(["dpkg-query", "-W", "-f=${Package} ${Status}\n", "git", "curl"])


class TestApt:
    def test_installed_packages(self, env):
        runner = RecordingRunner(probes={
            DPKG_QUERY: (1, "git install ok installed\ncurl deinstall ok config-files\n"),
        })
        assert installed_packages(runner, env, ["git", "curl"]) == {"git"}

    def test_installs_only_missing(self, env):
        runner = RecordingRunner(probes={DPKG_QUERY: (1, "git install ok installed\n")})
        tool = AptPackages(runner, ["git", "curl"])
        assert not tool.is_present(env)

        receipt = tool.install(env)
        assert receipt.ok
        assert runner.commands == ["apt-get update", "apt-get install -y curl"]
        assert all(c.sudo and c.sudo_env == {"DEBIAN_FRONTEND": "noninteractive"} for c in runner.calls)

    def test_all_present(self, env):
        runner = RecordingRunner(probes={
            DPKG_QUERY: (0, "git install ok installed\ncurl install ok installed\n"),
        })
        assert AptPackages(runner, ["git", "curl"]).is_present(env)

    def test_update_failure_stops(self, env):
        runner = RecordingRunner(fail=["apt-get update"])
        receipt = AptPackages(runner, ["git"]).install(env)
        assert receipt.failed
        assert runner.commands == ["apt-get update"]


# ── R ───────────────────────────────────────────────────────────────


class TestR:
    def test_runtime_absent_installs_r_base(self, env):
        runner = RecordingRunner()
        tool = RRuntime(runner)
        assert not tool.is_present(env)
        tool.install(env)
        assert runner.commands == ["apt-get install -y r-base r-base-dev"]

    def test_runtime_version(self, env, make_exe):
        make_exe("R")
        runner = RecordingRunner(probes={"R --version": (0, "R version 4.3.3 (2024-02-29)\nCopyright\n")})
        assert RRuntime(runner).version_string(env) == "R version 4.3.3 (2024-02-29)"

    def test_packages_skip_without_rscript(self, env):
        receipt = RPackages(RecordingRunner(), ["data.table"], "https://cloud.r-project.org").install(env)
        assert receipt.skipped

    def test_packages_install_script_on_stdin(self, env, make_exe):
        make_exe("Rscript")
        runner = RecordingRunner()
        RPackages(runner, ["data.table", "jsonlite"], "https://cloud.r-project.org").install(env)
        call = runner.calls[0]
        assert call.cmd == ["Rscript", "-"]
        assert 'c("data.table","jsonlite")' in call.input_text
        assert "R_LIBS_USER" in call.input_text

    def test_install_script_contents(self):
        script = install_script(["yaml"], "https://cloud.r-project.org")
        assert 'options(repos = c(CRAN = "https://cloud.r-project.org"))' in script
        assert "setdiff(pkgs, rownames(installed.packages()))" in script
        assert "detectCores() - 1" in script


# ── Python toolchain ────────────────────────────────────────────────


class TestPyenv:
    def test_present_when_root_exists(self, env, home: Path):
        root = home / ".pyenv"
        tool = Pyenv(RecordingRunner(), root)
        assert not tool.is_present(env)
        root.mkdir()
        assert tool.is_present(env)

    def test_install_uses_installer_with_root(self, env, home: Path):
        runner = RecordingRunner()
        root = home / ".pyenv"
        Pyenv(runner, root).install(env)
        call = runner.calls[0]
        assert call.cmd == ["bash", "-c", "curl -fsSL https://pyenv.run | bash"]


class TestPyenvPython:
    def _build(self, home: Path, make_exe, version="3.12.12"):
        root = home / ".pyenv"
        make_exe("python", directory=root / "versions" / version / "bin")
        return root, make_exe("pyenv")

    def test_present_when_built_and_global(self, env, home, make_exe):
        root, pyenv = self._build(home, make_exe)
        runner = RecordingRunner(probes={shlex.join([str(pyenv), "global"]): (0, "3.12.12\n")})
        assert PyenvPython(runner, root, "3.12.12").is_present(env)

    def test_not_global_is_absent(self, env, home, make_exe):
        root, pyenv = self._build(home, make_exe)
        runner = RecordingRunner(probes={shlex.join([str(pyenv), "global"]): (0, "system\n")})
        assert not PyenvPython(runner, root, "3.12.12").is_present(env)

    def test_install_then_select(self, env, home, make_exe):
        pyenv = make_exe("pyenv")
        runner = RecordingRunner()
        receipt = PyenvPython(runner, home / ".pyenv", "3.12.12").install(env)
        assert receipt.ok
        assert [c.cmd for c in runner.calls] == [
            [str(pyenv), "install", "-s", "3.12.12"],
            [str(pyenv), "global", "3.12.12"],
        ]

    def test_install_without_pyenv(self, env, home):
        receipt = PyenvPython(RecordingRunner(), home / ".pyenv", "3.12.12").install(env)
        assert receipt.failed


class TestPoetry:
    def test_pinned_version_present(self, env, make_exe):
        make_exe("poetry")
        runner = RecordingRunner(probes={"poetry --version": (0, "Poetry (version 1.8.5)\n")})
        assert Poetry(runner, "1.8.5").is_present(env)

    def test_other_version_absent(self, env, make_exe):
        make_exe("poetry")
        runner = RecordingRunner(probes={"poetry --version": (0, "Poetry (version 1.7.1)\n")})
        assert not Poetry(runner, "1.8.5").is_present(env)

    def test_install_pins_version(self, env):
        runner = RecordingRunner()
        Poetry(runner, "1.8.5").install(env)
        assert runner.calls[0].cmd[-1] == "curl -sSL https://install.python-poetry.org | python3 - --version 1.8.5"

    def test_project_operations_run_in_project(self, env, tmp_path: Path):
        runner = RecordingRunner()
        poetry = Poetry(runner, "1.8.5")
        poetry.configure_in_project(tmp_path, env)
        poetry.env_use(tmp_path, Path("/py/bin/python"), env)
        poetry.install_dependencies(tmp_path, env)
        assert runner.commands == [
            "poetry config virtualenvs.in-project true --local",
            "poetry env use /py/bin/python",
            "poetry install --no-interaction --no-root",
        ]
        assert {c.cwd for c in runner.calls} == {str(tmp_path)}


def test_version_matches():
    assert version_matches("Poetry (version 1.8.5)", "1.8.5")
    assert not version_matches("Poetry (version 1.8.4)", "1.8.5")
    assert not version_matches(None, "1.8.5")


# ── Node ────────────────────────────────────────────────────────────


class TestNode:
    def test_present_when_on_path(self, env, make_exe):
        assert not NodeRuntime(RecordingRunner()).is_present(env)
        make_exe("node")
        assert NodeRuntime(RecordingRunner()).is_present(env)

    def test_install_adds_repo_then_apt(self, env):
        runner = RecordingRunner()
        receipt = NodeRuntime(runner).install(env)
        assert receipt.ok
        assert runner.calls[0].cmd == ["bash", "-c", "curl -fsSL https://deb.nodesource.com/setup_lts.x | bash -"]
        assert runner.calls[0].preserve_env
        assert runner.commands[1] == "apt-get install -y nodejs"

    def test_floating_spec_never_present(self, env, make_exe):
        make_exe("npm")
        tool = NpmGlobalPackage(RecordingRunner(), "npm@latest")
        assert tool.floating
        assert tool.package == "npm"
        assert not tool.is_present(env)

    def test_scoped_package_name(self):
        tool = NpmGlobalPackage(RecordingRunner(), "@github/copilot")
        assert tool.package == "@github/copilot"
        assert not tool.floating

    def test_pinned_version_guarded(self, env, make_exe):
        make_exe("npm")
        runner = RecordingRunner(probes={"npm ls -g --depth=0 typescript@5.4.5": (0, "")})
        tool = NpmGlobalPackage(runner, "typescript@5.4.5")
        assert tool.tag == "5.4.5"
        assert not tool.floating
        assert tool.is_present(env)
        assert runner.probed == ["npm ls -g --depth=0 typescript@5.4.5"]

    def test_pinned_version_mismatch(self, env, make_exe):
        make_exe("npm")
        runner = RecordingRunner(probes={"npm ls -g --depth=0 typescript@5.4.5": (1, "(empty)")})
        assert not NpmGlobalPackage(runner, "typescript@5.4.5").is_present(env)

    def test_scoped_dist_tag_floating(self):
        tool = NpmGlobalPackage(RecordingRunner(), "@github/copilot@next")
        assert tool.package == "@github/copilot"
        assert tool.floating

    def test_scoped_present(self, env, make_exe):
        make_exe("npm")
        runner = RecordingRunner(probes={"npm ls -g --depth=0 @github/copilot": (0, "")})
        assert NpmGlobalPackage(runner, "@github/copilot").is_present(env)

    def test_install_global(self, env, make_exe):
        make_exe("npm")
        runner = RecordingRunner()
        NpmGlobalPackage(runner, "npm@latest").install(env)
        assert runner.commands == ["npm install -g npm@latest"]
        assert runner.calls[0].sudo

    def test_install_without_npm(self, env):
        assert NpmGlobalPackage(RecordingRunner(), "npm@latest").install(env).failed


# ── Editor ──────────────────────────────────────────────────────────


class TestCodeServerExtension:
    def test_skip_without_editor(self, env):
        runner = RecordingRunner()
        receipt = CodeServerExtension(runner, "REditorSupport.r").install(env)
        assert receipt.skipped
        assert runner.calls == []

    def test_install_forced(self, env, make_exe):
        make_exe("code-server")
        runner = RecordingRunner()
        CodeServerExtension(runner, "REditorSupport.r").install(env)
        assert runner.commands == ["code-server --install-extension REditorSupport.r --force"]

    def test_present_case_insensitive(self, env, make_exe):
        make_exe("code-server")
        runner = RecordingRunner(probes={"code-server --list-extensions": (0, "reditorsupport.r\n")})
        assert CodeServerExtension(runner, "REditorSupport.r").is_present(env)


# ── Vendor CLI ──────────────────────────────────────────────────────


class TestClaudeCli:
    def test_install_default_channel(self, env):
        runner = RecordingRunner()
        ClaudeCli(runner).install(env)
        assert runner.calls[0].cmd == ["bash", "-c", "curl -fsSL https://claude.ai/install.sh | bash"]

    def test_install_force_latest(self, env):
        runner = RecordingRunner()
        ClaudeCli(runner, force_latest=True).install(env)
        assert runner.calls[0].cmd[-1].endswith("| bash -s latest")

    def test_update_and_doctor(self, env):
        runner = RecordingRunner()
        cli = ClaudeCli(runner)
        cli.update(env)
        cli.doctor(env)
        assert runner.commands == ["claude update", "claude doctor"]

    def test_version(self, env, make_exe):
        make_exe("claude")
        runner = RecordingRunner(probes={"claude --version": (0, "2.0.14 (Claude Code)\n")})
        assert ClaudeCli(runner).version_string(env) == "2.0.14 (Claude Code)"


# ── Registry ────────────────────────────────────────────────────────


class TestToolRegistry:
    def test_register_and_get(self):
        registry = ToolRegistry()
        registry.register(MockTool("node"))
        assert registry.get("node") is not None
        assert registry.list_tools() == ["node"]

    def test_require_unknown(self):
        with pytest.raises(KeyError, match="No tool registered"):
            ToolRegistry().require("nope")

    def test_overwrite_keeps_latest(self):
        registry = ToolRegistry()
        registry.register(MockTool("node", version="v18"))
        replacement = MockTool("node", version="v20")
        registry.register(replacement)
        assert registry.require("node") is replacement
        assert registry.list_tools() == ["node"]
