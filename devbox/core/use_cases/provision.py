"""
Provision use case — the full development-machine sequence.

This is the top-level orchestrator: it builds the tool registry from
the config, declares the fixed step list with each step's criticality,
runs it through the engine and returns a result the CLI can render.

Step order (never reordered, only filtered):

    system-packages  r-runtime  r-packages  editor-extension
    pyenv  python  poetry  projects  node  versions
    vendor-cli  local-bin-path  vendor-settings  self-check
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import cast

from devbox.adapters.editors.code_server import CodeServerExtension
from devbox.adapters.languages.node import NodeRuntime, NpmGlobalPackage
from devbox.adapters.languages.python import Poetry, Pyenv, PyenvPython
from devbox.adapters.languages.r import RPackages, RRuntime
from devbox.adapters.registry import ToolRegistry
from devbox.adapters.shell.command import CommandRunner
from devbox.adapters.system.apt import AptPackages
from devbox.adapters.vendor.claude import ClaudeCli
from devbox.core.engine.executor import (
    ProvisionAborted,
    ProvisionReport,
    Step,
    StepContext,
    guarded_install,
    run_steps,
    select_steps,
)
from devbox.core.models.config import ProvisionConfig
from devbox.core.models.env import ShellEnv
from devbox.core.models.receipt import Receipt, combine
from devbox.core.observability.logging_config import banner
from devbox.core.services.doctor import run_self_check
from devbox.core.services.profile import ensure_profile_lines, export_path_line, export_var_line
from devbox.core.services.projects import configure_projects
from devbox.core.services.settings import SettingsError, write_env_settings
from devbox.core.services.versions import collect_versions, log_versions

logger = logging.getLogger(__name__)


# ── Registry ────────────────────────────────────────────────────────


def build_registry(config: ProvisionConfig, runner: CommandRunner) -> ToolRegistry:
    """Register every tool the sequence touches."""
    registry = ToolRegistry()
    registry.register(AptPackages(runner, config.apt_packages))
    registry.register(RRuntime(runner))
    registry.register(RPackages(runner, config.r_packages, config.cran_mirror))
    for ext in config.editor_extensions:
        registry.register(CodeServerExtension(runner, ext))
    registry.register(Pyenv(runner, config.pyenv_root_path, config.pyenv_installer_url))
    registry.register(PyenvPython(runner, config.pyenv_root_path, config.python_version))
    registry.register(Poetry(runner, config.poetry_version, config.poetry_installer_url))
    registry.register(NodeRuntime(runner, config.nodesource_url))
    for spec in config.npm_globals:
        registry.register(NpmGlobalPackage(runner, spec))
    registry.register(ClaudeCli(
        runner,
        installer_url=config.vendor.installer_url,
        force_latest=config.vendor.force_latest,
        command=config.vendor.command,
    ))
    logger.debug("Tools: %s", ", ".join(registry.list_tools()))
    return registry


# ── Steps ───────────────────────────────────────────────────────────


def _system_packages(ctx: StepContext) -> Receipt:
    return guarded_install(ctx.tool("system-packages"), ctx.env)


def _r_runtime(ctx: StepContext) -> Receipt:
    return guarded_install(ctx.tool("r"), ctx.env)


def _r_packages(ctx: StepContext) -> Receipt:
    if not ctx.tool("r").is_present(ctx.env):
        return Receipt.skip(tool="r-packages", action="install", reason="R is not installed")
    return guarded_install(ctx.tool("r-packages"), ctx.env)


def _editor_extension(ctx: StepContext) -> Receipt:
    receipts = [
        guarded_install(ctx.tool(f"code-server:{ext}"), ctx.env)
        for ext in ctx.config.editor_extensions
    ]
    return combine("editor-extension", "install", receipts)


def _pyenv(ctx: StepContext) -> Receipt:
    config = ctx.config
    tool = ctx.tool("pyenv")
    installed = guarded_install(tool, ctx.env)
    if installed.failed:
        return installed

    root = config.pyenv_root_path
    activation = {
        "path_prepend": [str(root / "bin"), str(root / "shims")],
        "env_set": {"PYENV_ROOT": str(root)},
    }
    active_env = ctx.env.apply(activation)
    if not ctx.dry_run and active_env.which("pyenv") is None:
        logger.error("pyenv not on PATH; check install steps above.")

    shell_root = config.shell_path(config.pyenv_root)
    ensure_profile_lines(
        config.profile_paths,
        [
            export_var_line("PYENV_ROOT", shell_root),
            export_path_line("$PYENV_ROOT/bin"),
            'eval "$(pyenv init -)"',
        ],
        dry_run=ctx.dry_run,
    )

    return installed.model_copy(update={"metadata": {**installed.metadata, **activation}})


def _python(ctx: StepContext) -> Receipt:
    if ctx.env.which("pyenv") is None:
        return Receipt.skip(tool="python", action="install", reason="pyenv is not on PATH")
    return guarded_install(ctx.tool("python"), ctx.env)


def _poetry(ctx: StepContext) -> Receipt:
    config = ctx.config
    # Poetry's installer targets ~/.local/bin; look there before deciding to reinstall
    local_bin = str(config.local_bin_path)
    env = ctx.env.with_path_prepended(local_bin)

    installed = guarded_install(ctx.tool("poetry"), env)
    ensure_profile_lines(
        config.profile_paths,
        [export_path_line(config.shell_path(config.local_bin))],
        dry_run=ctx.dry_run,
    )
    return installed.model_copy(
        update={"metadata": {**installed.metadata, "path_prepend": [local_bin]}},
    )


def _projects(ctx: StepContext) -> Receipt:
    config = ctx.config
    if not config.projects:
        return Receipt.skip(tool="projects", action="configure", reason="no projects configured")
    poetry = cast(Poetry, ctx.tool("poetry"))
    outcomes = configure_projects(
        config.projects,
        poetry,
        config.pyenv_python,
        ctx.env,
        manifest=config.project_manifest,
    )
    metadata = {"projects": [o.to_dict() for o in outcomes]}

    failed = [o for o in outcomes if o.status == "failed"]
    if failed:
        return Receipt.failure(
            tool="projects",
            action="configure",
            error="; ".join(f"{o.path}: {o.reason}" for o in failed),
            metadata=metadata,
        )
    if all(o.status == "skipped" for o in outcomes):
        return Receipt.skip(tool="projects", action="configure", reason="no project to configure", metadata=metadata)
    configured = sum(1 for o in outcomes if o.status == "ok")
    return Receipt.success(
        tool="projects",
        action="configure",
        output=f"{configured} project(s) configured",
        metadata=metadata,
    )


def _node(ctx: StepContext) -> Receipt:
    receipts = [guarded_install(ctx.tool("node"), ctx.env)]
    for spec in ctx.config.npm_globals:
        receipts.append(guarded_install(ctx.tool(f"npm:{spec}"), ctx.env))
    return combine("node", "install", receipts)


def _versions(ctx: StepContext) -> Receipt:
    lines = collect_versions(ctx.registry, ctx.env)
    log_versions(lines)
    return Receipt.success(
        tool="versions",
        action="report",
        output="\n".join(line.render() for line in lines),
        metadata={"versions": {line.label: line.version for line in lines}},
    )


def _vendor_cli(ctx: StepContext) -> Receipt:
    cli = cast(ClaudeCli, ctx.tool(ctx.config.vendor.command))
    # The native installer drops the binary in ~/.local/bin
    env = ctx.env.with_path_prepended(str(ctx.config.local_bin_path))
    if not cli.is_present(env):
        return cli.install(env)

    updated = cli.update(env)
    if updated.failed:
        logger.warning("[%s] update failed (ignored): %s", cli.command, updated.error)
        return Receipt.success(
            tool="vendor-cli",
            action="update",
            output="update failed; existing install kept",
            metadata={"update_error": updated.error},
        )
    return updated


def _local_bin_path(ctx: StepContext) -> Receipt:
    config = ctx.config
    local_bin = str(config.local_bin_path)
    if ctx.env.has_path(local_bin):
        return Receipt.skip(tool="local-bin-path", action="ensure", reason=f"{local_bin} already on PATH")

    ensure_profile_lines(
        [config.resolve(config.login_profile)],
        [export_path_line(config.shell_path(config.local_bin))],
        dry_run=ctx.dry_run,
    )
    return Receipt.success(
        tool="local-bin-path",
        action="ensure",
        output=f"{local_bin} added to PATH",
        metadata={"path_prepend": [local_bin]},
    )


def _vendor_settings(ctx: StepContext) -> Receipt:
    config = ctx.config
    path = config.settings_path
    if not config.vendor.has_credentials:
        logger.warning("REGION and TOKEN must both be set to configure %s; skipping", path)
        return Receipt.skip(tool="vendor-settings", action="merge", reason="REGION/TOKEN not set")

    payload = config.vendor.env_payload()
    if ctx.dry_run:
        return Receipt.skip(
            tool="vendor-settings",
            action="merge",
            reason=f"[dry-run] would merge {len(payload)} key(s) into {path}",
        )

    try:
        write_env_settings(path, payload)
    except (SettingsError, OSError) as e:
        return Receipt.failure(tool="vendor-settings", action="merge", error=str(e))

    logger.info("[%s] configuration written to %s", config.vendor.command, path)
    return Receipt.success(
        tool="vendor-settings",
        action="merge",
        output=f"configuration written to {path}",
        metadata={"path": str(path), "keys": sorted(payload)},
    )


def _self_check(ctx: StepContext) -> Receipt:
    cli = cast(ClaudeCli, ctx.tool(ctx.config.vendor.command))
    result = run_self_check(cli, ctx.env)
    if result.healthy:
        return Receipt.success(tool="self-check", action="doctor", output=result.message, metadata=result.to_dict())
    return Receipt.failure(tool="self-check", action="doctor", error=result.message, metadata=result.to_dict())


STEPS: list[Step] = [
    Step("system-packages", _system_packages, critical=True, description="apt libraries and build tools"),
    Step("r-runtime", _r_runtime, critical=True, description="R from r-base"),
    Step("r-packages", _r_packages, critical=True, description="CRAN packages into R_LIBS_USER"),
    Step("editor-extension", _editor_extension, description="code-server extensions"),
    Step("pyenv", _pyenv, critical=True, description="pyenv and shell activation"),
    Step("python", _python, critical=True, description="pinned interpreter via pyenv"),
    Step("poetry", _poetry, critical=True, description="pinned Poetry"),
    Step("projects", _projects, description="in-project virtualenvs"),
    Step("node", _node, description="Node.js LTS and global npm packages"),
    Step("versions", _versions, description="installed versions"),
    Step("vendor-cli", _vendor_cli, critical=True, description="install or update the vendor CLI"),
    Step("local-bin-path", _local_bin_path, description="~/.local/bin on PATH"),
    Step("vendor-settings", _vendor_settings, description="merge env settings"),
    Step("self-check", _self_check, description="vendor CLI doctor"),
]


# ── Use case ────────────────────────────────────────────────────────


@dataclass
class ProvisionResult:
    """Result of a provisioning run."""

    report: ProvisionReport | None = None
    error: str | None = None
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        result: dict = {"ok": self.ok, "dry_run": self.dry_run}
        if self.error:
            result["error"] = self.error
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def provision(
    config: ProvisionConfig,
    *,
    only: list[str] | None = None,
    skip: list[str] | None = None,
    dry_run: bool = False,
    env: ShellEnv | None = None,
    runner: CommandRunner | None = None,
    registry: ToolRegistry | None = None,
    steps: list[Step] | None = None,
) -> ProvisionResult:
    """Run the provisioning sequence.

    Args:
        config: Provisioning config.
        only: Run only these steps (order unchanged).
        skip: Leave these steps out.
        dry_run: Probe and log, but change nothing.
        env: Starting environment (default: snapshot of os.environ).
        runner: Command runner (default: a real CommandRunner).
        registry: Tool registry (default: ``build_registry``).
        steps: Step list (default: ``STEPS``).

    Returns:
        ProvisionResult; ``error`` is set when a critical step aborted
        or the step filter was invalid.
    """
    result = ProvisionResult(dry_run=dry_run)

    try:
        selected = select_steps(steps if steps is not None else STEPS, only or (), skip or ())
    except ValueError as e:
        result.error = str(e)
        return result

    runner = runner or CommandRunner(dry_run=dry_run)
    registry = registry or build_registry(config, runner)
    ctx = StepContext(
        config=config,
        env=env or ShellEnv.from_environ(),
        registry=registry,
        runner=runner,
        dry_run=dry_run,
    )

    logger.info(banner("bootstrap start"))
    try:
        result.report = run_steps(selected, ctx)
    except ProvisionAborted as e:
        result.report = e.report
        result.error = str(e)
        logger.error(banner("bootstrap aborted"))
        return result

    logger.info(banner("bootstrap done"))
    logger.info("")
    logger.info("Done. Open a repo and run:  %s", config.vendor.command)
    return result
