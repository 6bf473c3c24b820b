"""
devbox — CLI entrypoint.

Usage:
    python -m devbox.main --help
    devbox provision
    devbox provision --dry-run --skip node
    devbox versions
    devbox config show
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from devbox import __version__
from devbox.core.observability.logging_config import setup_logging


def _console_level(ctx: click.Context) -> str:
    if ctx.obj.get("debug"):
        return "DEBUG"
    if ctx.obj.get("quiet"):
        return "ERROR"
    if ctx.obj.get("verbose"):
        return "INFO"
    return os.environ.get("DEVBOX_LOG_LEVEL", "INFO")


def _load(ctx: click.Context):
    """Load config or exit 1 with the error."""
    from devbox.core.config.loader import ConfigError, load_config

    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="devbox")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Only show errors on the console.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to devbox.yml (default: DEVBOX_CONFIG or auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """devbox — provision a development machine, idempotently."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_logging(level=_console_level(ctx), quiet_third_party=not debug)


@cli.command()
@click.option("--dry-run", is_flag=True, help="Probe and log, but change nothing.")
@click.option("--only", "only", multiple=True, help="Run only this step (repeatable).")
@click.option("--skip", "skip", multiple=True, help="Skip this step (repeatable).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Print the report as JSON.")
@click.pass_context
def provision(
    ctx: click.Context,
    dry_run: bool,
    only: tuple[str, ...],
    skip: tuple[str, ...],
    as_json: bool,
) -> None:
    """Run the provisioning sequence.

    Examples:

        devbox provision

        devbox provision --only pyenv --only python

        devbox provision --dry-run --skip node
    """
    from devbox.core.use_cases.provision import provision as run_provision

    config = _load(ctx)

    # Everything from here on is mirrored into the log file
    setup_logging(
        level="CRITICAL" if as_json else _console_level(ctx),
        log_file=config.log_path,
        log_file_level=os.environ.get("DEVBOX_LOG_FILE_LEVEL"),
        quiet_third_party=not ctx.obj.get("debug"),
    )

    result = run_provision(config, only=list(only), skip=list(skip), dry_run=dry_run)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    report = result.report
    if report is not None and not ctx.obj.get("quiet"):
        click.echo()
        color = {"ok": "green", "partial": "yellow", "aborted": "red"}.get(report.status, "white")
        click.secho(
            f"   Result: {report.succeeded} ok, {report.skipped} skipped, {report.failed} failed",
            fg=color,
            bold=True,
        )

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)


@cli.command()
def steps() -> None:
    """List the provisioning steps in order."""
    from devbox.core.use_cases.provision import STEPS

    for i, step in enumerate(STEPS, 1):
        marker = click.style("critical", fg="red") if step.critical else click.style("optional", fg="yellow")
        click.echo(f"  {i:>2}. {step.name:<18} {marker}  {step.description}")


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def versions(ctx: click.Context, as_json: bool) -> None:
    """Show installed versions of the provisioned tools."""
    from devbox.adapters.shell.command import CommandRunner
    from devbox.core.models.env import ShellEnv
    from devbox.core.services.versions import collect_versions
    from devbox.core.use_cases.provision import build_registry

    config = _load(ctx)
    registry = build_registry(config, CommandRunner())
    env = ShellEnv.from_environ().with_path_prepended(
        str(config.pyenv_root_path / "shims"),
        str(config.pyenv_root_path / "bin"),
        str(config.local_bin_path),
    )
    lines = collect_versions(registry, env)

    if as_json:
        click.echo(json.dumps({line.label: line.version for line in lines}, indent=2))
        return

    click.echo("-- Versions:")
    for line in lines:
        click.echo(line.render())


@cli.command()
@click.pass_context
def doctor(ctx: click.Context) -> None:
    """Run the vendor CLI's self-check."""
    from devbox.adapters.shell.command import CommandRunner
    from devbox.adapters.vendor.claude import ClaudeCli
    from devbox.core.models.env import ShellEnv
    from devbox.core.services.doctor import run_self_check

    config = _load(ctx)
    cli_tool = ClaudeCli(CommandRunner(), command=config.vendor.command)
    env = ShellEnv.from_environ().with_path_prepended(str(config.local_bin_path))
    result = run_self_check(cli_tool, env)

    if result.healthy:
        click.secho("✅ doctor passed", fg="green")
    else:
        click.secho(f"⚠️  {result.message}", fg="yellow")


@cli.group()
def config() -> None:
    """Configuration commands."""


@config.command("show")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_show(ctx: click.Context, as_json: bool) -> None:
    """Print the effective configuration (token masked)."""
    cfg = _load(ctx)
    data = cfg.model_dump(mode="json")

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    import yaml

    click.echo(yaml.safe_dump(data, sort_keys=False), nl=False)


@config.command("check")
@click.pass_context
def config_check(ctx: click.Context) -> None:
    """Validate the configuration file and environment."""
    cfg = _load(ctx)

    click.secho("✅ Configuration is valid", fg="green", bold=True)
    click.echo(f"   Python:   {cfg.python_version} (pyenv at {cfg.pyenv_root_path})")
    click.echo(f"   Poetry:   {cfg.poetry_version}")
    click.echo(f"   Projects: {len(cfg.projects)}")

    if not cfg.vendor.has_credentials:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        click.echo("   • REGION and TOKEN are not both set; vendor settings will be skipped")

    click.echo()


if __name__ == "__main__":
    cli()
