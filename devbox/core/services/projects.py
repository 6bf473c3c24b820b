"""
Per-project environments — an in-project ``.venv`` per Poetry project.

For each configured directory that exists and has a manifest, Poetry
is told to keep the virtualenv inside the project, bound to the pinned
pyenv interpreter, and the dependencies are installed.  Nothing here
aborts provisioning: each project's outcome is recorded and the next
project is attempted.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from devbox.adapters.languages.python import Poetry
from devbox.core.models.env import ShellEnv
from devbox.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


@dataclass
class ProjectOutcome:
    """What happened to one project directory."""

    path: str
    status: str = "ok"  # ok, skipped, failed
    reason: str = ""
    receipts: list[Receipt] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"path": self.path, "status": self.status, "reason": self.reason}


def configure_project(
    project: Path,
    poetry: Poetry,
    interpreter: Path,
    env: ShellEnv,
    manifest: str = "pyproject.toml",
) -> ProjectOutcome:
    """Configure one project directory; never raises."""
    outcome = ProjectOutcome(path=str(project))

    if not project.is_dir():
        logger.info("Skipping %s (missing)", project)
        outcome.status, outcome.reason = "skipped", "missing"
        return outcome

    if not (project / manifest).is_file():
        logger.info("Skipping %s (no %s)", project, manifest)
        outcome.status, outcome.reason = "skipped", f"no {manifest}"
        return outcome

    outcome.receipts.append(poetry.configure_in_project(project, env))

    if os.access(interpreter, os.X_OK):
        outcome.receipts.append(poetry.env_use(project, interpreter, env))
    else:
        logger.debug("%s not executable; leaving %s on Poetry's default interpreter", interpreter, project)

    installed = poetry.install_dependencies(project, env)
    outcome.receipts.append(installed)

    failures = [r for r in outcome.receipts if r.failed]
    if failures:
        outcome.status = "failed"
        outcome.reason = failures[0].error or "poetry failed"
        logger.warning("Project %s: %s", project, outcome.reason)
    return outcome


def configure_projects(
    projects: Iterable[str | Path],
    poetry: Poetry,
    interpreter: Path,
    env: ShellEnv,
    manifest: str = "pyproject.toml",
) -> list[ProjectOutcome]:
    """Run ``configure_project`` over every configured path, in order."""
    return [
        configure_project(Path(p), poetry, interpreter, env, manifest=manifest)
        for p in projects
    ]
