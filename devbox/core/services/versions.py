"""
Version report — one line per tool, ``n/a`` when missing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from devbox.adapters.languages.node import NodeRuntime
from devbox.adapters.registry import ToolRegistry
from devbox.core.models.env import ShellEnv

logger = logging.getLogger(__name__)

# (label, registered tool name, placeholder when missing)
REPORT_ROWS: list[tuple[str, str, str]] = [
    ("R", "r", "not installed"),
    ("Python", "python", "n/a"),
    ("pyenv", "pyenv", "n/a"),
    ("Poetry", "poetry", "n/a"),
    ("Node", "node", "n/a"),
    ("npm", "npm", "n/a"),
    ("claude", "claude", "n/a"),
]


@dataclass
class VersionLine:
    label: str
    version: str | None
    placeholder: str = "n/a"

    @property
    def display(self) -> str:
        return self.version or self.placeholder

    def render(self) -> str:
        return f"{self.label + ':':<10}{self.display}"


def collect_versions(registry: ToolRegistry, env: ShellEnv) -> list[VersionLine]:
    """Probe every reported tool that is registered."""
    lines: list[VersionLine] = []
    for label, name, placeholder in REPORT_ROWS:
        version: str | None = None
        if name == "npm":
            node = registry.get("node")
            if isinstance(node, NodeRuntime):
                version = node.npm_version(env)
        else:
            tool = registry.get(name)
            if tool is not None:
                version = tool.version_string(env)
        lines.append(VersionLine(label=label, version=version, placeholder=placeholder))
    return lines


def log_versions(lines: list[VersionLine]) -> None:
    logger.info("-- Versions:")
    for line in lines:
        logger.info(line.render())
