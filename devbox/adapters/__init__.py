"""Adapters — capability wrappers around external installers and CLIs.

Public re-exports for convenient access.
"""

from devbox.adapters.base import ToolAdapter
from devbox.adapters.mock import MockTool, RecordingRunner
from devbox.adapters.registry import ToolRegistry
from devbox.adapters.shell.command import CommandRunner

__all__ = [
    "CommandRunner",
    "MockTool",
    "RecordingRunner",
    "ToolAdapter",
    "ToolRegistry",
]
