"""
Adapter base — the capability contract between the engine and tools.

Every external tool the provisioner installs (apt packages, R, pyenv,
Poetry, Node, the vendor CLI...) is wrapped in a ToolAdapter. Steps only
talk to tools through this interface, so the provisioning sequence is
tool-agnostic and can be exercised with ``MockTool``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from devbox.core.models.env import ShellEnv
from devbox.core.models.receipt import Receipt


class ToolAdapter(ABC):
    """Abstract base class for installable tools.

    Adapters perform external side effects and return receipts.
    They NEVER raise on tool failures — those are captured in the Receipt.

    To add a tool:
        1. Subclass ToolAdapter
        2. Implement name, is_present, install, version_string
        3. Register it in the ToolRegistry and wire it into a step
    """

    #: When set, ``is_present`` must also see this string in the version.
    required_version: str | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """The tool identifier (e.g., 'pyenv', 'poetry', 'node')."""

    @abstractmethod
    def is_present(self, env: ShellEnv) -> bool:
        """Guard condition: is the tool already installed as wanted?

        Read-only, fast, never raises.
        """

    @abstractmethod
    def install(self, env: ShellEnv) -> Receipt:
        """Run the install procedure and return a receipt.

        MUST never raise for tool failures.
        """

    def version_string(self, env: ShellEnv) -> str | None:
        """Human-readable installed version, or None if unknown."""
        return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


def version_matches(version: str | None, required: str | None) -> bool:
    """A version guard passes when nothing is required or the string contains it."""
    if not required:
        return True
    return bool(version) and required in version  # type: ignore[operator]
