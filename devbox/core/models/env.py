"""
Shell environment model — the explicit PATH and variables a step sees.

Provisioning never mutates ``os.environ``. The engine starts from a
snapshot of the process environment and each step returns the PATH
entries and variables it adds; the engine folds those into a new
ShellEnv for the next step.
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ShellEnv(BaseModel):
    """Immutable view of PATH plus the other environment variables."""

    model_config = ConfigDict(frozen=True)

    path: tuple[str, ...] = ()
    variables: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> ShellEnv:
        """Snapshot a process environment (default: ``os.environ``)."""
        source = dict(os.environ if environ is None else environ)
        raw_path = source.pop("PATH", "")
        entries = tuple(p for p in raw_path.split(os.pathsep) if p)
        return cls(path=entries, variables=source)

    @property
    def path_str(self) -> str:
        return os.pathsep.join(self.path)

    def get(self, name: str, default: str | None = None) -> str | None:
        if name == "PATH":
            return self.path_str
        return self.variables.get(name, default)

    def has_path(self, entry: str) -> bool:
        """Whether ``entry`` is already on PATH (trailing slashes ignored)."""
        wanted = entry.rstrip("/")
        return any(p.rstrip("/") == wanted for p in self.path)

    def with_path_prepended(self, *entries: str) -> ShellEnv:
        """Return a copy with ``entries`` in front of PATH, in the given order.

        An entry already on PATH is moved to the front rather than duplicated.
        """
        front = [e for e in entries if e]
        rest = [p for p in self.path if p.rstrip("/") not in {e.rstrip("/") for e in front}]
        return self.model_copy(update={"path": tuple(dict.fromkeys(front)) + tuple(rest)})

    def with_vars(self, **values: str) -> ShellEnv:
        return self.model_copy(update={"variables": {**self.variables, **values}})

    def apply(self, metadata: Mapping[str, Any]) -> ShellEnv:
        """Fold a receipt's ``path_prepend`` / ``env_set`` into a new env."""
        env = self
        env_set = metadata.get("env_set") or {}
        if env_set:
            env = env.with_vars(**env_set)
        prepend = metadata.get("path_prepend") or []
        if prepend:
            env = env.with_path_prepended(*prepend)
        return env

    def which(self, command: str) -> str | None:
        """Resolve ``command`` against this env's PATH, not the process PATH."""
        return shutil.which(command, path=self.path_str)

    def to_environ(self) -> dict[str, str]:
        """Environment mapping for a child process."""
        return {**self.variables, "PATH": self.path_str}
