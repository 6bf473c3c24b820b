"""
Receipt model — the execution contract.

Every tool operation and every provisioning step returns a Receipt.
Adapters and step bodies NEVER raise on external failures; the outcome
is captured here and the engine decides whether it is fatal.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Receipt(BaseModel):
    """Result of a tool operation or a provisioning step.

    ``metadata`` carries structured extras. Two keys are understood by
    the engine when a step returns:

        path_prepend (list[str]): directories to put in front of PATH.
        env_set (dict[str, str]): variables to set for later steps.
    """

    tool: str
    action: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the operation succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the operation failed."""
        return self.status == "failed"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @classmethod
    def success(
        cls,
        tool: str,
        action: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        return cls(tool=tool, action=action, status="ok", output=output, **kwargs)

    @classmethod
    def failure(
        cls,
        tool: str,
        action: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(tool=tool, action=action, status="failed", error=error, **kwargs)

    @classmethod
    def skip(
        cls,
        tool: str,
        action: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a skip receipt."""
        return cls(tool=tool, action=action, status="skipped", output=reason, **kwargs)


def combine(tool: str, action: str, receipts: list[Receipt]) -> Receipt:
    """Fold several sub-receipts into one step receipt.

    Failed if any sub-receipt failed, skipped if all were skipped,
    ok otherwise. PATH and env updates of the parts are merged in order.
    """
    path_prepend: list[str] = []
    env_set: dict[str, str] = {}
    for r in receipts:
        path_prepend.extend(r.metadata.get("path_prepend", []))
        env_set.update(r.metadata.get("env_set", {}))

    metadata: dict[str, Any] = {
        "parts": [r.model_dump(mode="json", include={"tool", "action", "status", "output", "error"}) for r in receipts],
    }
    if path_prepend:
        metadata["path_prepend"] = path_prepend
    if env_set:
        metadata["env_set"] = env_set

    failures = [r for r in receipts if r.failed]
    if failures:
        return Receipt.failure(
            tool=tool,
            action=action,
            error="; ".join(f"{r.tool}:{r.action}: {r.error}" for r in failures),
            metadata=metadata,
        )
    if receipts and all(r.skipped for r in receipts):
        return Receipt.skip(
            tool=tool,
            action=action,
            reason="; ".join(r.output for r in receipts if r.output),
            metadata=metadata,
        )
    return Receipt.success(
        tool=tool,
        action=action,
        output="; ".join(r.output for r in receipts if r.output and not r.skipped),
        metadata=metadata,
    )
