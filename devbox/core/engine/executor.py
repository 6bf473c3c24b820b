"""
Engine executor — the provisioning loop.

Steps run strictly in order.  Each step returns a Receipt; the engine
folds the step's PATH/variable additions into the next ShellEnv and
applies the step's ``critical`` flag:

    critical step failed  →  ProvisionAborted (nothing after it runs)
    optional step failed  →  warning, continue

Flow:
    steps → filter (--only/--skip) → run one by one → receipts → report
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace

from devbox.adapters.base import ToolAdapter
from devbox.adapters.registry import ToolRegistry
from devbox.adapters.shell.command import CommandRunner
from devbox.core.models.config import ProvisionConfig
from devbox.core.models.env import ShellEnv
from devbox.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepContext:
    """Everything a step may use. A new context is built after every step."""

    config: ProvisionConfig
    env: ShellEnv
    registry: ToolRegistry
    runner: CommandRunner
    dry_run: bool = False

    def tool(self, name: str) -> ToolAdapter:
        return self.registry.require(name)


@dataclass
class Step:
    """One named, self-contained provisioning action."""

    name: str
    run: Callable[[StepContext], Receipt]
    critical: bool = False
    description: str = ""


class ProvisionAborted(Exception):
    """A critical step failed; the sequence stopped there."""

    def __init__(self, step: str, receipt: Receipt, report: ProvisionReport | None = None):
        self.step = step
        self.receipt = receipt
        self.report = report
        super().__init__(f"Critical step '{step}' failed: {receipt.error}")


@dataclass
class ProvisionReport:
    """Receipts of every step that ran, in order."""

    receipts: list[Receipt] = field(default_factory=list)
    aborted_at: str | None = None
    env: ShellEnv | None = None

    @property
    def total(self) -> int:
        return len(self.receipts)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.receipts if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.receipts if r.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.receipts if r.skipped)

    @property
    def status(self) -> str:
        if self.aborted_at:
            return "aborted"
        if self.failed:
            return "partial"
        return "ok"

    def get(self, step: str) -> Receipt | None:
        for r in self.receipts:
            if r.tool == step:
                return r
        return None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "aborted_at": self.aborted_at,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
        }


def guarded_install(tool: ToolAdapter, env: ShellEnv) -> Receipt:
    """Install ``tool`` unless its guard says it is already there."""
    if tool.is_present(env):
        version = tool.version_string(env)
        reason = f"{tool.name} already present" + (f" ({version})" if version else "")
        logger.info("✓ %s", reason)
        return Receipt.skip(tool=tool.name, action="install", reason=reason, metadata={"version": version})

    logger.info("→ installing %s", tool.name)
    return tool.install(env)


def select_steps(
    steps: Iterable[Step],
    only: Iterable[str] = (),
    skip: Iterable[str] = (),
) -> list[Step]:
    """Filter steps by name, keeping the fixed order.

    Raises:
        ValueError: For a name that is not a known step.
    """
    steps = list(steps)
    known = {s.name for s in steps}
    only_set, skip_set = set(only), set(skip)
    unknown = (only_set | skip_set) - known
    if unknown:
        raise ValueError(f"Unknown step(s): {', '.join(sorted(unknown))}")

    selected = [s for s in steps if not only_set or s.name in only_set]
    return [s for s in selected if s.name not in skip_set]


def run_step(step: Step, ctx: StepContext) -> Receipt:
    """Run one step. Exceptions become failed receipts."""
    start = time.monotonic()
    try:
        receipt = step.run(ctx)
    except Exception as e:
        logger.exception("Step %s raised", step.name)
        receipt = Receipt.failure(tool=step.name, action="run", error=f"Unexpected error: {e}")

    if receipt.tool != step.name:
        receipt = receipt.model_copy(update={"tool": step.name})
    receipt.duration_ms = int((time.monotonic() - start) * 1000)
    return receipt


def run_steps(steps: Iterable[Step], ctx: StepContext) -> ProvisionReport:
    """Run ``steps`` in order, honouring each step's ``critical`` flag.

    Returns:
        The report of a completed sequence.

    Raises:
        ProvisionAborted: When a critical step fails. ``.report`` on the
            exception carries the receipts gathered so far.
    """
    report = ProvisionReport(env=ctx.env)

    for step in steps:
        logger.info("")
        logger.info("### %s%s", step.name, f" — {step.description}" if step.description else "")

        receipt = run_step(step, ctx)
        report.receipts.append(receipt)

        if receipt.failed:
            if step.critical:
                logger.error("✗ %s failed: %s", step.name, receipt.error)
                report.aborted_at = step.name
                raise ProvisionAborted(step.name, receipt, report)
            logger.warning("⚠ %s failed (continuing): %s", step.name, receipt.error)
        elif receipt.skipped:
            logger.info("⊘ %s: %s", step.name, receipt.output)
        else:
            logger.info("✓ %s", step.name)

        ctx = replace(ctx, env=ctx.env.apply(receipt.metadata))
        report.env = ctx.env

    return report
