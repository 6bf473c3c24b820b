"""
Self-check — run the vendor CLI's doctor and explain common failures.

The doctor's exit status is reported, never enforced: a failing check
prints remediation hints and provisioning still completes normally.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from devbox.adapters.vendor.claude import ClaudeCli
from devbox.core.models.env import ShellEnv

logger = logging.getLogger(__name__)

REMEDIATION_HINTS = [
    "Make sure your AWS Bedrock *use-case form* is completed in the AWS console.",
    "Confirm models exist in your region or set ANTHROPIC_MODEL to an inference profile ARN.",
    "If you use SSO or short-lived tokens, ensure the token is valid now.",
]


@dataclass
class SelfCheckResult:
    healthy: bool
    return_code: int | None
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "healthy": self.healthy,
            "return_code": self.return_code,
            "message": self.message,
        }


def _log_hints(command: str) -> None:
    logger.warning("[warn] '%s doctor' exited non-zero. Common fixes:", command)
    for hint in REMEDIATION_HINTS:
        logger.warning("  - %s", hint)


def run_self_check(cli: ClaudeCli, env: ShellEnv) -> SelfCheckResult:
    """Run ``<cli> doctor``; log hints if it fails. Never raises.

    A CLI missing from PATH counts as a failed doctor (exit 127).
    """
    if not cli.is_present(env):
        logger.warning("[%s] not on PATH", cli.command)
        _log_hints(cli.command)
        return SelfCheckResult(healthy=False, return_code=127, message=f"{cli.command} not installed")

    logger.info("")
    logger.info("[%s] running doctor...", cli.command)
    receipt = cli.doctor(env)
    return_code = receipt.metadata.get("return_code")

    if receipt.skipped:
        return SelfCheckResult(healthy=True, return_code=None, message=receipt.output)

    if receipt.ok:
        return SelfCheckResult(healthy=True, return_code=return_code, message="doctor passed")

    _log_hints(cli.command)
    return SelfCheckResult(
        healthy=False,
        return_code=return_code,
        message=receipt.error or "doctor failed",
    )
