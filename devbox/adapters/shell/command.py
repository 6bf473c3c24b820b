"""
Command runner — the single place child processes are started.

Installers are long-running (apt, R package builds, interpreter
compiles), so output is streamed line-by-line into the log as it is
produced instead of being captured until exit.  Results come back as
Receipts; a non-zero exit is a failed receipt, never an exception.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from collections import deque
from collections.abc import Mapping, Sequence

from devbox.core.models.env import ShellEnv
from devbox.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

# Lines of output kept on the receipt
_TAIL_LINES = 40


class CommandRunner:
    """Run commands with an explicit ShellEnv.

    Args:
        dry_run: Log what would run and return skipped receipts.
            Read-only ``probe`` calls still execute.
    """

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def run(
        self,
        cmd: Sequence[str],
        *,
        env: ShellEnv,
        tool: str,
        action: str,
        sudo: bool = False,
        sudo_env: Mapping[str, str] | None = None,
        preserve_env: bool = False,
        cwd: str | None = None,
        input_text: str | None = None,
    ) -> Receipt:
        """Execute ``cmd`` and stream its output into the log.

        Args:
            cmd: Argument list. Pipelines go through ``["bash", "-c", ...]``.
            env: Environment for the child.
            tool: Tool name recorded on the receipt.
            action: Action name recorded on the receipt.
            sudo: Prefix with ``sudo`` unless already root.
            sudo_env: Variables that must survive sudo's env reset.
            preserve_env: Pass ``-E`` to sudo.
            cwd: Working directory.
            input_text: Fed to the child's stdin.
        """
        argv, child_env = self._build(cmd, env, sudo, sudo_env, preserve_env)
        command = shlex.join(argv)

        if self.dry_run:
            logger.info("[dry-run] %s", command)
            return Receipt.skip(
                tool=tool,
                action=action,
                reason=f"[dry-run] would run: {command}",
                metadata={"command": command, "dry_run": True},
            )

        logger.info("$ %s", command)
        start = time.monotonic()
        tail: deque[str] = deque(maxlen=_TAIL_LINES)

        try:
            proc = subprocess.Popen(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.PIPE if input_text is not None else subprocess.DEVNULL,
                text=True,
                env=child_env,
                cwd=cwd,
            )
        except FileNotFoundError:
            return Receipt.failure(
                tool=tool,
                action=action,
                error=f"Command not found: {argv[0]}",
                metadata={"command": command},
            )
        except OSError as e:
            return Receipt.failure(
                tool=tool,
                action=action,
                error=f"Cannot start {argv[0]}: {e}",
                metadata={"command": command},
            )

        if input_text is not None and proc.stdin:
            try:
                proc.stdin.write(input_text)
            except BrokenPipeError:
                logger.debug("%s closed stdin early", argv[0])
            finally:
                proc.stdin.close()

        if proc.stdout:
            for line in proc.stdout:
                line = line.rstrip()
                tail.append(line)
                logger.info("  %s", line)
        proc.wait()

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = "\n".join(tail)
        metadata = {"command": command, "return_code": proc.returncode}

        if proc.returncode == 0:
            return Receipt.success(
                tool=tool,
                action=action,
                output=output,
                duration_ms=elapsed_ms,
                metadata=metadata,
            )
        return Receipt.failure(
            tool=tool,
            action=action,
            error=f"Command exited with code {proc.returncode}: {command}",
            output=output,
            duration_ms=elapsed_ms,
            metadata=metadata,
        )

    def probe(
        self,
        cmd: Sequence[str],
        *,
        env: ShellEnv,
        timeout: int = 10,
    ) -> tuple[int, str] | None:
        """Run a read-only check and capture stdout+stderr.

        Returns:
            ``(return_code, output)``, or None if the command could not run.
        """
        try:
            result = subprocess.run(
                list(cmd),
                capture_output=True,
                text=True,
                timeout=timeout,
                env=env.to_environ(),
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug("Probe %s failed: %s", cmd[0], e)
            return None
        return result.returncode, (result.stdout or "") + (result.stderr or "")

    @staticmethod
    def _build(
        cmd: Sequence[str],
        env: ShellEnv,
        sudo: bool,
        sudo_env: Mapping[str, str] | None,
        preserve_env: bool,
    ) -> tuple[list[str], dict[str, str]]:
        argv = list(cmd)
        child_env = env.to_environ()
        extra = dict(sudo_env or {})

        if sudo and os.geteuid() != 0:
            prefix = ["sudo"]
            if preserve_env:
                prefix.append("-E")
            prefix.extend(f"{k}={v}" for k, v in extra.items())
            argv = prefix + argv
        else:
            child_env.update(extra)

        return argv, child_env
