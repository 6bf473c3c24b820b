"""
Shell profile patching — append-if-missing, never rewrite.

A line is written only when no existing line is byte-identical to it,
so running the provisioner any number of times leaves a profile with a
single copy of each line.  Pre-existing content is never touched.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)


def has_line(path: Path, line: str) -> bool:
    """Whether ``path`` contains ``line`` as a whole line.

    Lines are split on ``\\n`` only, so ``\\r`` and other separators
    are part of the line. A missing or unreadable file contains nothing.
    """
    try:
        with path.open(encoding="utf-8", errors="surrogateescape", newline="") as fh:
            content = fh.read()
    except OSError:
        return False
    return line in content.split("\n")


def append_if_missing(path: Path, line: str) -> bool:
    """Append ``line`` to ``path`` unless an identical line exists.

    Creates the file (and its directory) when missing. A newline is
    inserted first if the file does not already end with one.

    Returns:
        True if the line was appended.
    """
    if has_line(path, line):
        return False

    needs_newline = False
    try:
        with path.open("rb") as fh:
            fh.seek(0, 2)
            if fh.tell() > 0:
                fh.seek(-1, 2)
                needs_newline = fh.read(1) != b"\n"
    except OSError:
        pass

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        if needs_newline:
            fh.write("\n")
        fh.write(line + "\n")

    logger.debug("Appended to %s: %s", path, line)
    return True


def ensure_profile_lines(
    profiles: Iterable[Path],
    lines: Iterable[str],
    dry_run: bool = False,
) -> list[tuple[Path, str]]:
    """Make every line present in every profile.

    Lines are applied in order, per profile.

    Returns:
        The ``(profile, line)`` pairs that were (or, on dry run, would be) added.
    """
    wanted = list(lines)
    added: list[tuple[Path, str]] = []
    for profile in profiles:
        for line in wanted:
            if dry_run:
                if not has_line(profile, line):
                    logger.info("[dry-run] would append to %s: %s", profile, line)
                    added.append((profile, line))
            elif append_if_missing(profile, line):
                logger.info("%s += %s", profile, line)
                added.append((profile, line))
    return added


def export_path_line(entry: str) -> str:
    """``export PATH="<entry>:$PATH"``"""
    return f'export PATH="{entry}:$PATH"'


def export_var_line(name: str, value: str) -> str:
    """``export NAME="value"``"""
    return f'export {name}="{value}"'
