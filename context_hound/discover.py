"""File discovery under a scan root."""

from __future__ import annotations

import fnmatch
import logging
import os
from collections.abc import Sequence
from pathlib import Path

logger = logging.getLogger(__name__)

IGNORE_FILENAME = ".houndignore"


def discover_files(cwd: str | Path, include: Sequence[str], exclude: Sequence[str]) -> list[str]:
    """Return sorted absolute paths under ``cwd`` selected by the glob filters.

    Paths are matched relative to ``cwd`` in POSIX form. Excluded directories
    are pruned and symlinks are never followed or returned.
    """
    root = Path(cwd).resolve()
    selected: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else f"{rel_dir}/"
        dirnames[:] = sorted(
            name
            for name in dirnames
            if not os.path.islink(os.path.join(dirpath, name))
            and not _is_excluded_dir(f"{prefix}{name}", exclude)
        )
        for name in filenames:
            full_path = os.path.join(dirpath, name)
            if os.path.islink(full_path):
                continue
            if is_selected(f"{prefix}{name}", include, exclude):
                selected.append(full_path)
    return sorted(selected)


def is_selected(rel_path: str, include: Sequence[str], exclude: Sequence[str]) -> bool:
    """Apply include/exclude globs to one cwd-relative POSIX path."""
    if not any(glob_match(rel_path, pattern) for pattern in include):
        return False
    return not any(glob_match(rel_path, pattern) for pattern in exclude)


def glob_match(rel_path: str, pattern: str) -> bool:
    """``fnmatch`` where any ``**/`` segment may also match zero directories."""
    if fnmatch.fnmatch(rel_path, pattern):
        return True
    if pattern.startswith("**/") and glob_match(rel_path, pattern[3:]):
        return True
    index = pattern.find("/**/")
    while index != -1:
        if glob_match(rel_path, pattern[:index] + pattern[index + 3 :]):
            return True
        index = pattern.find("/**/", index + 1)
    return False


def load_ignore_patterns(cwd: str | Path) -> list[str]:
    """Read ``.houndignore`` globs, skipping blank lines and ``#`` comments."""
    ignore_path = Path(cwd) / IGNORE_FILENAME
    try:
        content = ignore_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Could not read %s: %s", ignore_path, exc)
        return []
    patterns: list[str] = []
    for line in content.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            patterns.append(stripped)
    return patterns


def _is_excluded_dir(rel_dir: str, exclude: Sequence[str]) -> bool:
    # "dir/" lets "**/dist/**" prune "dist" itself.
    as_dir = f"{rel_dir}/"
    return any(glob_match(as_dir, pattern) or glob_match(rel_dir, pattern) for pattern in exclude)
