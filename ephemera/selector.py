"""
Path selection: turn user patterns into a validated set of files.

Each pattern can be:
- a literal file path          → kept as-is
- a directory path             → recursed for regular files
- a glob pattern (*, ?, [...]) → expanded against the working tree

All results are expressed relative to ``base_dir`` with forward slashes.
A candidate that resolves outside ``base_dir`` fails the whole selection.
"""

import glob
import logging
import os
from pathlib import Path, PurePath
from typing import Iterable, Union

from .errors import InvalidSelection, MissingRequiredPath

logger = logging.getLogger(__name__)

# Directories never descended into when a directory is selected
SKIP_DIRS = frozenset({".git"})

_GLOB_CHARS = frozenset("*?[")


def is_glob(pattern: str) -> bool:
    """True if the pattern contains glob metacharacters."""
    return any(c in _GLOB_CHARS for c in pattern)


def _is_within(path: str, root: str) -> bool:
    if path == root:
        return True
    try:
        return os.path.commonpath([path, root]) == root
    except ValueError:
        # Different drives on Windows
        return False


def _walk_files(directory: str) -> list[str]:
    """Regular files under directory, depth-first, sorted by name."""
    found = []
    for root, dirs, files in os.walk(directory):
        dirs[:] = sorted(d for d in dirs if d not in SKIP_DIRS)
        for name in sorted(files):
            path = os.path.join(root, name)
            if os.path.isfile(path):
                found.append(path)
    return found


class _Resolver:
    """Expands patterns against one base directory."""

    def __init__(self, base_dir: Union[str, Path]):
        self.base_abs = os.path.abspath(base_dir)
        self.base_real = os.path.realpath(base_dir)
        if not os.path.isdir(self.base_real):
            raise InvalidSelection(f"Base directory does not exist: {base_dir}")

    def check(self, candidate: str, pattern: str) -> None:
        """Reject a candidate that lexically or physically leaves the base."""
        lexical = os.path.normpath(os.path.join(self.base_abs, candidate))
        if not _is_within(lexical, self.base_abs):
            raise InvalidSelection(f"Path is outside the repository: {pattern}")
        if not _is_within(os.path.realpath(lexical), self.base_real):
            raise InvalidSelection(f"Path resolves outside the repository: {pattern}")

    def relative(self, path: str) -> str:
        lexical = os.path.normpath(os.path.join(self.base_abs, path))
        return PurePath(os.path.relpath(lexical, self.base_abs)).as_posix()

    def expand(self, pattern: str) -> list[str]:
        """Candidate paths (absolute or base-relative) for one pattern."""
        self.check(pattern, pattern)
        if is_glob(pattern):
            matches = sorted(glob.glob(pattern, root_dir=self.base_abs, recursive=True))
        else:
            matches = [pattern]

        files = []
        for match in matches:
            full = os.path.join(self.base_abs, match)
            if os.path.isdir(full):
                self.check(match, pattern)
                files.extend(_walk_files(full))
            elif os.path.isfile(full):
                files.append(full)
        for path in files:
            self.check(path, pattern)
        return files


def select_paths(
    base_dir: Union[str, Path],
    patterns: Iterable[str],
    strict: bool = False,
) -> list[str]:
    """
    Resolve patterns into a sorted, deduplicated list of relative paths.

    Args:
        base_dir: Directory all paths must lie within (the repository root)
        patterns: Literal paths, directories or glob patterns
        strict: If True, a pattern matching no files is an error

    Returns:
        Sorted list of base-relative POSIX paths

    Raises:
        InvalidSelection: A candidate escapes base_dir, or nothing matched
        MissingRequiredPath: strict is set and a pattern matched nothing
    """
    resolver = _Resolver(base_dir)
    patterns = [p for p in patterns if p]
    if not patterns:
        raise InvalidSelection("No paths given")

    selected: set[str] = set()
    for pattern in patterns:
        files = resolver.expand(pattern)
        if not files:
            if strict:
                raise MissingRequiredPath(pattern)
            logger.debug("Pattern matched no files, skipping: %s", pattern)
            continue
        selected.update(resolver.relative(f) for f in files)

    if not selected:
        raise InvalidSelection(f"No files matched: {' '.join(patterns)}")
    return sorted(selected)
