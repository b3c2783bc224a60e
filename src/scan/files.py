"""Workspace file discovery for JS/TS sources."""

from __future__ import annotations

import logging
import os
from fnmatch import fnmatch
from pathlib import Path
from typing import TYPE_CHECKING, cast

from gitignore_parser import parse_gitignore  # type: ignore[import-untyped]

from utils import JS_EXTENSIONS

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

logger = logging.getLogger(__name__)

SKIPPED_DIRS = frozenset({"node_modules", ".git"})


def _matches_any(rel_path: str, patterns: Sequence[str] | None) -> bool:
    return bool(patterns) and any(fnmatch(rel_path, pat) for pat in patterns or ())


def _gitignore_files(root: Path) -> list[Path]:
    """Every .gitignore under root outside skipped dirs, shallowest first."""
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIPPED_DIRS)
        if ".gitignore" in filenames:
            found.append(Path(dirpath) / ".gitignore")
    return found


def _build_gitignore_matcher(
    root: Path,
    *,
    nested_gitignore: bool,
) -> Callable[[str], bool] | None:
    if not nested_gitignore:
        gitignore_path = root / ".gitignore"
        if gitignore_path.is_file():
            return cast("Callable[[str], bool]", parse_gitignore(gitignore_path))
        return None

    matchers = [parse_gitignore(path) for path in _gitignore_files(root)]
    if not matchers:
        return None

    def matches(path_str: str) -> bool:
        for matcher in matchers:
            try:
                if matcher(path_str):
                    return True
            except ValueError:
                # path lies outside this .gitignore's directory
                continue
        return False

    return matches


def _prune_dirs(
    dirpath: Path,
    dirnames: list[str],
    *,
    root: Path,
    skip_dir: str,
    gitignore_matches: Callable[[str], bool] | None,
) -> list[str]:
    kept: list[str] = []
    for name in sorted(dirnames):
        if name in SKIPPED_DIRS:
            continue
        path = dirpath / name
        if skip_dir and dirpath == root and name == skip_dir:
            continue
        if path.is_symlink():
            logger.debug("not following symlinked directory %s", path)
            continue
        if gitignore_matches is not None and gitignore_matches(str(path)):
            continue
        kept.append(name)
    return kept


def find_source_files(
    directory: Path,
    *,
    extensions: Sequence[str] = JS_EXTENSIONS,
    skip_dir: str = ".spanguard",
    include_patterns: Sequence[str] | None = None,
    exclude_patterns: Sequence[str] | None = None,
    nested_gitignore: bool = False,
) -> Iterator[Path]:
    """Find JS/TS files under ``directory``, respecting .gitignore.

    ``node_modules``, ``.git``, the plan directory, ignored directories and
    symlinked directories are pruned without being descended into.
    Symlinked files are skipped. Include and exclude patterns are fnmatch
    globs against the POSIX path relative to ``directory``.

    Yields:
        Matching files sorted by relative POSIX path, so every scan of an
        unchanged workspace sees the same order.
    """
    root = Path(directory)
    gitignore_matches = _build_gitignore_matcher(root, nested_gitignore=nested_gitignore)
    suffixes = tuple(extensions)

    matched: list[tuple[str, Path]] = []
    for current, dirnames, filenames in os.walk(root):
        dirpath = Path(current)
        dirnames[:] = _prune_dirs(
            dirpath,
            dirnames,
            root=root,
            skip_dir=skip_dir,
            gitignore_matches=gitignore_matches,
        )
        for name in filenames:
            path = dirpath / name
            if path.suffix not in suffixes or path.is_symlink():
                continue
            rel_path = path.relative_to(root).as_posix()
            if gitignore_matches is not None and gitignore_matches(str(path)):
                logger.debug("skipping ignored file %s", rel_path)
                continue
            if include_patterns and not _matches_any(rel_path, include_patterns):
                continue
            if _matches_any(rel_path, exclude_patterns):
                continue
            matched.append((rel_path, path))

    matched.sort(key=lambda item: item[0])
    yield from (path for _, path in matched)


__all__ = ["SKIPPED_DIRS", "find_source_files"]
