"""
Entry-point discovery.

Walks a root tree depth-first and reports every directory that directly
contains the entry file (``main.go`` by default). A matched directory is a
leaf: nothing beneath it is visited.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Tuple, Union

from .errors import EntryRootNotFound, ScanError

logger = logging.getLogger(__name__)


class RootKind(Enum):
    """Which tree an entry point was discovered in"""

    SERVICE = "service"
    TOOL = "tool"


@dataclass(frozen=True)
class EntryPoint:
    """One independently buildable binary, identified by its path under its root"""

    root_kind: RootKind
    relative_path: Tuple[str, ...]

    @property
    def leaf_name(self) -> str:
        return self.relative_path[-1]

    @property
    def relative_dir(self) -> Path:
        return Path(*self.relative_path)

    def __str__(self) -> str:
        return "/".join(self.relative_path)


@dataclass(frozen=True)
class Match:
    """Directory holds the entry file; stop here"""

    path: Path


@dataclass(frozen=True)
class Descend:
    """Directory has no entry file; look at its children"""

    path: Path


ScanStep = Union[Match, Descend]


@dataclass
class ScanResult:
    entry_points: List[EntryPoint] = field(default_factory=list)
    errors: List[ScanError] = field(default_factory=list)
    missing_root: bool = False

    @property
    def names(self) -> List[str]:
        return [entry.leaf_name for entry in self.entry_points]


def classify(directory: Path, entry_file: str) -> ScanStep:
    """Decide whether ``directory`` is a leaf match or needs descending"""
    if (directory / entry_file).is_file():
        return Match(directory)
    return Descend(directory)


def _subdirectories(directory: Path) -> List[Path]:
    try:
        with os.scandir(directory) as entries:
            children = [
                Path(entry.path)
                for entry in entries
                if entry.is_dir(follow_symlinks=False)
            ]
    except OSError as e:
        raise ScanError(directory, e) from e
    return sorted(children)


def scan(base_dir: Path, root_kind: RootKind, entry_file: str = "main.go") -> ScanResult:
    """
    Discover entry points below ``base_dir``.

    Args:
        base_dir: Root of the tree; never itself a match
        root_kind: Kind stamped on every discovered entry point
        entry_file: File name marking a buildable directory

    Returns:
        ScanResult with entry points ordered by relative path. A missing root
        yields an empty result; unreadable directories are skipped and
        recorded in ``errors``.
    """
    base_dir = Path(base_dir)
    result = ScanResult()

    if not base_dir.is_dir():
        error = EntryRootNotFound(f"{root_kind.value} root not found: {base_dir}")
        logger.info(str(error))
        result.missing_root = True
        return result

    try:
        stack = list(reversed(_subdirectories(base_dir)))
    except ScanError as e:
        logger.warning(f"Skipping unreadable directory: {e}")
        result.errors.append(e)
        return result

    while stack:
        directory = stack.pop()
        step = classify(directory, entry_file)

        if isinstance(step, Match):
            relative = step.path.relative_to(base_dir)
            result.entry_points.append(EntryPoint(root_kind, relative.parts))
            continue

        try:
            children = _subdirectories(step.path)
        except ScanError as e:
            logger.warning(f"Skipping unreadable directory: {e}")
            result.errors.append(e)
            continue
        stack.extend(reversed(children))

    logger.debug(
        f"Found {len(result.entry_points)} {root_kind.value} entry points under {base_dir}"
    )
    return result
