"""
Repository path helpers.

Callers pass a starting path (usually `Path(__file__)`) and get back the
repository root, or anchor a repo-relative path (such as an entry in the
defaults manifest) at that root.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

# Both must exist for a directory to count as the repo root.
ROOT_SENTINELS = ("bin/.gitkeep", "catalogs/defaults.json")
ROOT_ENV = "FENCE_ROOT"


def is_repo_root(candidate: Path) -> bool:
    return all((candidate / sentinel).is_file() for sentinel in ROOT_SENTINELS)


def _root_from_hint(hint: Optional[str]) -> Optional[Path]:
    if not hint:
        return None
    path = Path(hint)
    if not path.exists() or not is_repo_root(path):
        return None
    return path.resolve()


def find_repo_root(start: Optional[Path] = None) -> Path:
    """
    Locate the repository root.

    Honors FENCE_ROOT when it points at a real checkout, then walks upwards
    from `start` (defaults to this file). Falls back to the parent of the
    `fence` package so imports keep working from an unusual layout.
    """

    hinted = _root_from_hint(os.environ.get(ROOT_ENV))
    if hinted is not None:
        return hinted
    origin = Path(start or __file__).resolve()
    if origin.is_file():
        origin = origin.parent
    for candidate in (origin, *origin.parents):
        if is_repo_root(candidate):
            return candidate
    return Path(__file__).resolve().parents[2]


def ensure_absolute(path: Path | str, repo_root: Path) -> Path:
    path = Path(path)
    if path.is_absolute():
        return path
    return repo_root / path
