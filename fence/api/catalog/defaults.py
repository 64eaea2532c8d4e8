"""
Defaults manifest: logical name -> repo-relative path.

`catalogs/defaults.json` is a small ordered table so the active catalog or
boundary descriptor can be swapped without touching code. An explicit path
always wins; when neither an explicit path nor a manifest entry exists we fail
loudly instead of guessing.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from fence.api import path_utils
from fence.api.errors import MissingDefaultsManifest

DEFAULTS_MANIFEST = Path("catalogs") / "defaults.json"
DEFAULTS_SCHEMA_VERSION = "fence_defaults_v1"

CATALOG = "catalog"
BOUNDARY_SCHEMA = "boundary_schema"


def load_defaults(repo_root: Path) -> List[Tuple[str, str]]:
    manifest = repo_root / DEFAULTS_MANIFEST
    if not manifest.is_file():
        raise MissingDefaultsManifest(f"missing defaults manifest: {manifest}")
    try:
        doc = json.loads(manifest.read_text())
    except json.JSONDecodeError as exc:
        raise MissingDefaultsManifest(f"defaults manifest {manifest} is not valid JSON: {exc}") from exc
    if not isinstance(doc, dict) or doc.get("schema_version") != DEFAULTS_SCHEMA_VERSION:
        raise MissingDefaultsManifest(f"defaults manifest {manifest} must declare schema_version {DEFAULTS_SCHEMA_VERSION}")
    entries = doc.get("defaults")
    if not isinstance(entries, list):
        raise MissingDefaultsManifest(f"defaults manifest {manifest} has no defaults table")
    table: List[Tuple[str, str]] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        name = entry.get("name")
        path = entry.get("path")
        if isinstance(name, str) and isinstance(path, str) and name and path:
            table.append((name, path))
    return table


def defaults_table(repo_root: Path) -> Dict[str, str]:
    # First entry wins when a name repeats.
    out: Dict[str, str] = {}
    for name, path in load_defaults(repo_root):
        out.setdefault(name, path)
    return out


def resolve_default_path(
    name: str,
    explicit: Optional[Path | str] = None,
    repo_root: Optional[Path] = None,
) -> Path:
    root = repo_root or path_utils.find_repo_root(Path(__file__))
    if explicit:
        return path_utils.ensure_absolute(Path(explicit), root)
    table = defaults_table(root)
    rel = table.get(name)
    if rel is None:
        raise MissingDefaultsManifest(f"no default registered for '{name}' in {root / DEFAULTS_MANIFEST}")
    return path_utils.ensure_absolute(Path(rel), root)


def resolve_catalog_path(explicit: Optional[Path | str] = None, repo_root: Optional[Path] = None) -> Path:
    return resolve_default_path(CATALOG, explicit=explicit, repo_root=repo_root)


def resolve_boundary_schema_path(explicit: Optional[Path | str] = None, repo_root: Optional[Path] = None) -> Path:
    return resolve_default_path(BOUNDARY_SCHEMA, explicit=explicit, repo_root=repo_root)
