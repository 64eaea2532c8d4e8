"""
Statically extracted probe facts.

Probes declare themselves with plain top-level shell assignments:

    probe_name="fs_outside_workspace"
    primary_capability_id="cap_fs_read_workspace_tree"

These are read from the source text without running it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from fence.api.errors import ResourceError

PROBES_DIR = "probes"
PROBE_SUFFIX = ".sh"


@dataclass(frozen=True)
class ProbeDeclaration:
    path: Path
    probe_id: str
    declared_name: Optional[str]
    primary_capability_id: Optional[str]

    @property
    def name_matches(self) -> bool:
        return self.declared_name == self.probe_id


def extract_probe_var(text: str, name: str) -> Optional[str]:
    """
    Value of the first `name=...` assignment, or None when there is none.

    Trailing comments and one layer of matching quotes are stripped; an
    assignment with an empty value returns "".
    """

    pattern = re.compile(rf"^\s*{re.escape(name)}=(.*)$")
    for line in text.splitlines():
        match = pattern.match(line)
        if not match:
            continue
        value = match.group(1).split("#", 1)[0].strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        return value
    return None


def declaration_from_text(text: str, path: Path) -> ProbeDeclaration:
    return ProbeDeclaration(
        path=path,
        probe_id=probe_id_for(path),
        declared_name=extract_probe_var(text, "probe_name"),
        primary_capability_id=extract_probe_var(text, "primary_capability_id"),
    )


def parse_declaration(path: Path) -> ProbeDeclaration:
    return declaration_from_text(Path(path).read_text(encoding="utf-8", errors="replace"), Path(path))


def probe_id_for(path: Path) -> str:
    return Path(path).stem


def collect_probe_scripts(probes_dir: Path) -> List[Path]:
    if not probes_dir.is_dir():
        return []
    return sorted(path for path in probes_dir.glob(f"*{PROBE_SUFFIX}") if path.is_file())


def resolve_probe(ident: str, repo_root: Path) -> Path:
    """
    Resolve a probe given as a path or as an id under probes/.

    Ids may be given with or without the .sh suffix.
    """

    candidate = Path(ident)
    if candidate.is_file():
        return candidate.resolve()
    probes_dir = repo_root / PROBES_DIR
    for name in (ident, f"{ident}{PROBE_SUFFIX}"):
        path = probes_dir / name
        if path.is_file():
            return path.resolve()
    raise ResourceError(f"probe not found: {ident} (looked in {probes_dir})")
