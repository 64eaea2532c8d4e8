"""
Cross-checks between declared probe capabilities and the catalog.

Fixture probes used by the test suites are skipped so they never count as
real coverage.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from fence.api.catalog.index import CapabilityIndex
from fence.api.contract.declaration import ProbeDeclaration
from fence.api.errors import UnknownCapability

IGNORED_PROBE_IDS = frozenset({"tests_fixture_probe", "tests_static_contract_broken"})


def validate_probe_capabilities(idx: CapabilityIndex, declarations: Iterable[ProbeDeclaration]) -> List[Tuple[str, str]]:
    """(probe id, problem) for every probe whose primary capability is missing or unknown."""
    problems: List[Tuple[str, str]] = []
    for decl in declarations:
        if not decl.primary_capability_id:
            problems.append((decl.probe_id, "primary_capability_id is not defined"))
        elif decl.primary_capability_id not in idx:
            problems.append(
                (decl.probe_id, f"unknown primary_capability_id '{decl.primary_capability_id}' (catalog {idx.key})")
            )
    return problems


def build_probe_coverage_map(idx: CapabilityIndex, declarations: Iterable[ProbeDeclaration]) -> Dict[str, Dict[str, object]]:
    coverage: Dict[str, Dict[str, object]] = {
        cap_id: {"has_probe": False, "probe_ids": []} for cap_id in idx.ids()
    }
    for decl in declarations:
        if decl.probe_id in IGNORED_PROBE_IDS or not decl.primary_capability_id:
            continue
        entry = coverage.get(decl.primary_capability_id)
        if entry is None:
            raise UnknownCapability(decl.primary_capability_id, field=decl.probe_id, catalog_key=idx.key)
        entry["has_probe"] = True
        entry["probe_ids"].append(decl.probe_id)
    for entry in coverage.values():
        entry["probe_ids"] = sorted(entry["probe_ids"])
    return coverage
