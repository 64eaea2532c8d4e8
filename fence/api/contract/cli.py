#!/usr/bin/env python3
"""
Probe contract gate CLI (bin/probe-contract-gate).

Without --probe every probe under probes/ is linted statically. With --probe
the named probe is linted and then re-run under each gate mode.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List

from fence.api import env, path_utils
from fence.api.catalog.repository import CatalogRepository
from fence.api.contract import gate
from fence.api.contract.declaration import PROBES_DIR, collect_probe_scripts, resolve_probe
from fence.api.contract.lint import lint_path
from fence.api.contract.verdict import GateVerdict
from fence.api.errors import FenceError
from fence.api.runner import modes


def _print_verdicts(verdicts: List[GateVerdict]) -> None:
    for verdict in verdicts:
        print(f"  {verdict.summary_line()}")
        for violation in verdict.violations:
            print(f"         - {violation.message}")


def run_static(repo_root: Path) -> List[GateVerdict]:
    scripts = collect_probe_scripts(repo_root / PROBES_DIR)
    if not scripts:
        raise FenceError(f"no probe scripts found under {repo_root / PROBES_DIR}")
    return [lint_path(script) for script in scripts]


def main(argv: list[str] | None = None) -> int:
    env.configure_logging()
    ap = argparse.ArgumentParser(description="Check probes against the authoring contract.")
    ap.add_argument("--probe", help="Probe id or path; enables the dynamic gate")
    ap.add_argument("--static-only", action="store_true", help="Skip the dynamic gate")
    ap.add_argument("--modes", default=None, help="Comma-separated run modes for the dynamic gate")
    ap.add_argument("--timeout", type=float, default=None, help="Per-run wall-clock budget in seconds")
    ap.add_argument("--catalog", type=Path, default=None, help="Capability catalog path")
    ap.add_argument("--json", action="store_true", help="Print verdicts as JSON")
    args = ap.parse_args(argv)

    repo_root = path_utils.find_repo_root(Path(__file__))
    try:
        if args.probe is None:
            verdicts = run_static(repo_root)
        else:
            probe = resolve_probe(args.probe, repo_root)
            if args.static_only:
                verdicts = [lint_path(probe)]
            else:
                mode_names = env.split_list(args.modes) if args.modes else modes.default_gate_modes()
                catalogs = CatalogRepository.from_path(args.catalog, repo_root=repo_root)
                verdicts = gate.gate_probe_modes(
                    probe,
                    mode_names,
                    timeout=args.timeout,
                    repo_root=repo_root,
                    catalogs=catalogs,
                )
    except FenceError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps([v.to_dict() for v in verdicts], indent=2))
    else:
        print(f"probe_contract: checking {len(verdicts)} probe run(s)")
        _print_verdicts(verdicts)
    return 0 if all(v.passed for v in verdicts) else 1


if __name__ == "__main__":
    raise SystemExit(main())
