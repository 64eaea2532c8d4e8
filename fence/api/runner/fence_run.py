"""
Mode-runner (bin/fence-run): run one probe under a named run mode.

    fence-run [--workspace-root PATH] MODE PROBE

PROBE is a path or a probe id under probes/. The probe's exit status is
propagated unchanged; a well-behaved probe exits 0 whatever outcome it
observed.
"""

from __future__ import annotations

import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path

from fence.api import env, path_utils
from fence.api.contract.declaration import resolve_probe
from fence.api.errors import FenceError
from fence.api.runner import modes

logger = logging.getLogger(__name__)


def run_probe(mode: str, probe: Path, workspace_root: Path) -> int:
    plan = modes.plan_for_mode(mode, probe, workspace_root)
    child_env = dict(os.environ)
    child_env.update(plan.env)
    logger.info("running %s under %s", probe, plan.mode.name)
    try:
        proc = subprocess.run(list(plan.argv), env=child_env)
    except OSError as exc:
        print(f"error: failed to execute {probe}: {exc}", file=sys.stderr)
        return 127
    return proc.returncode


def main(argv: list[str] | None = None) -> int:
    env.configure_logging()
    ap = argparse.ArgumentParser(description="Run a probe under a run mode.")
    ap.add_argument("--workspace-root", type=Path, default=None, help="Workspace root exported to the probe")
    ap.add_argument("mode", help=f"Run mode ({', '.join(modes.allowed_mode_names())})")
    ap.add_argument("probe", help="Probe path or id under probes/")
    args = ap.parse_args(argv)

    try:
        repo_root = path_utils.find_repo_root(Path(__file__))
        probe = resolve_probe(args.probe, repo_root)
        workspace_root = (args.workspace_root or Path(env.env_non_empty(env.WORKSPACE_ROOT) or os.getcwd())).resolve()
        return run_probe(args.mode, probe, workspace_root)
    except FenceError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
