"""
Host/sandbox fingerprint and workspace-root resolution for boundary events.

`python -m fence.api.boundary.stack MODE` (shim: bin/detect-stack) prints the
fingerprint as JSON.
"""

from __future__ import annotations

import argparse
import json
import os
import platform
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from fence.api import env
from fence.api.errors import FenceError
from fence.api.runner import modes


def os_fingerprint() -> str:
    return " ".join(part for part in (platform.system(), platform.release(), platform.machine()) if part)


def detect_stack(run_mode: str) -> Dict[str, Any]:
    modes.get_mode(run_mode)
    return {
        "sandbox_mode": env.env_non_empty(env.SANDBOX_MODE),
        "os": os_fingerprint(),
    }


def _canonical(path: str) -> str:
    try:
        return str(Path(path).resolve(strict=True))
    except OSError:
        return path


def _git_toplevel() -> Optional[str]:
    try:
        proc = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.SubprocessError):
        return None
    if proc.returncode != 0:
        return None
    return proc.stdout.strip() or None


def resolve_workspace_root() -> Optional[str]:
    """FENCE_WORKSPACE_ROOT, then the git toplevel, then $PWD, then the cwd."""
    override = env.env_non_empty(env.WORKSPACE_ROOT)
    if override:
        return _canonical(override)
    toplevel = _git_toplevel()
    if toplevel:
        return _canonical(toplevel)
    pwd = env.env_non_empty("PWD")
    if pwd:
        return _canonical(pwd)
    cwd = os.getcwd()
    return _canonical(cwd) if cwd else None


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Print the stack fingerprint for a run mode as JSON.")
    ap.add_argument("run_mode", help="Run mode (see fence.api.runner.modes)")
    args = ap.parse_args(argv)
    try:
        stack = detect_stack(args.run_mode)
    except FenceError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(stack))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
