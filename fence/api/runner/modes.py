"""
Run-mode registry.

A run mode names how a probe is launched. Only `baseline` (direct execution
through the ambient shell) is registered; new modes are added here and every
caller (mode-runner, stack detection, gate defaults) picks them up.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from fence.api import env
from fence.api.errors import InvalidValue


@dataclass(frozen=True)
class RunMode:
    name: str
    connector: str
    sandbox_mode: Optional[str] = None
    gate_default: bool = True


@dataclass(frozen=True)
class RunPlan:
    mode: RunMode
    argv: Tuple[str, ...]
    env: Dict[str, str]


RUN_MODES: Tuple[RunMode, ...] = (
    RunMode(name="baseline", connector="ambient", sandbox_mode=None, gate_default=True),
)


def allowed_mode_names() -> List[str]:
    return [mode.name for mode in RUN_MODES]


def get_mode(name: str) -> RunMode:
    for mode in RUN_MODES:
        if mode.name == name:
            return mode
    raise InvalidValue(
        f"unknown run mode '{name}' (allowed: {', '.join(allowed_mode_names())})",
        field="run_mode",
    )


def default_gate_modes() -> List[str]:
    configured = env.gate_modes()
    if configured:
        return configured
    return [mode.name for mode in RUN_MODES if mode.gate_default]


def plan_for_mode(name: str, probe: Path, workspace_root: Path) -> RunPlan:
    """Command line and exported environment for running `probe` under `name`."""
    mode = get_mode(name)
    # An empty sandbox mode clears any value inherited from the caller.
    exported = {
        env.RUN_MODE: mode.name,
        env.WORKSPACE_ROOT: str(workspace_root),
        env.SANDBOX_MODE: mode.sandbox_mode or "",
    }
    if mode.connector == "ambient":
        argv: Tuple[str, ...] = (str(probe),)
    else:
        raise InvalidValue(f"run mode {mode.name} has unsupported connector {mode.connector}", field="run_mode")
    return RunPlan(mode=mode, argv=argv, env=exported)
