"""Environment knobs read by the harness."""

from __future__ import annotations

import logging
import os
from typing import List, Optional

RUN_MODE = "FENCE_RUN_MODE"
WORKSPACE_ROOT = "FENCE_WORKSPACE_ROOT"
SANDBOX_MODE = "FENCE_SANDBOX_MODE"
GATE_TIMEOUT_S = "FENCE_GATE_TIMEOUT_S"
GATE_MODES = "FENCE_GATE_MODES"
LOG_LEVEL = "FENCE_LOG_LEVEL"

DEFAULT_GATE_TIMEOUT_S = 5.0


def env_non_empty(name: str) -> Optional[str]:
    value = os.environ.get(name)
    if value:
        return value
    return None


def split_list(value: str) -> List[str]:
    """Split a comma- or whitespace-separated list, dropping empties."""
    return [part for part in value.replace(",", " ").split() if part]


def gate_timeout_s() -> float:
    raw = env_non_empty(GATE_TIMEOUT_S)
    if raw is None:
        return DEFAULT_GATE_TIMEOUT_S
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_GATE_TIMEOUT_S
    return value if value > 0 else DEFAULT_GATE_TIMEOUT_S


def gate_modes() -> List[str]:
    raw = env_non_empty(GATE_MODES)
    return split_list(raw) if raw else []


def configure_logging() -> None:
    level_name = (env_non_empty(LOG_LEVEL) or "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
