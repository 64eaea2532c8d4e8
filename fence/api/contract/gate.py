"""
Dynamic probe contract gate.

`gate_probe` lints the probe, then re-runs it once under a run mode through a
`SandboxedExecutor` and checks, independently:

- the probe exited 0 (a denial is reported through the emitter, never through
  the exit status)
- the emitter stand-in was called exactly once
- that call passed full emitter validation
- the declared probe_name / primary_capability_id and the gated run mode match
  the call's flags

All failed checks are reported together. Timeouts and shadow-root failures
become violations rather than exceptions.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from fence.api import env
from fence.api.catalog.repository import CatalogRepository
from fence.api.contract.declaration import ProbeDeclaration, parse_declaration
from fence.api.contract.executor import ExecutionResult, SandboxedExecutor, ShadowRootExecutor
from fence.api.contract.lint import lint_path
from fence.api.contract.verdict import GateVerdict, Violation
from fence.api.errors import ContractViolation, IdentityMismatch, ProbeTimeoutError, ResourceError, SchemaError
from fence.api.runner import modes

logger = logging.getLogger(__name__)


def _tail(text: str, limit: int = 3) -> str:
    lines = [line for line in text.strip().splitlines() if line.strip()]
    return " | ".join(lines[-limit:])


def check_execution(decl: ProbeDeclaration, result: ExecutionResult, mode: Optional[str] = None) -> List[Violation]:
    violations: List[Violation] = []

    if result.returncode != 0:
        detail = _tail(result.stderr)
        suffix = f" ({detail})" if detail else ""
        violations.append(
            Violation(ContractViolation.kind, f"probe exited with status {result.returncode}; expected 0{suffix}")
        )

    count = len(result.invocations)
    if count == 0:
        violations.append(Violation(ContractViolation.kind, "never emitted: bin/emit-record was not called"))
        return violations
    if count > 1:
        violations.append(
            Violation(ContractViolation.kind, f"emitted more than once: bin/emit-record was called {count} times")
        )

    call = result.invocations[0]
    if not call.passed:
        kind = call.violation_kind or ContractViolation.kind
        violations.append(Violation(kind, f"emit-record rejected the call: {call.violation}"))

    if call.probe_name is not None and call.probe_name != decl.declared_name:
        violations.append(
            Violation(
                IdentityMismatch.kind,
                f"declared probe_name '{decl.declared_name}' but emitted --probe-name '{call.probe_name}'",
            )
        )
    if call.primary_capability_id is not None and call.primary_capability_id.strip() != decl.primary_capability_id:
        violations.append(
            Violation(
                IdentityMismatch.kind,
                f"declared primary_capability_id '{decl.primary_capability_id}' "
                f"but emitted --primary-capability-id '{call.primary_capability_id}'",
            )
        )
    if mode is not None and call.run_mode is not None and call.run_mode != mode:
        violations.append(
            Violation(
                IdentityMismatch.kind,
                f"gated under run mode '{mode}' but emitted --run-mode '{call.run_mode}'",
            )
        )
    return violations


def gate_probe(
    probe: Path,
    mode: str,
    executor: Optional[SandboxedExecutor] = None,
    timeout: Optional[float] = None,
    repo_root: Optional[Path] = None,
    catalog_path: Optional[Path] = None,
    catalogs: Optional[CatalogRepository] = None,
) -> GateVerdict:
    """Static lint plus one dynamic run of `probe` under `mode`."""

    probe = Path(probe)
    lint = lint_path(probe)
    if not lint.passed:
        return GateVerdict.from_violations(lint.probe, list(lint.violations), mode=mode)

    try:
        modes.get_mode(mode)
    except SchemaError as exc:
        return GateVerdict.from_violations(lint.probe, [Violation(exc.kind, str(exc))], mode=mode)

    decl = parse_declaration(probe)
    budget = timeout if timeout is not None else env.gate_timeout_s()
    try:
        runner = executor or ShadowRootExecutor(repo_root=repo_root, catalog_path=catalog_path, catalogs=catalogs)
        result = runner.run(probe, {env.RUN_MODE: mode}, budget)
    except ProbeTimeoutError as exc:
        return GateVerdict.from_violations(lint.probe, [Violation(exc.kind, str(exc))], mode=mode)
    except ResourceError as exc:
        return GateVerdict.from_violations(lint.probe, [Violation(exc.kind, str(exc))], mode=mode)

    violations = check_execution(decl, result, mode=mode)
    event = None
    if not violations and result.invocations:
        event = result.invocations[0].event
    verdict = GateVerdict.from_violations(lint.probe, violations, mode=mode, event=event)
    logger.info("%s %s under %s", verdict.status, lint.probe, mode)
    return verdict


def gate_probe_modes(
    probe: Path,
    mode_names: Optional[Sequence[str]] = None,
    executor: Optional[SandboxedExecutor] = None,
    timeout: Optional[float] = None,
    repo_root: Optional[Path] = None,
    catalog_path: Optional[Path] = None,
    catalogs: Optional[CatalogRepository] = None,
) -> List[GateVerdict]:
    names = list(mode_names) if mode_names else modes.default_gate_modes()
    return [
        gate_probe(
            probe,
            name,
            executor=executor,
            timeout=timeout,
            repo_root=repo_root,
            catalog_path=catalog_path,
            catalogs=catalogs,
        )
        for name in names
    ]
