import os
import shutil

import pytest

from fence.api.catalog import CatalogRepository
from fence.api.contract import gate, standin
from fence.api.contract.executor import ExecutionResult, SandboxedExecutor
from fence.api.contract.standin import InvocationRecord, append_invocation, read_invocations
from fence.api.contract.verdict import FAIL, PASS
from fence.api.errors import ProbeTimeoutError, ResourceError

requires_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash is not installed")

PROBE_TEMPLATE = """#!/usr/bin/env bash
set -euo pipefail

probe_name="{name}"
primary_capability_id="cap_fs_read_workspace_tree"
repo_root="${{FENCE_WORKSPACE_ROOT:-.}}"

"${{repo_root}}/bin/emit-record" --run-mode "${{FENCE_RUN_MODE:-baseline}}" --probe-name "${{probe_name}}"
"""

EVENT = {"probe": {"id": "fixture_probe"}}


def passing_call(**overrides):
    fields = dict(
        argv=["--probe-name", "fixture_probe"],
        status="PASS",
        probe_name="fixture_probe",
        primary_capability_id="cap_fs_read_workspace_tree",
        run_mode="baseline",
        event=EVENT,
    )
    fields.update(overrides)
    return InvocationRecord(**fields)


class FakeExecutor(SandboxedExecutor):
    def __init__(self, returncode=0, invocations=(), stderr="", error=None):
        self.result = ExecutionResult(returncode=returncode, stdout="", stderr=stderr, invocations=tuple(invocations))
        self.error = error
        self.calls = []

    def run(self, probe, env, timeout):
        self.calls.append((probe, dict(env or {}), timeout))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def probe(tmp_path):
    path = tmp_path / "fixture_probe.sh"
    path.write_text(PROBE_TEMPLATE.format(name="fixture_probe"))
    return path


@requires_bash
def test_pass_carries_event(probe):
    executor = FakeExecutor(invocations=[passing_call()])
    verdict = gate.gate_probe(probe, "baseline", executor=executor, timeout=3)
    assert verdict.status == PASS
    assert verdict.mode == "baseline"
    assert verdict.event == EVENT
    assert executor.calls == [(probe, {"FENCE_RUN_MODE": "baseline"}, 3)]


@requires_bash
def test_never_emitted(probe):
    verdict = gate.gate_probe(probe, "baseline", executor=FakeExecutor())
    assert verdict.status == FAIL
    assert verdict.messages == ["never emitted: bin/emit-record was not called"]
    assert verdict.event is None


@requires_bash
def test_emitted_twice(probe):
    verdict = gate.gate_probe(probe, "baseline", executor=FakeExecutor(invocations=[passing_call(), passing_call()]))
    assert verdict.status == FAIL
    assert len(verdict.violations) == 1
    assert "emitted more than once" in verdict.messages[0]
    assert "2 times" in verdict.messages[0]
    assert verdict.event is None


@requires_bash
def test_rejected_call_keeps_emitter_kind(probe):
    call = passing_call(status="FAIL", violation="unknown status: allowed", violation_kind="InvalidEnum", event=None)
    verdict = gate.gate_probe(probe, "baseline", executor=FakeExecutor(returncode=1, invocations=[call]))
    assert verdict.kinds() == ["ContractViolation", "InvalidEnum"]
    assert "unknown status: allowed" in verdict.messages[1]


@requires_bash
def test_identity_mismatch_reports_both_fields(probe):
    call = passing_call(probe_name="other_probe", primary_capability_id="cap_other")
    verdict = gate.gate_probe(probe, "baseline", executor=FakeExecutor(invocations=[call]))
    assert verdict.kinds() == ["IdentityMismatch", "IdentityMismatch"]
    assert "other_probe" in verdict.messages[0]
    assert "cap_other" in verdict.messages[1]


@requires_bash
def test_run_mode_mismatch(probe):
    call = passing_call(run_mode="sandboxed")
    verdict = gate.gate_probe(probe, "baseline", executor=FakeExecutor(invocations=[call]))
    assert verdict.kinds() == ["IdentityMismatch"]
    assert "sandboxed" in verdict.messages[0]
    assert verdict.event is None


@requires_bash
def test_nonzero_exit_with_valid_call(probe):
    verdict = gate.gate_probe(probe, "baseline", executor=FakeExecutor(returncode=3, invocations=[passing_call()], stderr="boom\n"))
    assert verdict.messages == ["probe exited with status 3; expected 0 (boom)"]


@requires_bash
def test_all_failures_reported_together(probe):
    calls = [passing_call(probe_name="other_probe"), passing_call()]
    verdict = gate.gate_probe(probe, "baseline", executor=FakeExecutor(returncode=2, invocations=calls))
    assert verdict.kinds() == ["ContractViolation", "ContractViolation", "IdentityMismatch"]


@requires_bash
def test_timeout_becomes_violation(probe):
    executor = FakeExecutor(error=ProbeTimeoutError("fixture_probe.sh", 0.5))
    verdict = gate.gate_probe(probe, "baseline", executor=executor, timeout=0.5)
    assert verdict.kinds() == ["TimeoutError"]


@requires_bash
def test_resource_error_becomes_violation(probe):
    verdict = gate.gate_probe(probe, "baseline", executor=FakeExecutor(error=ResourceError("no tmp")))
    assert verdict.kinds() == ["ResourceError"]


@requires_bash
def test_catalog_without_source_file_becomes_violation(probe, scenario_index, tmp_path):
    catalogs = CatalogRepository([scenario_index])
    verdict = gate.gate_probe(probe, "baseline", repo_root=tmp_path, catalogs=catalogs)
    assert verdict.kinds() == ["ResourceError"]
    assert "test_v1" in verdict.messages[0]


@requires_bash
def test_unknown_mode_never_runs(probe):
    executor = FakeExecutor(invocations=[passing_call()])
    verdict = gate.gate_probe(probe, "no_such_mode", executor=executor)
    assert verdict.status == FAIL
    assert verdict.kinds() == ["InvalidValue"]
    assert executor.calls == []


@requires_bash
def test_static_failure_skips_dynamic_run(tmp_path):
    path = tmp_path / "fixture_probe.sh"
    path.write_text(PROBE_TEMPLATE.format(name="wrong_name"))
    executor = FakeExecutor(invocations=[passing_call()])
    verdict = gate.gate_probe(path, "baseline", executor=executor)
    assert verdict.status == FAIL
    assert executor.calls == []


@requires_bash
def test_gate_probe_modes_uses_defaults(probe, monkeypatch):
    monkeypatch.delenv("FENCE_GATE_MODES", raising=False)
    monkeypatch.setenv("FENCE_GATE_TIMEOUT_S", "2.5")
    executor = FakeExecutor(invocations=[passing_call()])
    verdicts = gate.gate_probe_modes(probe, executor=executor)
    assert [v.mode for v in verdicts] == ["baseline"]
    assert executor.calls[0][2] == 2.5


def test_invocation_log_round_trip(tmp_path):
    assert read_invocations(tmp_path) == []
    append_invocation(tmp_path, passing_call())
    append_invocation(tmp_path, passing_call(status="FAIL", violation="bad", violation_kind="MissingField", event=None))
    records = read_invocations(tmp_path)
    assert [r.passed for r in records] == [True, False]
    assert records[1].violation_kind == "MissingField"


def test_verdict_summary_and_dict():
    verdict = gate.GateVerdict.from_violations("p", [], mode="baseline", event=EVENT)
    assert verdict.summary_line() == "[PASS] p (baseline)"
    assert verdict.to_dict() == {"probe": "p", "mode": "baseline", "status": "PASS", "violations": [], "event": EVENT}


def test_crashed_validation_is_still_recorded(tmp_path, monkeypatch):
    def crash(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(standin, "emit_request", crash)
    record = standin.record_invocation(["--probe-name", os.fsdecode(b"fixture_\xff")])
    assert record.status == FAIL
    assert record.violation_kind == "RuntimeError"
    assert record.violation == "RuntimeError: boom"
    assert record.argv == ["--probe-name", "fixture_\\xff"]
    append_invocation(tmp_path, record)
    assert [r.violation_kind for r in read_invocations(tmp_path)] == ["RuntimeError"]
