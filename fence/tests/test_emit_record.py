import json
import os
import platform
from pathlib import Path

import pytest

from fence.api.boundary import builder, emit_record, stack
from fence.api.boundary.inputs import parse_emit_args
from fence.api.boundary.schema import validate_event_document
from fence.api.boundary.sink import RecordingSink
from fence.api.catalog import CatalogRepository
from fence.api.catalog import index as catalog_index
from fence.api.errors import InvalidValue, UnknownCapability
from fence.api.runner import modes

ROOT = Path(__file__).resolve().parents[2]

ARGV = [
    "--run-mode", "baseline",
    "--probe-name", "tests_fixture_probe",
    "--probe-version", "1",
    "--primary-capability-id", "cap_fs_read_workspace_tree",
    "--command", "printf fixture-line > /tmp/fixture.txt",
    "--category", "fs",
    "--verb", "read",
    "--target", "/tmp/fixture.txt",
    "--status", "success",
    "--raw-exit-code", "0",
    "--payload-stdout", "fixture ok",
    "--operation-args", '{"fixture": true}',
]


def test_main_prints_one_event(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("FENCE_WORKSPACE_ROOT", str(tmp_path))
    monkeypatch.setenv("FENCE_SANDBOX_MODE", "workspace-write")
    assert emit_record.main(ARGV) == 0
    out = capsys.readouterr().out
    assert out.count("\n") == 1
    doc = json.loads(out)
    assert doc["schema_key"] == "cfbo-v1"
    assert doc["capabilities_schema_version"] == "macos_codex_v1"
    assert doc["run"]["workspace_root"] == str(tmp_path.resolve())
    assert doc["stack"]["sandbox_mode"] == "workspace-write"
    assert doc["operation"]["args"] == {"fixture": True}
    assert doc["capability_context"]["primary"]["category"] == "filesystem"
    catalog = catalog_index.load(repo_root=ROOT)
    validate_event_document(doc, catalog)


def test_main_reports_errors(capsys):
    argv = list(ARGV)
    argv[argv.index("--status") + 1] = "allowed"
    assert emit_record.main(argv) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "unknown status" in captured.err


def test_main_help(capsys):
    assert emit_record.main(["--help"]) == 0
    assert "Usage: emit-record" in capsys.readouterr().err


def test_emit_request_with_explicit_catalog(scenario_catalog_path, monkeypatch, tmp_path):
    monkeypatch.setenv("FENCE_WORKSPACE_ROOT", str(tmp_path))
    sink = RecordingSink()
    event = emit_record.emit_request(parse_emit_args(ARGV), sink, catalog_path=str(scenario_catalog_path))
    assert sink.events == [event]
    assert event.capabilities_schema_version == "test_v1"
    assert event.capability_context.primary.category == "fs"


def test_main_escapes_undecodable_bytes(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("FENCE_WORKSPACE_ROOT", str(tmp_path))
    argv = list(ARGV)
    argv[argv.index("--payload-stdout") + 1] = os.fsdecode(b"fixture \xff ok")
    assert emit_record.main(argv) == 0
    doc = json.loads(capsys.readouterr().out)
    assert doc["payload"]["stdout_snippet"] == "fixture \\xff ok"


def test_emit_request_reads_payload_file_once(scenario_catalog_path, monkeypatch, tmp_path):
    monkeypatch.setenv("FENCE_WORKSPACE_ROOT", str(tmp_path))
    payload = tmp_path / "payload.json"
    payload.write_text(json.dumps({"stdout_snippet": "from file", "raw": {"lines": 1}}))
    argv = list(ARGV)
    del argv[argv.index("--payload-stdout") : argv.index("--payload-stdout") + 2]
    argv += ["--payload-file", str(payload)]

    reads = []
    read_json_file = builder._read_json_file

    def counting_read(path, label, field):
        reads.append(path)
        return read_json_file(path, label, field)

    monkeypatch.setattr(builder, "_read_json_file", counting_read)
    catalogs = CatalogRepository.from_path(scenario_catalog_path)
    event = emit_record.emit_request(parse_emit_args(argv), RecordingSink(), catalogs=catalogs)
    assert reads == [str(payload)]
    assert event.payload.stdout_snippet == "from file"
    assert event.capabilities_schema_version == "test_v1"


def test_input_errors_precede_stack_errors(scenario_catalog_path):
    argv = list(ARGV)
    argv[argv.index("--run-mode") + 1] = "no_such_mode"
    argv[argv.index("--primary-capability-id") + 1] = "cap_missing"
    with pytest.raises(UnknownCapability):
        emit_record.emit_request(parse_emit_args(argv), RecordingSink(), catalog_path=str(scenario_catalog_path))


def test_detect_stack(monkeypatch):
    monkeypatch.delenv("FENCE_SANDBOX_MODE", raising=False)
    info = stack.detect_stack("baseline")
    assert list(info) == ["sandbox_mode", "os"]
    assert info["sandbox_mode"] is None
    assert platform.system() in info["os"]
    with pytest.raises(InvalidValue):
        stack.detect_stack("no_such_mode")


def test_detect_stack_cli(capsys):
    assert stack.main(["baseline"]) == 0
    assert "os" in json.loads(capsys.readouterr().out)
    assert stack.main(["no_such_mode"]) == 1


def test_workspace_root_fallbacks(monkeypatch, tmp_path):
    monkeypatch.setenv("FENCE_WORKSPACE_ROOT", str(tmp_path))
    assert stack.resolve_workspace_root() == str(tmp_path.resolve())

    monkeypatch.setenv("FENCE_WORKSPACE_ROOT", "")
    monkeypatch.setattr(stack, "_git_toplevel", lambda: None)
    monkeypatch.setenv("PWD", str(tmp_path))
    assert stack.resolve_workspace_root() == str(tmp_path.resolve())

    monkeypatch.delenv("PWD")
    monkeypatch.chdir(tmp_path)
    assert stack.resolve_workspace_root() == str(tmp_path.resolve())


def test_run_mode_registry(monkeypatch, tmp_path):
    assert modes.allowed_mode_names() == ["baseline"]
    monkeypatch.delenv("FENCE_GATE_MODES", raising=False)
    assert modes.default_gate_modes() == ["baseline"]
    monkeypatch.setenv("FENCE_GATE_MODES", "baseline, other")
    assert modes.default_gate_modes() == ["baseline", "other"]

    probe = tmp_path / "probe.sh"
    plan = modes.plan_for_mode("baseline", probe, tmp_path)
    assert plan.argv == (str(probe),)
    assert plan.env == {
        "FENCE_RUN_MODE": "baseline",
        "FENCE_WORKSPACE_ROOT": str(tmp_path),
        "FENCE_SANDBOX_MODE": "",
    }
    with pytest.raises(InvalidValue, match="allowed: baseline"):
        modes.plan_for_mode("vm", probe, tmp_path)
