import json
import shutil

import pytest

from fence.api.contract import cli

pytestmark = pytest.mark.skipif(shutil.which("bash") is None, reason="bash is not installed")


def test_static_run_over_repo_probes(capsys):
    assert cli.main([]) == 0
    out = capsys.readouterr().out
    assert out.startswith("probe_contract: checking 2 probe run(s)")
    assert "[PASS] fs_outside_workspace" in out
    assert "[PASS] tests_fixture_probe" in out


def test_static_only_single_probe_json(capsys):
    assert cli.main(["--probe", "tests_fixture_probe", "--static-only", "--json"]) == 0
    verdicts = json.loads(capsys.readouterr().out)
    assert verdicts == [{"probe": "tests_fixture_probe", "mode": None, "status": "PASS", "violations": []}]


def test_unknown_probe(capsys):
    assert cli.main(["--probe", "no_such_probe"]) == 1
    assert "probe not found" in capsys.readouterr().err


def test_failing_probe_path(tmp_path, capsys):
    probe = tmp_path / "broken_probe.sh"
    probe.write_text("#!/bin/sh\necho hi\n")
    assert cli.main(["--probe", str(probe), "--static-only"]) == 1
    out = capsys.readouterr().out
    assert "[FAIL] broken_probe" in out
    assert "missing #!/usr/bin/env bash shebang" in out


def test_missing_catalog_stops_before_dynamic_gate(tmp_path, capsys):
    missing = tmp_path / "missing_catalog.json"
    assert cli.main(["--probe", "tests_fixture_probe", "--catalog", str(missing)]) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "capability catalog not found" in captured.err
