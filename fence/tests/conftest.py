import json

import pytest

from fence.api.catalog import index as catalog_index


def scenario_catalog_doc():
    return {
        "schema_version": "sandbox_catalog_v1",
        "catalog": {"key": "test_v1"},
        "scope": {"categories": ["fs"], "policy_layers": ["os_sandbox"]},
        "capabilities": [
            {
                "id": "cap_fs_read_workspace_tree",
                "category": "fs",
                "layer": "os_sandbox",
                "description": "Read files under the workspace root.",
            }
        ],
    }


def multi_catalog_doc():
    doc = scenario_catalog_doc()
    doc["catalog"]["key"] = "test_multi_v1"
    doc["scope"]["policy_layers"] = ["os_sandbox", "agent_runtime"]
    doc["capabilities"] += [
        {"id": "cap_fs_write_workspace_tree", "category": "fs", "layer": "os_sandbox", "description": "Write."},
        {"id": "cap_fs_agent_marker", "category": "fs", "layer": "agent_runtime", "description": "Marker."},
    ]
    return doc


@pytest.fixture
def scenario_doc():
    return scenario_catalog_doc()


@pytest.fixture
def scenario_index():
    return catalog_index.load_document(scenario_catalog_doc())


@pytest.fixture
def multi_index():
    return catalog_index.load_document(multi_catalog_doc())


@pytest.fixture
def scenario_catalog_path(tmp_path):
    path = tmp_path / "test_v1.json"
    path.write_text(json.dumps(scenario_catalog_doc()))
    return path
