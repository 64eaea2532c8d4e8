import json
from pathlib import Path

import pytest

from fence.api import path_utils
from fence.api.catalog import CatalogRepository, load, load_document
from fence.api.catalog import defaults
from fence.api.errors import (
    DuplicateId,
    InvalidValue,
    MissingDefaultsManifest,
    MissingField,
    ResourceError,
    SchemaError,
    SchemaVersionMismatch,
    UnknownCapability,
    UnknownCategory,
    UnknownLayer,
)

ROOT = Path(__file__).resolve().parents[2]


def test_scenario_lookup(scenario_index):
    cap = scenario_index.lookup("cap_fs_read_workspace_tree")
    assert cap.id == "cap_fs_read_workspace_tree"
    assert cap.category == "fs"
    assert cap.layer == "os_sandbox"
    with pytest.raises(UnknownCapability):
        scenario_index.lookup("cap_missing")


def test_repo_catalog_round_trip():
    idx = load(repo_root=ROOT)
    assert idx.key == "macos_codex_v1"
    assert len(idx) > 0
    for cap_id in idx.ids():
        assert idx.lookup(cap_id).id == cap_id
    assert list(idx.ids()) == sorted(idx.ids())


def test_duplicate_id_rejected(scenario_doc):
    scenario_doc["capabilities"].append(dict(scenario_doc["capabilities"][0]))
    with pytest.raises(DuplicateId):
        load_document(scenario_doc)


def test_schema_version_mismatch(scenario_doc):
    scenario_doc["schema_version"] = "sandbox_catalog_v0"
    with pytest.raises(SchemaVersionMismatch):
        load_document(scenario_doc)


def test_missing_schema_version(scenario_doc):
    del scenario_doc["schema_version"]
    with pytest.raises(MissingField):
        load_document(scenario_doc)


@pytest.mark.parametrize("key", ["", "has space", "slash/key"])
def test_catalog_key_must_be_token(scenario_doc, key):
    scenario_doc["catalog"]["key"] = key
    with pytest.raises((MissingField, InvalidValue)):
        load_document(scenario_doc)


def test_unknown_category_and_layer(scenario_doc):
    doc = json.loads(json.dumps(scenario_doc))
    doc["capabilities"][0]["category"] = "network"
    with pytest.raises(UnknownCategory):
        load_document(doc)
    scenario_doc["capabilities"][0]["layer"] = "agent_runtime"
    with pytest.raises(UnknownLayer):
        load_document(scenario_doc)


def test_empty_id_and_empty_capabilities(scenario_doc):
    doc = json.loads(json.dumps(scenario_doc))
    doc["capabilities"][0]["id"] = "  "
    with pytest.raises(MissingField):
        load_document(doc)
    scenario_doc["capabilities"] = []
    with pytest.raises(MissingField):
        load_document(scenario_doc)


def test_scope_enumeration_shapes(scenario_doc):
    scenario_doc["scope"]["categories"] = [{"id": "fs", "description": "files"}]
    scenario_doc["scope"]["policy_layers"] = {"os_sandbox": {"description": "kernel"}}
    idx = load_document(scenario_doc)
    assert idx.scope.categories == ("fs",)
    assert idx.scope.policy_layers == ("os_sandbox",)


def test_descriptor_fields_are_immutable(scenario_doc):
    scenario_doc["capabilities"][0]["operations"] = {"allow": ["file-read*"], "deny": []}
    scenario_doc["capabilities"][0]["sources"] = [{"doc": "guide", "section": "file-read*"}]
    idx = load_document(scenario_doc)
    cap = idx.lookup("cap_fs_read_workspace_tree")
    assert cap.allow_ops == ("file-read*",)
    assert cap.sources[0].doc == "guide"
    with pytest.raises(AttributeError):
        cap.id = "other"
    # Mutating the source document must not leak into the index.
    scenario_doc["capabilities"][0]["operations"]["allow"].append("file-write*")
    assert idx.lookup("cap_fs_read_workspace_tree").allow_ops == ("file-read*",)


def test_load_from_explicit_path(scenario_catalog_path):
    idx = load(scenario_catalog_path)
    assert idx.key == "test_v1"
    assert idx.source == str(scenario_catalog_path)


def test_load_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(SchemaError):
        load(path)


def test_missing_defaults_manifest(tmp_path):
    with pytest.raises(MissingDefaultsManifest):
        load(repo_root=tmp_path)


def test_defaults_manifest_without_entry(tmp_path):
    (tmp_path / "catalogs").mkdir()
    (tmp_path / "catalogs" / "defaults.json").write_text(
        json.dumps({"schema_version": "fence_defaults_v1", "defaults": [{"name": "boundary_schema", "path": "x.json"}]})
    )
    with pytest.raises(MissingDefaultsManifest):
        defaults.resolve_catalog_path(repo_root=tmp_path)
    assert defaults.resolve_boundary_schema_path(repo_root=tmp_path) == tmp_path / "x.json"


def test_explicit_path_wins_over_defaults(tmp_path, scenario_catalog_path):
    assert defaults.resolve_catalog_path(scenario_catalog_path, repo_root=tmp_path) == scenario_catalog_path


def test_repo_root_and_manifest_entries(tmp_path, monkeypatch):
    monkeypatch.delenv("FENCE_ROOT", raising=False)
    assert path_utils.find_repo_root(Path(__file__)) == ROOT
    # A hint that is not a checkout is ignored.
    monkeypatch.setenv("FENCE_ROOT", str(tmp_path))
    assert path_utils.find_repo_root(Path(__file__)) == ROOT
    assert path_utils.ensure_absolute("catalogs/defaults.json", ROOT) == ROOT / "catalogs" / "defaults.json"
    assert path_utils.ensure_absolute(tmp_path, ROOT) == tmp_path


def test_repository_keys_and_duplicates(scenario_index, multi_index):
    repo = CatalogRepository([scenario_index, multi_index])
    assert repo.keys() == ["test_multi_v1", "test_v1"]
    assert repo.active.key == "test_v1"
    repo.activate("test_multi_v1")
    assert repo.active.key == "test_multi_v1"
    with pytest.raises(DuplicateId):
        repo.register(scenario_index)
    assert repo.find_capability("test_multi_v1", "cap_fs_agent_marker").layer == "agent_runtime"
    assert repo.find_capability("test_v1", "cap_fs_agent_marker") is None
    assert repo.find_capability("nope", "cap_fs_read_workspace_tree") is None


def test_repository_lookup_context(multi_index):
    repo = CatalogRepository([multi_index])
    event = {
        "capabilities_schema_version": "test_multi_v1",
        "capability_context": {
            "primary": {"id": "cap_fs_read_workspace_tree", "category": "fs", "layer": "os_sandbox"},
            "secondary": [{"id": "cap_fs_agent_marker", "category": "fs", "layer": "agent_runtime"}],
        },
    }
    primary, secondary = repo.lookup_context(event)
    assert primary.id == "cap_fs_read_workspace_tree"
    assert [cap.id for cap in secondary] == ["cap_fs_agent_marker"]

    event["capabilities_schema_version"] = "other_v1"
    with pytest.raises(UnknownCapability):
        repo.lookup_context(event)


def test_multi_catalog_fixture_is_valid(multi_index):
    assert len(multi_index) == 3
    assert multi_index.scope.policy_layers == ("os_sandbox", "agent_runtime")


def test_repository_without_catalog_raises_resource_error(scenario_index):
    with pytest.raises(ResourceError, match="no catalog registered"):
        CatalogRepository().active
    repo = CatalogRepository([scenario_index])
    with pytest.raises(ResourceError, match="catalog missing_v1 is not registered"):
        repo.activate("missing_v1")
    assert repo.active.key == "test_v1"
