# tests/test_handlers.py

import json

import pytest

from n8nguard.errors import StoreError, WorkflowNotFoundError
from n8nguard.handlers import handle_update_partial_workflow, handle_validate_workflow
from n8nguard.store import FileWorkflowStore


@pytest.fixture
def store(tmp_path, base_workflow):
    s = FileWorkflowStore(tmp_path / "workflows")
    s.save("wf-1", base_workflow)
    return s


# ---------- Store ----------

def test_store_round_trip_and_listing(store, base_workflow):
    assert store.load("wf-1") == base_workflow
    assert store.list_ids() == ["wf-1"]


def test_store_errors(store, tmp_path):
    with pytest.raises(WorkflowNotFoundError, match="Workflow not found: missing"):
        store.load("missing")
    with pytest.raises(StoreError):
        store.load("../escape")
    (tmp_path / "workflows" / "broken.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreError):
        store.load("broken")
    (tmp_path / "workflows" / "list.json").write_text("[]", encoding="utf-8")
    with pytest.raises(StoreError, match="does not contain an object"):
        store.load("list")


# ---------- validate_workflow ----------

def test_handle_validate_workflow(catalog, base_workflow):
    resp = handle_validate_workflow({"workflow": base_workflow}, catalog)
    assert resp["success"] is True
    assert resp["data"]["valid"] is True

    base_workflow["connections"] = {}
    resp = handle_validate_workflow({"workflow": base_workflow, "options": {"validateConnections": False}}, catalog)
    assert resp["data"]["valid"] is True


def test_handle_validate_workflow_bad_request(catalog):
    resp = handle_validate_workflow({"options": {"validateNodes": "yes"}}, catalog)
    assert resp["success"] is False
    assert resp["error"] == "Invalid input"
    assert len(resp["details"]["errors"]) == 2


def test_handle_validate_null_workflow(catalog):
    resp = handle_validate_workflow({"workflow": None}, catalog)
    assert resp["success"] is True
    assert resp["data"]["errors"][0]["message"] == "Workflow is null or undefined"


# ---------- update_partial_workflow ----------

def test_update_saves_on_success(store):
    resp = handle_update_partial_workflow(
        {"id": "wf-1", "operations": [{"type": "updateName", "name": "Updated"}]}, store
    )
    assert resp["success"] is True
    assert resp["details"]["operationsApplied"] == 1
    assert resp["details"]["workflowId"] == "wf-1"
    assert store.load("wf-1")["name"] == "Updated"


def test_update_validate_only_does_not_save(store):
    resp = handle_update_partial_workflow(
        {"id": "wf-1", "operations": [{"type": "updateName", "name": "Nope"}], "validateOnly": True}, store
    )
    assert resp["success"] is True
    assert resp["data"] == {"valid": True, "operations": resp["data"]["operations"], "operationsToApply": 1}
    assert store.load("wf-1")["name"] == "Base"


def test_update_failure_leaves_store_untouched(store, tmp_path):
    path = tmp_path / "workflows" / "wf-1.json"
    before = path.read_text(encoding="utf-8")
    resp = handle_update_partial_workflow(
        {"id": "wf-1", "operations": [{"type": "removeNode", "nodeName": "Ghost"}]}, store
    )
    assert resp["success"] is False
    assert resp["error"] == "Failed to apply diff operations"
    assert resp["details"]["operationsApplied"] == 0
    assert resp["details"]["errors"][0]["message"] == 'Node not found: "Ghost"'
    assert path.read_text(encoding="utf-8") == before


def test_update_with_post_validation(store, catalog):
    ops = [{"type": "addNode", "node": {"name": "Broken", "type": "n8n-nodes-base.doesNotExist"}}]
    resp = handle_update_partial_workflow({"id": "wf-1", "operations": ops, "validateResult": True}, store, catalog)
    assert resp["success"] is False
    assert resp["details"]["validation"]["valid"] is False

    resp = handle_update_partial_workflow({"id": "wf-1", "operations": ops}, store, catalog)
    assert resp["success"] is True


def test_post_validation_defaults_to_bundled_catalog(store):
    ops = [{"type": "addNode", "node": {"name": "Broken", "type": "n8n-nodes-base.doesNotExist"}}]
    resp = handle_update_partial_workflow({"id": "wf-1", "operations": ops, "validateResult": True}, store)
    assert resp["success"] is False
    assert resp["details"]["validation"]["valid"] is False
    assert "Broken" not in [n["name"] for n in store.load("wf-1")["nodes"]]


def test_update_unknown_workflow(store):
    resp = handle_update_partial_workflow({"id": "nope", "operations": [{"type": "updateName", "name": "x"}]}, store)
    assert resp == {"success": False, "error": "Workflow not found: nope"}


def test_update_bad_request(store):
    resp = handle_update_partial_workflow({"operations": "all of them"}, store)
    assert resp["error"] == "Invalid input"
    messages = json.dumps(resp["details"]["errors"])
    assert "'id' is a required property" in messages
