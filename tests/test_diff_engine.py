# tests/test_diff_engine.py

import copy
import logging

import pytest

from n8nguard.diff.engine import WorkflowDiffEngine, apply_diff
from n8nguard.diff.operations import MAX_OPERATIONS, schedule
from n8nguard.model.workflow import WorkflowGraph
from n8nguard.validation.validator import WorkflowValidator


def _edges(workflow):
    return {(c.source, c.target) for c in WorkflowGraph(workflow).iter_connections()}


def _mentions(workflow, name):
    """True when any node or connection still refers to `name`."""
    g = WorkflowGraph(workflow)
    return name in g.node_names() or any(name in (c.source, c.target) for c in g.iter_connections())


def _tags(n):
    return [{"type": "addTag", "tag": f"t{i}"} for i in range(n)]


# ---------- Batch limits ----------

def test_five_operations_accepted(base_workflow):
    result = apply_diff(base_workflow, _tags(MAX_OPERATIONS))
    assert result.success
    assert result.operations_applied == 5
    assert result.workflow["tags"] == ["t0", "t1", "t2", "t3", "t4"]


def test_six_operations_rejected_untouched(base_workflow):
    before = copy.deepcopy(base_workflow)
    result = apply_diff(base_workflow, _tags(6))
    assert not result.success
    assert result.errors[0]["operation"] == -1
    assert "Too many operations: 6" in result.message
    assert result.workflow == before
    assert base_workflow == before


@pytest.mark.parametrize("operations, fragment", [([], "No operations provided"), ({}, "operations must be an array")])
def test_empty_or_malformed_batch(base_workflow, operations, fragment):
    result = apply_diff(base_workflow, operations)
    assert not result.success
    assert fragment in result.message


def test_unknown_operation_type_names_index(base_workflow):
    result = apply_diff(base_workflow, [{"type": "addTag", "tag": "x"}, {"type": "explode"}])
    assert not result.success
    assert result.errors[0]["operation"] == 1
    assert 'Unknown operation type: "explode" at operation 1' in result.message


def test_schema_violation_is_rejected(base_workflow):
    result = apply_diff(base_workflow, [{"type": "moveNode", "nodeName": "Set", "position": [1]}])
    assert not result.success
    assert result.message.startswith("Invalid moveNode operation")


# ---------- Scheduling ----------

def test_schedule_runs_node_operations_first():
    ops = [
        {"type": "addConnection", "source": "A", "target": "C"},
        {"type": "updateName", "name": "x"},
        {"type": "addNode", "node": {"name": "C", "type": "known.type"}},
        {"type": "removeNode", "nodeName": "B"},
    ]
    assert [i for i, _ in schedule(ops)] == [2, 3, 0, 1]


def test_connection_before_node_in_submission_order():
    wf = {
        "nodes": [{"id": "a", "name": "A", "type": "known.type"}, {"id": "b", "name": "B", "type": "known.type"}],
        "connections": {"A": {"main": [[{"node": "B", "type": "main", "index": 0}]]}},
    }
    result = apply_diff(wf, [
        {"type": "addConnection", "source": "A", "target": "C"},
        {"type": "addNode", "node": {"name": "C", "type": "known.type"}},
    ])
    assert result.success, result.message
    assert _edges(result.workflow) == {("A", "B"), ("A", "C")}
    assert [r.index for r in result.operations] == [0, 1]


@pytest.mark.parametrize(
    "order",
    [
        ["add", "connect", "remove"],
        ["connect", "remove", "add"],
        ["remove", "add", "connect"],
    ],
)
def test_add_connect_remove_leaves_no_reference(base_workflow, order):
    ops = {
        "add": {"type": "addNode", "node": {"name": "N", "type": "n8n-nodes-base.noOp"}},
        "connect": {"type": "addConnection", "source": "Set", "target": "N"},
        "remove": {"type": "removeNode", "nodeName": "N"},
    }
    result = apply_diff(base_workflow, [ops[k] for k in order])
    assert not _mentions(result.workflow, "N")
    assert not _mentions(base_workflow, "N")


# ---------- Node operations ----------

def test_add_node_defaults(base_workflow):
    result = apply_diff(base_workflow, [{"type": "addNode", "node": {"name": "Wait", "type": "n8n-nodes-base.wait"}}])
    node = WorkflowGraph(result.workflow).get_node("Wait")
    assert node["typeVersion"] == 1
    assert node["position"] == [0, 0]
    assert node["parameters"] == {}
    assert len(node["id"]) == 36


@pytest.mark.parametrize(
    "node, fragment",
    [
        ({"name": "Set", "type": "n8n-nodes-base.set"}, 'Node with name "Set" already exists'),
        ({"name": "New", "type": "n8n-nodes-base.set", "id": "s1"}, 'Node with id "s1" already exists'),
        ({"name": "New", "type": "nodes-base.set"}, 'Use "n8n-nodes-base.set" instead'),
        ({"name": "New", "type": "set"}, "must include the package prefix"),
    ],
)
def test_add_node_rejections(base_workflow, node, fragment):
    result = apply_diff(base_workflow, [{"type": "addNode", "node": node}])
    assert not result.success
    assert fragment in result.message


def test_remove_node_logs_broken_connections(base_workflow, caplog):
    logger = logging.getLogger("n8nguard")
    logger.propagate = True
    try:
        with caplog.at_level(logging.WARNING, logger="n8nguard.diff"):
            result = apply_diff(base_workflow, [{"type": "removeNode", "nodeName": "Set"}])
    finally:
        logger.propagate = False
    assert result.success
    assert result.workflow["connections"] == {}
    assert any("broke 1 connection" in r.getMessage() for r in caplog.records)


def test_missing_node_is_rejected(base_workflow):
    result = apply_diff(base_workflow, [{"type": "disableNode", "nodeName": "Ghost"}])
    assert not result.success
    assert result.message == 'Node not found: "Ghost"'


def test_update_node_merges_changes(base_workflow):
    base_workflow["nodes"][1]["parameters"] = {"options": {"a": 1}, "keep": "yes"}
    result = apply_diff(base_workflow, [{
        "type": "updateNode",
        "nodeId": "s1",
        "changes": {
            "parameters": {"options": {"b": 2}},
            "parameters.url": "https://example.com",
            "notes": "edited",
        },
    }])
    node = WorkflowGraph(result.workflow).get_node("Set")
    assert node["parameters"] == {"options": {"a": 1, "b": 2}, "keep": "yes", "url": "https://example.com"}
    assert node["notes"] == "edited"


def test_update_node_rename_conflict(base_workflow):
    result = apply_diff(base_workflow, [{"type": "updateNode", "nodeName": "Set", "changes": {"name": "Manual Trigger"}}])
    assert not result.success
    assert "already exists" in result.message


def test_move_enable_disable(base_workflow):
    result = apply_diff(base_workflow, [
        {"type": "moveNode", "nodeName": "Set", "position": [10, 20]},
        {"type": "disableNode", "nodeName": "Set"},
    ])
    node = WorkflowGraph(result.workflow).get_node("Set")
    assert node["position"] == [10, 20]
    assert node["disabled"] is True

    again = apply_diff(result.workflow, [{"type": "enableNode", "nodeName": "Set"}])
    assert WorkflowGraph(again.workflow).get_node("Set")["disabled"] is False


# ---------- Graph operations ----------

def test_add_existing_connection_is_noop(base_workflow):
    result = apply_diff(base_workflow, [{"type": "addConnection", "source": "Manual Trigger", "target": "Set"}])
    assert result.success
    assert result.operations[0].changed is False
    assert result.workflow["connections"] == base_workflow["connections"]


def test_remove_missing_connection_is_rejected(base_workflow):
    result = apply_diff(base_workflow, [{"type": "removeConnection", "source": "Set", "target": "Manual Trigger"}])
    assert not result.success
    assert 'No connection found from "Set" to "Manual Trigger"' in result.message


def test_connection_endpoints_must_exist(base_workflow):
    result = apply_diff(base_workflow, [{"type": "addConnection", "source": "Ghost", "target": "Set"}])
    assert result.message == 'Source node not found: "Ghost"'


@pytest.mark.parametrize("stored", [{"main": {}}, ["not", "a", "channel map"]])
def test_malformed_stored_connections_reject_batch(base_workflow, stored):
    base_workflow["connections"]["Set"] = stored
    before = copy.deepcopy(base_workflow)
    result = apply_diff(base_workflow, [{"type": "addConnection", "source": "Set", "target": "Manual Trigger"}])
    assert not result.success
    assert result.errors[0]["operation"] == 0
    assert result.message.startswith('Cannot connect "Set" -> "Manual Trigger"')
    assert result.workflow == before


def test_update_connection_keeps_unspecified_fields(base_workflow):
    result = apply_diff(base_workflow, [{
        "type": "updateConnection",
        "source": "Manual Trigger",
        "target": "Set",
        "changes": {"sourceIndex": 1},
    }])
    assert result.success
    assert result.workflow["connections"]["Manual Trigger"]["main"] == [
        [], [{"node": "Set", "type": "main", "index": 0}]
    ]


def test_metadata_operations(base_workflow):
    base_workflow["tags"] = ["keep"]
    result = apply_diff(base_workflow, [
        {"type": "updateName", "name": "Renamed"},
        {"type": "updateSettings", "settings": {"timezone": "UTC"}},
        {"type": "addTag", "tag": "keep"},
        {"type": "addTag", "tag": "new"},
        {"type": "removeTag", "tag": "absent"},
    ])
    assert result.success
    wf = result.workflow
    assert wf["name"] == "Renamed"
    assert wf["settings"] == {"timezone": "UTC"}
    assert wf["tags"] == ["keep", "new"]
    assert [r.changed for r in result.operations] == [True, True, False, True, False]


# ---------- Atomicity & modes ----------

def test_failure_in_second_pass_discards_first_pass(base_workflow):
    before = copy.deepcopy(base_workflow)
    result = apply_diff(base_workflow, [
        {"type": "addNode", "node": {"name": "New", "type": "n8n-nodes-base.noOp"}},
        {"type": "removeConnection", "source": "New", "target": "Set"},
    ])
    assert not result.success
    assert result.errors[0]["operation"] == 1
    assert result.workflow == before
    assert base_workflow == before
    assert result.to_dict()["operationsApplied"] == 0


def test_validate_only_discards_result(base_workflow):
    before = copy.deepcopy(base_workflow)
    result = apply_diff(base_workflow, [{"type": "updateName", "name": "Dry run"}], validate_only=True)
    assert result.success
    assert result.workflow is None
    assert result.message == "Validation successful. All operations are valid."
    assert base_workflow == before


def test_post_validation_rejects_invalid_result(catalog, base_workflow):
    validate = WorkflowValidator(catalog).validate
    result = WorkflowDiffEngine().apply(
        base_workflow,
        [{"type": "addNode", "node": {"name": "Broken", "type": "n8n-nodes-base.doesNotExist"}}],
        post_validate=validate,
    )
    assert not result.success
    assert result.message == "Workflow validation failed after applying operations"
    assert result.validation is not None and not result.validation.valid
    assert result.workflow == base_workflow

    ok = WorkflowDiffEngine().apply(base_workflow, [{"type": "updateName", "name": "Fine"}], post_validate=validate)
    assert ok.success
    assert ok.to_dict()["validation"]["valid"] is True
