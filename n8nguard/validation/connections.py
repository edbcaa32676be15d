# n8nguard/validation/connections.py
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Set

from n8nguard.model.node_types import extract_node_name, is_trigger_node
from n8nguard.model.schema import CONNECTION_TARGET_SCHEMA, schema_errors
from n8nguard.model.workflow import CONTINUE_ERROR_OUTPUT, MAIN, WorkflowGraph
from n8nguard.utils.graph import find_back_edges
from n8nguard.validation.report import ValidationReport

NO_CONNECTIONS_MESSAGE = (
    "Multi-node workflow has no connections. Nodes must be connected to create a workflow. "
    'Use connections: { "Source Node Name": { "main": [[{ "node": "Target Node Name", "type": "main", "index": 0 }]] } }'
)

# Node types with more than one success output (branches, loops)
MULTI_OUTPUT_TYPES = ("if", "switch", "splitinbatches", "comparedatasets")

ERROR_HANDLER_NAME_KEYS = ("error", "fail", "catch", "exception")
ERROR_HANDLER_TYPES = ("respondtowebhook", "stopanderror")


def looks_like_error_handler(name: str, node: Optional[Dict[str, Any]] = None) -> bool:
    """Heuristic: the name says so, or the type is a failure-response node."""
    lowered = name.lower()
    if any(k in lowered for k in ERROR_HANDLER_NAME_KEYS):
        return True
    if node and isinstance(node.get("type"), str):
        return extract_node_name(node["type"]).lower() in ERROR_HANDLER_TYPES
    return False


def is_multi_output(node: Dict[str, Any]) -> bool:
    t = node.get("type")
    return isinstance(t, str) and extract_node_name(t).lower() in MULTI_OUTPUT_TYPES


# ---------- References ----------

def _id_index(graph: WorkflowGraph) -> Dict[str, Dict[str, Any]]:
    return {str(n["id"]): n for n in graph.iter_nodes() if n.get("id") is not None}


def _check_references(graph: WorkflowGraph, report: ValidationReport) -> Set[str]:
    """Resolve every endpoint; return the names touched by a resolved connection."""
    by_id = _id_index(graph)
    connected: Set[str] = set()

    for source, by_channel in graph.connections.items():
        if graph.get_node(source) is None:
            node = by_id.get(source)
            if node is not None:
                report.add_error(
                    f"Connection uses node ID '{source}' instead of node name '{node.get('name')}'. "
                    "In n8n, connections must use node names, not IDs.",
                    node=node,
                )
            else:
                report.add_error(f'Connection from non-existent node: "{source}"')
            report.bump("invalidConnections")
            continue
        connected.add(source)

        if not isinstance(by_channel, dict):
            report.add_error(f'Connections of "{source}" must be an object keyed by output type')
            report.bump("invalidConnections")
            continue

        for channel, outs in by_channel.items():
            if not isinstance(outs, list):
                report.add_error(f'Connections "{source}".{channel} must be an array of outputs')
                report.bump("invalidConnections")
                continue
            for index, targets in enumerate(outs):
                if targets is None:
                    continue
                if not isinstance(targets, list):
                    report.add_error(f'Connections "{source}".{channel}[{index}] must be an array')
                    report.bump("invalidConnections")
                    continue
                for entry in targets:
                    _check_target(graph, by_id, source, channel, index, entry, connected, report)
    return connected


def _check_target(graph, by_id, source, channel, index, entry, connected, report) -> None:
    problems = schema_errors(entry, CONNECTION_TARGET_SCHEMA)
    if problems:
        report.add_error(
            f'Malformed connection entry in "{source}".{channel}[{index}]: ' + "; ".join(problems),
            details={"entry": entry},
        )
        report.bump("invalidConnections")
        return

    target = entry["node"]
    node = graph.get_node(target)
    if node is None:
        by_id_node = by_id.get(target)
        if by_id_node is not None:
            report.add_error(
                f"Connection uses node ID '{target}' instead of node name '{by_id_node.get('name')}' "
                f'(from "{source}"). In n8n, connections must use node names, not IDs.',
                node=by_id_node,
            )
        else:
            report.add_error(f'Connection to non-existent node: "{target}" from "{source}"')
        report.bump("invalidConnections")
        return

    connected.add(target)
    if node.get("disabled") is True:
        report.add_warning(f'Connection to disabled node: "{target}" from "{source}"')
    else:
        report.bump("validConnections")


# ---------- Cycles ----------

def check_cycles(graph: WorkflowGraph, report: ValidationReport) -> None:
    """
    Cycle check over success edges only. Error outputs may route back to an
    earlier stage, so they are not part of the check.
    """
    for u, v in find_back_edges(graph.success_digraph()):
        report.add_error(
            f'Workflow contains a cycle (infinite loop): connection "{u}" -> "{v}" closes the loop',
            node=graph.get_node(u),
            details={"from": u, "to": v},
        )


# ---------- Error outputs ----------

def _shape(entries: List[Dict[str, Any]]) -> str:
    return json.dumps([{"node": e["node"], "type": e.get("type", MAIN), "index": e.get("index", 0)} for e in entries])


def check_error_outputs(graph: WorkflowGraph, report: ValidationReport) -> None:
    for node in graph.iter_nodes():
        name = node.get("name")
        if not isinstance(name, str):
            continue
        main = graph.outputs(name, MAIN)
        success = [t for t in graph.targets_at(name, MAIN, 0) if isinstance(t.get("node"), str)]

        if len(success) > 1:
            handlers = [t for t in success if looks_like_error_handler(t["node"], graph.get_node(t["node"]))]
            regular = [t for t in success if t not in handlers]
            if handlers and regular:
                _report_misplaced_handlers(name, success, regular, handlers, report, node)

        has_error_output = len(main) > 1 and bool(graph.targets_at(name, MAIN, 1))
        if node.get("onError") == CONTINUE_ERROR_OUTPUT and not has_error_output:
            report.add_error(
                f"Node \"{name}\" has onError: 'continueErrorOutput' but no error output connections in main[1]. "
                "Add error handling nodes to main[1] or change onError to 'continueRegularOutput' or 'stopWorkflow'.",
                node=node,
            )
        elif has_error_output and node.get("onError") != CONTINUE_ERROR_OUTPUT and not is_multi_output(node):
            report.add_warning(
                f"Node \"{name}\" has error output connections in main[1] but missing onError: 'continueErrorOutput'. "
                "Without it the error output is never used.",
                node=node,
            )


def _report_misplaced_handlers(source, current, regular, handlers, report, node) -> None:
    handler_names = ", ".join(f'"{t["node"]}"' for t in handlers)
    lines = [
        f"Incorrect error output configuration. Nodes {handler_names} appear to be error handlers "
        "but are in main[0] (success output) along with other nodes.",
        "",
        "INCORRECT (current):",
        f'"{source}": {{"main": [{_shape(current)}]}}',
        "",
        "CORRECT (should be):",
        f'"{source}": {{"main": [{_shape(regular)}, {_shape(handlers)}]}}',
        "  main[0] = success output, main[1] = error output",
        "",
        f"Also set onError: 'continueErrorOutput' on the \"{source}\" node.",
    ]
    report.add_error(
        "\n".join(lines),
        node=node,
        details={
            "source": source,
            "errorHandlers": [t["node"] for t in handlers],
            "successTargets": [t["node"] for t in regular],
        },
    )


# ---------- Pass ----------

def validate_connections(graph: WorkflowGraph, report: ValidationReport) -> None:
    """Runs on workflows with at least two nodes."""
    nodes = [n for n in graph.iter_nodes() if isinstance(n.get("name"), str)]
    if not graph.connections:
        if any(n.get("disabled") is not True for n in nodes):
            report.add_error(NO_CONNECTIONS_MESSAGE)
        return

    connected = _check_references(graph, report)

    for node in nodes:
        if node.get("disabled") is True or is_trigger_node(node):
            continue
        if node["name"] not in connected:
            report.add_warning("Node is not connected to any other nodes", node=node)

    check_cycles(graph, report)
    check_error_outputs(graph, report)
