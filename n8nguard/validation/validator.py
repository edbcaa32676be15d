# n8nguard/validation/validator.py
"""
Graph Validator: structural and semantic checks over one workflow.

Passes, in order:
  shape guard  -> fatal problems end validation immediately
  structure    -> per-node shape, duplicates, triggers, single-node rules
  nodes        -> catalog type resolution, typeVersion, node-level settings
  connections  -> references, orphans, cycles, error-output conventions
  expressions  -> {{ }} syntax and $ accessors in parameters
  patterns     -> advisory checks (long chains)
then suggestions are derived from what was found.

Bad input never raises: every anomaly becomes an Issue in the report.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Union

from n8nguard.catalog.base import NodeCatalog
from n8nguard.model.node_types import is_trigger_node
from n8nguard.model.schema import NODE_SCHEMA, WORKFLOW_SHAPE_SCHEMA, schema_errors
from n8nguard.model.workflow import ERROR_CHANNEL, MAIN, WorkflowGraph
from n8nguard.utils.graph import longest_chain
from n8nguard.utils.logger import get_logger
from n8nguard.validation.connections import validate_connections
from n8nguard.validation.expressions import ExpressionContext, validate_parameter_expressions
from n8nguard.validation.nodes import is_well_formed_node, validate_nodes
from n8nguard.validation.report import ValidationOptions, ValidationReport

logger = get_logger("validation")

NULL_WORKFLOW_MESSAGE = "Workflow is null or undefined"
LONG_CHAIN_THRESHOLD = 10
LARGE_WORKFLOW_NODES = 20
EXPRESSION_HEAVY_THRESHOLD = 5

OptionsLike = Union[ValidationOptions, Mapping[str, Any], None]


class WorkflowValidator:
    def __init__(self, catalog: NodeCatalog, aliases: Optional[Mapping[str, str]] = None):
        self.catalog = catalog
        self.aliases = aliases

    def validate(self, workflow: Any, options: OptionsLike = None) -> ValidationReport:
        opts = options if isinstance(options, ValidationOptions) else ValidationOptions.from_dict(options)
        report = ValidationReport()

        if not _check_shape(workflow, report):
            logger.debug("Validation stopped at shape guard: %s", report.error_messages())
            return report

        graph = WorkflowGraph(workflow)
        nodes = _check_structure(graph, report)

        if opts.validate_nodes:
            validate_nodes(nodes, self.catalog, report, self.aliases)
        if opts.validate_connections and len(graph.nodes) > 1:
            validate_connections(graph, report)
        if opts.validate_expressions:
            _check_expressions(graph, nodes, report)

        _check_patterns(graph, report)
        _add_suggestions(graph, report)

        logger.debug(
            "Validated workflow %r: %d errors, %d warnings",
            graph.name, len(report.errors), len(report.warnings),
        )
        return report


def validate_workflow(workflow: Any, catalog: NodeCatalog, options: OptionsLike = None) -> ValidationReport:
    return WorkflowValidator(catalog).validate(workflow, options)


# ---------- Shape guard ----------

def _check_shape(workflow: Any, report: ValidationReport) -> bool:
    if workflow is None or not isinstance(workflow, dict):
        report.add_error(NULL_WORKFLOW_MESSAGE)
        return False
    problems = schema_errors(workflow, WORKFLOW_SHAPE_SCHEMA)
    for p in problems:
        report.add_error(f"Invalid workflow structure: {p}")
    if problems:
        return False
    if not workflow["nodes"]:
        report.add_error("Workflow has no nodes")
        return False
    return True


# ---------- Structure ----------

def _check_structure(graph: WorkflowGraph, report: ValidationReport) -> List[Dict[str, Any]]:
    """Per-node shape, duplicates and trigger counts. Returns the usable nodes."""
    usable: List[Dict[str, Any]] = []
    names: Dict[str, int] = {}
    ids: Dict[str, int] = {}

    for i, node in enumerate(graph.nodes):
        if not isinstance(node, dict):
            report.add_error(f"Node at index {i} is not an object")
            continue
        for problem in schema_errors(node, NODE_SCHEMA):
            report.add_error(f"Invalid node at index {i}: {problem}", node=node)
        if not is_well_formed_node(node):
            continue
        usable.append(node)

        name = node["name"]
        if name in names:
            first = graph.nodes[names[name]]
            report.add_error(
                f'Duplicate node name: "{name}" (nodes at index {names[name]} and {i})',
                node=node,
                details={"indices": [names[name], i], "ids": [first.get("id"), node.get("id")]},
            )
        else:
            names[name] = i

        if node.get("id") is not None:
            node_id = str(node["id"])
            if node_id in ids:
                report.add_error(
                    f'Duplicate node ID: "{node_id}" (nodes at index {ids[node_id]} and {i})',
                    node=node,
                )
            else:
                ids[node_id] = i

    enabled = [n for n in graph.iter_nodes() if n.get("disabled") is not True]
    triggers = [n for n in usable if is_trigger_node(n)]
    report.statistics["totalNodes"] = len(graph.nodes)
    report.statistics["enabledNodes"] = len(enabled)
    report.statistics["triggerNodes"] = len(triggers)

    if not triggers and enabled:
        report.add_warning("Workflow has no trigger nodes. It can only be executed manually.")

    if len(graph.nodes) == 1 and usable and not graph.connections:
        only = usable[0]
        if is_trigger_node(only):
            report.add_suggestion(
                f'"{only["name"]}" is a trigger with nothing after it. Add nodes to process its data.'
            )
        else:
            report.add_warning(
                f'Single-node workflow: "{only["name"]}" is not a trigger and has no connections. '
                "Add a trigger node and connect it to create a functional workflow.",
                node=only,
            )
    return usable


# ---------- Expressions ----------

def _check_expressions(graph: WorkflowGraph, nodes: List[Dict[str, Any]], report: ValidationReport) -> None:
    names = set(graph.node_names())
    with_input = {c.target for c in graph.iter_connections([MAIN])}

    for node in nodes:
        if node.get("disabled") is True:
            continue
        context = ExpressionContext(
            available_nodes=names,
            current_node=node["name"],
            has_input=node["name"] in with_input,
        )
        findings, checked = validate_parameter_expressions(node.get("parameters") or {}, context)
        report.bump("expressionsValidated", checked)
        for f in findings:
            if f.severity == "error":
                report.add_error(f"Expression error in '{f.path}': {f.message}", node=node, details={"path": f.path})
            else:
                report.add_warning(f"Expression warning in '{f.path}': {f.message}", node=node, details={"path": f.path})


# ---------- Patterns & suggestions ----------

def _check_patterns(graph: WorkflowGraph, report: ValidationReport) -> None:
    chain = longest_chain(graph.success_digraph())
    if chain > LONG_CHAIN_THRESHOLD:
        report.add_warning(
            f"Long linear chain detected ({chain} nodes). Consider breaking into sub-workflows."
        )


def _count_expressions(value: Any) -> int:
    if isinstance(value, str):
        return value.count("{{")
    if isinstance(value, list):
        return sum(_count_expressions(v) for v in value)
    if isinstance(value, dict):
        return sum(_count_expressions(v) for v in value.values())
    return 0


def _add_suggestions(graph: WorkflowGraph, report: ValidationReport) -> None:
    nodes = list(graph.iter_nodes())

    if report.statistics["triggerNodes"] == 0:
        report.add_suggestion(
            "Add a trigger node (e.g., Webhook, Schedule Trigger) to automate workflow execution"
        )

    if any("connection" in e.message.lower() for e in report.errors):
        report.add_suggestion(
            'Example connection structure: connections: { "Manual Trigger": '
            '{ "main": [[{ "node": "Set", "type": "main", "index": 0 }]] } }'
        )
        report.add_suggestion(
            "Remember: Use node NAMES (not IDs) in connections. "
            "The name is what you see in the UI, not the node type."
        )

    has_error_routing = any(
        c.source_output == ERROR_CHANNEL or graph.is_error_output(c.source, c.source_output, c.source_index)
        for c in graph.iter_connections()
    )
    if len(nodes) > 1 and not has_error_routing:
        report.add_suggestion("Add error handling using the error output of nodes or an Error Trigger node")

    if any(n.get("continueOnFail") is True and n.get("disabled") is not True for n in nodes):
        report.add_suggestion(
            "Replace \"continueOnFail: true\" with \"onError: 'continueRegularOutput'\" "
            "for better UI compatibility and control."
        )

    if any(_count_expressions(n.get("parameters")) > EXPRESSION_HEAVY_THRESHOLD for n in nodes):
        report.add_suggestion(
            "Consider using a Code node for complex data transformations instead of multiple expressions"
        )

    if len(nodes) > LARGE_WORKFLOW_NODES:
        report.add_suggestion(
            "Consider breaking this workflow into smaller sub-workflows for better maintainability"
        )

    if len(nodes) == 1 and not graph.connections:
        report.add_suggestion(
            "A minimal workflow needs: 1) A trigger node (e.g., Manual Trigger), "
            "2) An action node (e.g., Set, HTTP Request), 3) A connection between them"
        )
