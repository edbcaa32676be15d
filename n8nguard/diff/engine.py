# n8nguard/diff/engine.py
"""
Diff Engine: applies a small batch of operations to a workflow.

The batch is all-or-nothing. Operations run against a deep copy in two
passes (node operations, then connection/metadata operations), so a batch
may add a connection before the node it points to in submission order.
The first failing operation rejects the whole batch and the caller's
workflow is returned untouched.
"""
from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from n8nguard.diff.operations import check_batch_size, check_operation_shape, schedule
from n8nguard.errors import OperationError
from n8nguard.model.node_types import is_valid_type_format, legacy_alias_correction
from n8nguard.model.parameters import deep_merge, set_path
from n8nguard.model.workflow import MAIN, Connection, WorkflowGraph
from n8nguard.utils.logger import get_logger
from n8nguard.validation.report import ValidationReport

logger = get_logger("diff")

PostValidator = Callable[[Dict[str, Any]], ValidationReport]


@dataclass
class OperationResult:
    index: int
    type: str
    changed: bool
    message: str
    description: Optional[str] = None
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "operation": self.index,
            "type": self.type,
            "success": self.success,
            "changed": self.changed,
            "message": self.message,
        }
        if self.description:
            d["description"] = self.description
        return d


@dataclass
class DiffResult:
    success: bool
    message: str
    workflow: Optional[Dict[str, Any]] = None
    operations: List[OperationResult] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    validation: Optional[ValidationReport] = None

    @property
    def operations_applied(self) -> int:
        return sum(1 for r in self.operations if r.success) if self.success else 0

    @classmethod
    def rejected(cls, workflow: Any, error: OperationError, validation: Optional[ValidationReport] = None) -> "DiffResult":
        return cls(
            success=False,
            message=error.message,
            workflow=workflow,
            errors=[error.to_dict()],
            validation=validation,
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "operationsApplied": self.operations_applied,
            "operations": [r.to_dict() for r in self.operations],
            "errors": list(self.errors),
        }
        if self.workflow is not None:
            d["workflow"] = self.workflow
        if self.validation is not None:
            d["validation"] = self.validation.to_dict()
        return d


class WorkflowDiffEngine:
    def __init__(self):
        self._handlers: Dict[str, Callable[[WorkflowGraph, int, Dict[str, Any]], Tuple[bool, str]]] = {
            "addNode": self._add_node,
            "removeNode": self._remove_node,
            "updateNode": self._update_node,
            "moveNode": self._move_node,
            "enableNode": self._enable_node,
            "disableNode": self._disable_node,
            "addConnection": self._add_connection,
            "removeConnection": self._remove_connection,
            "updateConnection": self._update_connection,
            "updateName": self._update_name,
            "updateSettings": self._update_settings,
            "addTag": self._add_tag,
            "removeTag": self._remove_tag,
        }

    # ---------- Public API ----------

    def apply(
        self,
        workflow: Dict[str, Any],
        operations: Sequence[Dict[str, Any]],
        validate_only: bool = False,
        post_validate: Optional[PostValidator] = None,
    ) -> DiffResult:
        try:
            if not isinstance(workflow, dict):
                raise OperationError(-1, "Workflow is null or undefined")
            check_batch_size(operations)
            for index, op in enumerate(operations):
                check_operation_shape(index, op)

            graph = WorkflowGraph.from_dict(workflow)
            results: Dict[int, OperationResult] = {}
            for index, op in schedule(operations):
                changed, message = self._handlers[op["type"]](graph, index, op)
                results[index] = OperationResult(index, op["type"], changed, message, op.get("description"))
                logger.debug("op %d %s: %s", index, op["type"], message)
        except OperationError as e:
            logger.warning("Diff rejected (operation %d): %s", e.index, e.message)
            return DiffResult.rejected(workflow, e)

        ordered = [results[i] for i in sorted(results)]
        candidate = graph.data

        report = None
        if post_validate is not None:
            report = post_validate(candidate)
            if not report.valid:
                error = OperationError(
                    -1,
                    "Workflow validation failed after applying operations",
                    details={"errors": [issue.to_dict() for issue in report.errors]},
                )
                logger.warning("Diff rejected by post-validation: %d errors", len(report.errors))
                return DiffResult.rejected(workflow, error, validation=report)

        if validate_only:
            return DiffResult(
                success=True,
                message="Validation successful. All operations are valid.",
                operations=ordered,
                validation=report,
            )
        return DiffResult(
            success=True,
            message=f"Applied {len(ordered)} operations successfully",
            workflow=candidate,
            operations=ordered,
            validation=report,
        )

    # ---------- Lookups ----------

    @staticmethod
    def _require_node(graph: WorkflowGraph, index: int, op: Dict[str, Any]) -> Dict[str, Any]:
        node = graph.find_node(op.get("nodeId"), op.get("nodeName"))
        if node is None:
            ref = op.get("nodeName") or op.get("nodeId")
            raise OperationError(index, f'Node not found: "{ref}"', details={"nodeId": op.get("nodeId"), "nodeName": op.get("nodeName")})
        return node

    @staticmethod
    def _require_endpoint(graph: WorkflowGraph, index: int, ref: str, role: str) -> str:
        node = graph.get_node(ref) or graph.get_node_by_id(ref)
        if node is None:
            raise OperationError(index, f'{role} node not found: "{ref}"')
        return node["name"]

    @staticmethod
    def _check_type(index: int, node_type: Any) -> None:
        corrected = legacy_alias_correction(node_type) if isinstance(node_type, str) else None
        if corrected is not None:
            raise OperationError(
                index,
                f'Invalid node type "{node_type}". Use "{corrected}" instead: '
                "node types in workflows must use the full package name.",
                details={"suggestedType": corrected},
            )
        if not is_valid_type_format(node_type):
            raise OperationError(
                index,
                f'Invalid node type "{node_type}". It must include the package prefix '
                '(e.g., "n8n-nodes-base.webhook").',
            )

    # ---------- Node operations ----------

    def _add_node(self, graph: WorkflowGraph, index: int, op: Dict[str, Any]) -> Tuple[bool, str]:
        node = copy.deepcopy(op["node"])
        name = node["name"]
        if graph.has_node(name):
            raise OperationError(index, f'Node with name "{name}" already exists')
        self._check_type(index, node["type"])
        if node.get("id") and graph.get_node_by_id(node["id"]) is not None:
            raise OperationError(index, f'Node with id "{node["id"]}" already exists')

        node.setdefault("id", str(uuid.uuid4()))
        node.setdefault("typeVersion", 1)
        node.setdefault("position", [0, 0])
        node.setdefault("parameters", {})
        graph.add_node(node)
        return True, f'Added node "{name}"'

    def _remove_node(self, graph: WorkflowGraph, index: int, op: Dict[str, Any]) -> Tuple[bool, str]:
        name = self._require_node(graph, index, op)["name"]
        dropped = graph.remove_node(name)
        if dropped:
            logger.warning('Removing node "%s" broke %d connection(s)', name, dropped)
            return True, f'Removed node "{name}" and {dropped} connection(s)'
        return True, f'Removed node "{name}"'

    def _update_node(self, graph: WorkflowGraph, index: int, op: Dict[str, Any]) -> Tuple[bool, str]:
        node = self._require_node(graph, index, op)
        before = copy.deepcopy(node)
        changes = op["changes"]
        new_name = changes.get("name")

        if "type" in changes:
            self._check_type(index, changes["type"])
        if new_name is not None:
            if not isinstance(new_name, str) or not new_name:
                raise OperationError(index, "Node name must be a non-empty string")
            if new_name != node["name"] and graph.has_node(new_name):
                raise OperationError(index, f'Cannot rename "{node["name"]}": a node named "{new_name}" already exists')

        for key, value in changes.items():
            if key == "name":
                continue
            if key == "parameters":
                if not isinstance(value, dict):
                    raise OperationError(index, "parameters must be an object")
                if not isinstance(node.get("parameters"), dict):
                    node["parameters"] = {}
                deep_merge(node["parameters"], value)
            elif "." in key:
                try:
                    set_path(node, key, value)
                except ValueError as e:
                    raise OperationError(index, f'Invalid property path "{key}": {e}') from e
            else:
                node[key] = copy.deepcopy(value)

        old_name = node["name"]
        if new_name is not None and new_name != old_name:
            graph.rename_node(old_name, new_name)
            return True, f'Updated node "{old_name}" (renamed to "{new_name}")'
        return node != before, f'Updated node "{old_name}"'

    def _move_node(self, graph: WorkflowGraph, index: int, op: Dict[str, Any]) -> Tuple[bool, str]:
        node = self._require_node(graph, index, op)
        position = list(op["position"])
        changed = node.get("position") != position
        node["position"] = position
        return changed, f'Moved node "{node["name"]}" to {position}'

    def _enable_node(self, graph: WorkflowGraph, index: int, op: Dict[str, Any]) -> Tuple[bool, str]:
        node = self._require_node(graph, index, op)
        changed = node.get("disabled") is True
        node["disabled"] = False
        return changed, f'Enabled node "{node["name"]}"'

    def _disable_node(self, graph: WorkflowGraph, index: int, op: Dict[str, Any]) -> Tuple[bool, str]:
        node = self._require_node(graph, index, op)
        changed = node.get("disabled") is not True
        node["disabled"] = True
        return changed, f'Disabled node "{node["name"]}"'

    # ---------- Graph operations ----------

    def _endpoints(self, graph: WorkflowGraph, index: int, op: Dict[str, Any]) -> Tuple[str, str]:
        return (
            self._require_endpoint(graph, index, op["source"], "Source"),
            self._require_endpoint(graph, index, op["target"], "Target"),
        )

    @staticmethod
    def _connect(graph: WorkflowGraph, index: int, conn: Connection) -> bool:
        try:
            return graph.add_connection(conn)
        except ValueError as e:
            raise OperationError(index, f'Cannot connect "{conn.source}" -> "{conn.target}": {e}') from e

    def _add_connection(self, graph: WorkflowGraph, index: int, op: Dict[str, Any]) -> Tuple[bool, str]:
        source, target = self._endpoints(graph, index, op)
        conn = Connection(
            source=source,
            source_output=op.get("sourceOutput", MAIN),
            source_index=op.get("sourceIndex", 0),
            target=target,
            target_input=op.get("targetInput", MAIN),
            target_index=op.get("targetIndex", 0),
        )
        if not self._connect(graph, index, conn):
            return False, f'Connection "{source}" -> "{target}" already exists'
        return True, f'Connected "{source}" -> "{target}"'

    def _remove_connection(self, graph: WorkflowGraph, index: int, op: Dict[str, Any]) -> Tuple[bool, str]:
        source, target = self._endpoints(graph, index, op)
        removed = graph.remove_connections(
            source, target, op.get("sourceOutput", MAIN), op.get("sourceIndex")
        )
        if not removed:
            raise OperationError(index, f'No connection found from "{source}" to "{target}"')
        return True, f'Removed connection "{source}" -> "{target}"'

    def _update_connection(self, graph: WorkflowGraph, index: int, op: Dict[str, Any]) -> Tuple[bool, str]:
        source, target = self._endpoints(graph, index, op)
        matches = graph.find_connections(source, target, op.get("sourceOutput"), op.get("sourceIndex"))
        if not matches:
            raise OperationError(index, f'No connection found from "{source}" to "{target}"')

        current = matches[0]
        changes = op["changes"]
        updated = current._replace(
            source_output=changes.get("sourceOutput", current.source_output),
            source_index=changes.get("sourceIndex", current.source_index),
            target_input=changes.get("targetInput", current.target_input),
            target_index=changes.get("targetIndex", current.target_index),
        )
        if updated == current:
            return False, f'Connection "{source}" -> "{target}" unchanged'
        graph.remove_connection(current)
        self._connect(graph, index, updated)
        return True, f'Updated connection "{source}" -> "{target}"'

    def _update_name(self, graph: WorkflowGraph, index: int, op: Dict[str, Any]) -> Tuple[bool, str]:
        changed = graph.name != op["name"]
        graph.name = op["name"]
        return changed, f'Renamed workflow to "{op["name"]}"'

    def _update_settings(self, graph: WorkflowGraph, index: int, op: Dict[str, Any]) -> Tuple[bool, str]:
        settings = graph.settings
        changed = any(settings.get(k) != v or k not in settings for k, v in op["settings"].items())
        settings.update(copy.deepcopy(op["settings"]))
        return changed, f"Updated settings: {', '.join(op['settings']) or 'none'}"

    def _add_tag(self, graph: WorkflowGraph, index: int, op: Dict[str, Any]) -> Tuple[bool, str]:
        tag = op["tag"]
        if tag in graph.tags:
            return False, f'Tag "{tag}" already present'
        graph.tags.append(tag)
        return True, f'Added tag "{tag}"'

    def _remove_tag(self, graph: WorkflowGraph, index: int, op: Dict[str, Any]) -> Tuple[bool, str]:
        tag = op["tag"]
        if tag not in graph.tags:
            return False, f'Tag "{tag}" not present'
        graph.tags.remove(tag)
        return True, f'Removed tag "{tag}"'


def apply_diff(
    workflow: Dict[str, Any],
    operations: Sequence[Dict[str, Any]],
    validate_only: bool = False,
    post_validate: Optional[PostValidator] = None,
) -> DiffResult:
    return WorkflowDiffEngine().apply(workflow, operations, validate_only, post_validate)
