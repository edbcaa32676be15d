# n8nguard/diff/operations.py
from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple

from n8nguard.errors import OperationError
from n8nguard.model.schema import OPERATION_BASE_SCHEMA, OPERATION_SCHEMAS, schema_errors

MAX_OPERATIONS = 5

# Pass 1: everything that creates, removes or edits nodes
NODE_OPERATIONS = (
    "addNode",
    "removeNode",
    "updateNode",
    "moveNode",
    "enableNode",
    "disableNode",
)

# Pass 2: edges and workflow metadata, applied once every node exists
GRAPH_OPERATIONS = (
    "addConnection",
    "removeConnection",
    "updateConnection",
    "updateName",
    "updateSettings",
    "addTag",
    "removeTag",
)

SUPPORTED_OPERATIONS = NODE_OPERATIONS + GRAPH_OPERATIONS


def operation_family(op_type: Any) -> Optional[str]:
    if op_type in NODE_OPERATIONS:
        return "node"
    if op_type in GRAPH_OPERATIONS:
        return "graph"
    return None


def check_batch_size(operations: Any) -> None:
    if not isinstance(operations, list):
        raise OperationError(-1, "operations must be an array")
    if not operations:
        raise OperationError(-1, "No operations provided")
    if len(operations) > MAX_OPERATIONS:
        raise OperationError(
            -1,
            f"Too many operations: {len(operations)}. "
            f"At most {MAX_OPERATIONS} operations are allowed per request.",
            details={"count": len(operations), "max": MAX_OPERATIONS},
        )


def check_operation_shape(index: int, op: Any) -> None:
    """Raise OperationError when `op` is not a well-formed operation of a known type."""
    if not isinstance(op, dict):
        raise OperationError(index, f"Operation {index} must be an object")
    op_type = op.get("type")
    if op_type not in OPERATION_SCHEMAS:
        raise OperationError(
            index,
            f'Unknown operation type: "{op_type}" at operation {index}',
            details={"supported": list(SUPPORTED_OPERATIONS)},
        )
    problems = schema_errors(op, OPERATION_BASE_SCHEMA) + schema_errors(op, OPERATION_SCHEMAS[op_type])
    if problems:
        raise OperationError(index, f"Invalid {op_type} operation: {problems[0]}", details={"errors": problems})


def schedule(operations: Sequence[dict]) -> List[Tuple[int, dict]]:
    """Node-family operations first, then graph-family, each keeping submission order."""
    indexed = list(enumerate(operations))
    return (
        [(i, op) for i, op in indexed if operation_family(op.get("type")) == "node"]
        + [(i, op) for i, op in indexed if operation_family(op.get("type")) == "graph"]
    )
