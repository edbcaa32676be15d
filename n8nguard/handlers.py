# n8nguard/handlers.py
"""
Tool-call style entry points: a JSON request in, a JSON-ready response out.

    handle_validate_workflow({"workflow": {...}, "options": {...}}, catalog)
    handle_update_partial_workflow({"id": "...", "operations": [...]}, store)

Responses always carry `success`; failures never raise.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from n8nguard.catalog.base import NodeCatalog
from n8nguard.catalog.memory import load_default_catalog
from n8nguard.diff.engine import WorkflowDiffEngine
from n8nguard.errors import N8nGuardError, WorkflowNotFoundError
from n8nguard.model.schema import DIFF_REQUEST_SCHEMA, VALIDATE_REQUEST_SCHEMA, schema_errors
from n8nguard.store import WorkflowStore
from n8nguard.utils.logger import get_logger
from n8nguard.validation.report import ValidationOptions
from n8nguard.validation.validator import WorkflowValidator

logger = get_logger("handlers")


def _invalid_input(problems) -> Dict[str, Any]:
    return {"success": False, "error": "Invalid input", "details": {"errors": problems}}


def handle_validate_workflow(args: Any, catalog: NodeCatalog) -> Dict[str, Any]:
    problems = schema_errors(args, VALIDATE_REQUEST_SCHEMA)
    if problems:
        return _invalid_input(problems)
    report = WorkflowValidator(catalog).validate(
        args.get("workflow"),
        ValidationOptions.from_dict(args.get("options")),
    )
    return {"success": True, "data": report.to_dict()}


def handle_update_partial_workflow(
    args: Any,
    store: WorkflowStore,
    catalog: Optional[NodeCatalog] = None,
) -> Dict[str, Any]:
    """
    Load -> diff -> (validate) -> save. `validateResult` checks against `catalog`,
    or the bundled catalog when none is given. The workflow is only saved when
    the batch succeeds and `validateOnly` is off.
    """
    problems = schema_errors(args, DIFF_REQUEST_SCHEMA)
    if problems:
        return _invalid_input(problems)

    workflow_id = args["id"]
    validate_only = bool(args.get("validateOnly", False))
    post_validate = None
    if args.get("validateResult"):
        if catalog is None:
            catalog = load_default_catalog()
        post_validate = WorkflowValidator(catalog).validate

    try:
        workflow = store.load(workflow_id)
    except WorkflowNotFoundError as e:
        return {"success": False, "error": str(e)}
    except N8nGuardError as e:
        logger.error("Failed to load workflow %s: %s", workflow_id, e)
        return {"success": False, "error": str(e)}

    result = WorkflowDiffEngine().apply(
        workflow, args["operations"], validate_only=validate_only, post_validate=post_validate
    )
    body = result.to_dict()

    if not result.success:
        return {
            "success": False,
            "error": "Failed to apply diff operations",
            "message": result.message,
            "details": {
                "errors": body["errors"],
                "operationsApplied": 0,
                "validation": body.get("validation"),
            },
        }

    if validate_only:
        return {
            "success": True,
            "message": result.message,
            "data": {"valid": True, "operations": body["operations"], "operationsToApply": len(args["operations"])},
        }

    try:
        store.save(workflow_id, result.workflow)
    except N8nGuardError as e:
        logger.error("Failed to save workflow %s: %s", workflow_id, e)
        return {"success": False, "error": str(e)}

    return {
        "success": True,
        "data": result.workflow,
        "message": f'Workflow "{result.workflow.get("name", workflow_id)}" updated successfully. '
                   f"Applied {result.operations_applied} operations.",
        "details": {
            "operationsApplied": result.operations_applied,
            "operations": body["operations"],
            "workflowId": workflow_id,
        },
    }
