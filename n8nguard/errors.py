# n8nguard/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class N8nGuardError(Exception):
    """Base class for errors raised by n8nguard."""


class OperationError(N8nGuardError):
    """
    A diff operation failed its precondition.

    `index` is the operation's position in the caller's batch, or -1 for
    batch-level problems (operation budget, malformed request).
    """

    def __init__(self, index: int, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.index = index
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"operation": self.index, "message": self.message}
        if self.details is not None:
            out["details"] = self.details
        return out


class CatalogError(N8nGuardError):
    """A node catalog source could not be read or is malformed."""


class StoreError(N8nGuardError):
    """The workflow store failed to load or save a workflow."""


class WorkflowNotFoundError(StoreError):
    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id
