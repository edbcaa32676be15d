# n8nguard/store.py
from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from n8nguard.errors import StoreError, WorkflowNotFoundError
from n8nguard.utils.io import PathLike, ensure_dir, read_json, to_path, write_json
from n8nguard.utils.logger import get_logger

logger = get_logger("store")

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


class WorkflowStore(ABC):
    """Where workflows live between requests. The engines never touch it."""

    @abstractmethod
    def load(self, workflow_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def save(self, workflow_id: str, workflow: Dict[str, Any]) -> None:
        ...


class FileWorkflowStore(WorkflowStore):
    """One '<id>.json' file per workflow under `root`."""

    def __init__(self, root: PathLike):
        self.root = to_path(root)

    def _path(self, workflow_id: str):
        if not isinstance(workflow_id, str) or not _SAFE_ID.match(workflow_id) or workflow_id.startswith("."):
            raise StoreError(f"Invalid workflow id: {workflow_id!r}")
        return self.root / f"{workflow_id}.json"

    def load(self, workflow_id: str) -> Dict[str, Any]:
        path = self._path(workflow_id)
        if not path.exists():
            raise WorkflowNotFoundError(workflow_id)
        try:
            data = read_json(path)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read workflow {workflow_id}: {e}") from e
        if not isinstance(data, dict):
            raise StoreError(f"Workflow file {path} does not contain an object")
        return data

    def save(self, workflow_id: str, workflow: Dict[str, Any]) -> None:
        path = self._path(workflow_id)
        ensure_dir(self.root)
        try:
            write_json(path, workflow)
        except OSError as e:
            raise StoreError(f"Cannot write workflow {workflow_id}: {e}") from e
        logger.info("Saved workflow %s -> %s", workflow_id, path)

    def list_ids(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(p.stem for p in self.root.glob("*.json"))
