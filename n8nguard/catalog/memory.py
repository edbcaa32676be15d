# n8nguard/catalog/memory.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from n8nguard.catalog.base import NodeCatalog, NodeMetadata
from n8nguard.errors import CatalogError
from n8nguard.model.node_types import normalize_node_type
from n8nguard.utils.io import PathLike, load_any, to_path
from n8nguard.utils.logger import get_logger

logger = get_logger("catalog")

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent / "data" / "catalog.json"


class InMemoryNodeCatalog(NodeCatalog):
    def __init__(self, nodes: Iterable[NodeMetadata] = ()):
        self._nodes: Dict[str, NodeMetadata] = {}
        for meta in nodes:
            self._nodes[meta.node_type] = meta

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_type: object) -> bool:
        return isinstance(node_type, str) and self.get_node(node_type) is not None

    def get_node(self, node_type: str) -> Optional[NodeMetadata]:
        if not isinstance(node_type, str) or "." not in node_type:
            return None
        return self._nodes.get(node_type) or self._nodes.get(normalize_node_type(node_type))

    def list_nodes(self) -> List[NodeMetadata]:
        return list(self._nodes.values())

    def add(self, meta: NodeMetadata) -> None:
        self._nodes[meta.node_type] = meta
        if self._similarity is not None:
            self._similarity.invalidate_cache()

    # ---------- Loading ----------

    @classmethod
    def from_entries(cls, entries: Any, source: str = "<data>") -> "InMemoryNodeCatalog":
        """Build from a list of entries or a mapping with a 'nodes' list."""
        if isinstance(entries, dict):
            entries = entries.get("nodes")
        if not isinstance(entries, list):
            raise CatalogError(f"{source}: expected a list of nodes or {{'nodes': [...]}}")
        metas: List[NodeMetadata] = []
        for i, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise CatalogError(f"{source}: entry {i} is not an object")
            try:
                metas.append(NodeMetadata.from_dict(entry))
            except ValueError as e:
                raise CatalogError(f"{source}: entry {i}: {e}") from e
        logger.debug("Loaded %d node types from %s", len(metas), source)
        return cls(metas)

    @classmethod
    def from_file(cls, path: PathLike) -> "InMemoryNodeCatalog":
        p = to_path(path)
        try:
            data = load_any(p)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise CatalogError(f"Cannot read node catalog {p}: {e}") from e
        return cls.from_entries(data, source=str(p))


def load_default_catalog() -> InMemoryNodeCatalog:
    """The bundled catalog of common n8n nodes (n8nguard/data/catalog.json)."""
    return InMemoryNodeCatalog.from_file(DEFAULT_CATALOG_PATH)


def load_catalog(path: Optional[PathLike] = None) -> InMemoryNodeCatalog:
    return InMemoryNodeCatalog.from_file(path) if path else load_default_catalog()
