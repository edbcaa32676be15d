# n8nguard/catalog/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from n8nguard.model.node_types import get_node_package, normalize_node_type

if TYPE_CHECKING:
    from n8nguard.catalog.similarity import NodeSimilarityService, NodeSuggestion


@dataclass
class NodeMetadata:
    """What the engines need to know about one node type."""
    node_type: str                      # catalog short form, e.g. 'nodes-base.webhook'
    display_name: str = ""
    latest_version: Optional[float] = None
    is_versioned: bool = False
    category: Optional[str] = None
    package: Optional[str] = None
    description: Optional[str] = None
    properties: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "NodeMetadata":
        """Accepts camelCase (n8n export) or snake_case keys."""
        node_type = d.get("nodeType") or d.get("node_type") or d.get("type")
        if not isinstance(node_type, str) or not node_type:
            raise ValueError(f"catalog entry without nodeType: {d!r}")
        version = d.get("version", d.get("latest_version"))
        return cls(
            node_type=normalize_node_type(node_type),
            display_name=d.get("displayName") or d.get("display_name") or "",
            latest_version=version if isinstance(version, (int, float)) else None,
            is_versioned=bool(d.get("isVersioned", d.get("is_versioned", False))),
            category=d.get("category"),
            package=d.get("package") or get_node_package(node_type),
            description=d.get("description"),
            properties=list(d.get("properties") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodeType": self.node_type,
            "displayName": self.display_name,
            "version": self.latest_version,
            "isVersioned": self.is_versioned,
            "category": self.category,
            "package": self.package,
            "description": self.description,
            "properties": self.properties,
        }


class NodeCatalog(ABC):
    """
    Read-only view of the node types the platform knows about.

    `get_node` accepts either the workflow form ('n8n-nodes-base.slack') or
    the catalog short form ('nodes-base.slack').
    """

    _similarity: Optional["NodeSimilarityService"] = None

    @abstractmethod
    def get_node(self, node_type: str) -> Optional[NodeMetadata]:
        ...

    @abstractmethod
    def list_nodes(self) -> List[NodeMetadata]:
        ...

    def suggest_similar(self, invalid_type: str, limit: int = 5) -> List["NodeSuggestion"]:
        from n8nguard.catalog.similarity import NodeSimilarityService

        if self._similarity is None:
            self._similarity = NodeSimilarityService(self)
        return self._similarity.find_similar_nodes(invalid_type, limit=limit)
