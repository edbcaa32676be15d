# n8nguard/validation/report.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

ERROR = "error"
WARNING = "warning"

STAT_KEYS = (
    "totalNodes",
    "enabledNodes",
    "triggerNodes",
    "validConnections",
    "invalidConnections",
    "expressionsValidated",
)


@dataclass
class Issue:
    type: str
    message: str
    node_id: Optional[str] = None
    node_name: Optional[str] = None
    details: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"type": self.type}
        if self.node_id is not None:
            d["nodeId"] = self.node_id
        if self.node_name is not None:
            d["nodeName"] = self.node_name
        d["message"] = self.message
        if self.details is not None:
            d["details"] = self.details
        return d


@dataclass
class ValidationOptions:
    validate_nodes: bool = True
    validate_connections: bool = True
    validate_expressions: bool = True

    @classmethod
    def from_dict(cls, d: Optional[Mapping[str, Any]]) -> "ValidationOptions":
        d = d or {}
        return cls(
            validate_nodes=bool(d.get("validateNodes", True)),
            validate_connections=bool(d.get("validateConnections", True)),
            validate_expressions=bool(d.get("validateExpressions", True)),
        )


def _node_ref(node: Optional[Mapping[str, Any]]) -> Dict[str, Optional[str]]:
    if not isinstance(node, Mapping):
        return {"node_id": None, "node_name": None}
    node_id = node.get("id")
    name = node.get("name")
    return {
        "node_id": str(node_id) if node_id is not None else None,
        "node_name": name if isinstance(name, str) else None,
    }


@dataclass
class ValidationReport:
    errors: List[Issue] = field(default_factory=list)
    warnings: List[Issue] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    statistics: Dict[str, int] = field(default_factory=lambda: {k: 0 for k in STAT_KEYS})

    @property
    def valid(self) -> bool:
        return not self.errors

    def add_error(self, message: str, node: Optional[Mapping[str, Any]] = None, details: Any = None) -> Issue:
        issue = Issue(ERROR, message, details=details, **_node_ref(node))
        self.errors.append(issue)
        return issue

    def add_warning(self, message: str, node: Optional[Mapping[str, Any]] = None, details: Any = None) -> Issue:
        issue = Issue(WARNING, message, details=details, **_node_ref(node))
        self.warnings.append(issue)
        return issue

    def add_suggestion(self, text: str) -> None:
        if text not in self.suggestions:
            self.suggestions.append(text)

    def bump(self, key: str, n: int = 1) -> None:
        self.statistics[key] = self.statistics.get(key, 0) + n

    def error_messages(self) -> List[str]:
        return [e.message for e in self.errors]

    def warning_messages(self) -> List[str]:
        return [w.message for w in self.warnings]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "suggestions": list(self.suggestions),
            "statistics": dict(self.statistics),
        }
