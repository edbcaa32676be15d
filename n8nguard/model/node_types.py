# n8nguard/model/node_types.py
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

# Full package name used inside workflows -> short form used by the catalog
PACKAGE_SHORT_FORMS = {
    "n8n-nodes-base.": "nodes-base.",
    "@n8n/n8n-nodes-langchain.": "nodes-langchain.",
}

# Short (catalog) prefixes that are invalid inside workflow JSON -> the
# prefix a workflow must use instead.
LEGACY_ALIASES = {short: full for full, short in PACKAGE_SHORT_FORMS.items()}

TRIGGER_KEYS = ("trigger", "webhook", "cron", "schedule", "interval")
START_TYPES = ("nodes-base.start",)

def normalize_node_type(node_type: str) -> str:
    """
    Normalize a node type to the catalog short form.

      'n8n-nodes-base.httpRequest'       -> 'nodes-base.httpRequest'
      '@n8n/n8n-nodes-langchain.openAi'  -> 'nodes-langchain.openAi'
      'nodes-base.webhook'               -> unchanged
    """
    if not node_type:
        return node_type
    for full, short in PACKAGE_SHORT_FORMS.items():
        if node_type.startswith(full):
            return short + node_type[len(full):]
    return node_type

def to_workflow_type(node_type: str) -> str:
    """Inverse of normalize_node_type: the form a workflow must use."""
    if not node_type:
        return node_type
    for short, full in LEGACY_ALIASES.items():
        if node_type.startswith(short):
            return full + node_type[len(short):]
    return node_type

def legacy_alias_correction(
    node_type: str,
    aliases: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """Return the corrected type when `node_type` uses a short alias prefix."""
    for short, full in (aliases if aliases is not None else LEGACY_ALIASES).items():
        if node_type.startswith(short):
            return full + node_type[len(short):]
    return None

def extract_node_name(node_type: str) -> str:
    """'n8n-nodes-base.webhook' -> 'webhook'"""
    if not node_type:
        return ""
    return normalize_node_type(node_type).split(".")[-1]

def get_node_package(node_type: str) -> Optional[str]:
    """'n8n-nodes-base.webhook' -> 'nodes-base'"""
    if not node_type or "." not in node_type:
        return None
    return normalize_node_type(node_type).split(".")[0] or None

def is_valid_type_format(node_type: Any) -> bool:
    """A type needs a package prefix and a node name: 'pkg.name'."""
    if not isinstance(node_type, str) or "." not in node_type:
        return False
    package, _, name = node_type.rpartition(".")
    return bool(package) and bool(name)


def is_trigger_type(node_type: Any) -> bool:
    """Heuristic trigger detection by node type."""
    if not isinstance(node_type, str):
        return False
    normalized = normalize_node_type(node_type)
    if normalized in START_TYPES:
        return True
    t = normalized.lower()
    return any(k in t for k in TRIGGER_KEYS)

def is_trigger_node(node: Dict[str, Any]) -> bool:
    return is_trigger_type(node.get("type"))
