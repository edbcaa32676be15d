# n8nguard/validation/nodes.py
from __future__ import annotations

from numbers import Number
from typing import Any, Dict, Mapping, Optional

from n8nguard.catalog.base import NodeCatalog, NodeMetadata
from n8nguard.model.node_types import legacy_alias_correction, to_workflow_type
from n8nguard.model.parameters import get_path, has_path
from n8nguard.model.workflow import ON_ERROR_VALUES
from n8nguard.validation.report import ValidationReport

# Keys that belong on the node itself, never inside `parameters`
NODE_LEVEL_PROPERTIES = (
    "onError", "continueOnFail", "retryOnFail", "maxTries", "waitBetweenTries",
    "alwaysOutputData", "executeOnce", "disabled", "notes", "notesInFlow", "credentials",
)

BOOLEAN_FLAGS = (
    "continueOnFail", "retryOnFail", "alwaysOutputData", "executeOnce", "disabled", "notesInFlow",
)

MAX_SENSIBLE_TRIES = 10
MAX_SENSIBLE_WAIT_MS = 300_000
SUGGESTION_LIMIT = 3

PREFIX_HINT = (
    'Node types must include the package prefix '
    '(e.g., "n8n-nodes-base.webhook", not "webhook" or "nodes-base.webhook").'
)


def is_well_formed_node(node: Any) -> bool:
    return (
        isinstance(node, dict)
        and isinstance(node.get("name"), str)
        and isinstance(node.get("type"), str)
    )


def _is_number(v: Any) -> bool:
    return isinstance(v, Number) and not isinstance(v, bool)


def _fmt_version(v: Any) -> str:
    if _is_number(v) and float(v).is_integer():
        return str(int(v))
    return str(v)


# ---------- Type resolution ----------

def check_node_type(
    node: Dict[str, Any],
    catalog: NodeCatalog,
    report: ValidationReport,
    aliases: Optional[Mapping[str, str]] = None,
) -> Optional[NodeMetadata]:
    """Resolve the node's type in the catalog; report alias and unknown types."""
    node_type = node["type"]

    corrected = legacy_alias_correction(node_type, aliases)
    if corrected is not None:
        report.add_error(
            f'Invalid node type: "{node_type}". Use "{corrected}" instead. '
            "Node types in workflows must use the full package name.",
            node=node,
            details={"suggestedType": corrected},
        )
        return None

    meta = catalog.get_node(node_type)
    if meta is not None:
        return meta

    suggestions = [
        to_workflow_type(s.node_type)
        for s in catalog.suggest_similar(node_type, limit=SUGGESTION_LIMIT)
    ]
    hint = ""
    if suggestions:
        hint = " Did you mean: " + ", ".join(f'"{s}"' for s in suggestions) + "?"
    report.add_error(
        f'Unknown node type: "{node_type}".{hint} {PREFIX_HINT}',
        node=node,
        details={"suggestions": suggestions},
    )
    return None


def check_type_version(node: Dict[str, Any], meta: NodeMetadata, report: ValidationReport) -> None:
    if not meta.is_versioned:
        return
    latest = meta.latest_version
    version = node.get("typeVersion")

    if version is None:
        report.add_error(
            f"Missing required property 'typeVersion'. Add typeVersion: {_fmt_version(latest or 1)}",
            node=node,
        )
    elif not _is_number(version) or version < 1:
        report.add_error(f"Invalid typeVersion: {version}. Must be a positive number", node=node)
    elif latest is not None and version < latest:
        report.add_warning(
            f"Outdated typeVersion: {_fmt_version(version)}. Latest is {_fmt_version(latest)}",
            node=node,
        )
    elif latest is not None and version > latest:
        report.add_error(
            f"typeVersion {_fmt_version(version)} exceeds maximum supported version {_fmt_version(latest)}",
            node=node,
        )


# ---------- Required parameters ----------

def _as_list(values: Any) -> list:
    return values if isinstance(values, list) else [values]


def is_property_visible(prop: Mapping[str, Any], params: Dict[str, Any]) -> bool:
    """Apply the property's displayOptions show/hide rules to the node's parameters."""
    options = prop.get("displayOptions")
    if not isinstance(options, dict):
        return True
    for key, values in (options.get("show") or {}).items():
        if get_path(params, key) not in _as_list(values):
            return False
    for key, values in (options.get("hide") or {}).items():
        if get_path(params, key) in _as_list(values):
            return False
    return True


def check_required_parameters(node: Dict[str, Any], meta: NodeMetadata, report: ValidationReport) -> None:
    params = node.get("parameters")
    if not isinstance(params, dict):
        params = {}
    for prop in meta.properties:
        name = prop.get("name")
        if not prop.get("required") or not isinstance(name, str):
            continue
        if has_path(params, name) or not is_property_visible(prop, params):
            continue
        report.add_error(
            f"Required property '{prop.get('displayName') or name}' is missing",
            node=node,
            details={"property": name, "fix": f"Add {name} to the node parameters"},
        )


# ---------- Node-level properties ----------

def check_node_properties(node: Dict[str, Any], report: ValidationReport) -> None:
    """Error-handling and other node-level settings (onError, retries, flags)."""
    params = node.get("parameters")
    if isinstance(params, dict):
        misplaced = [p for p in NODE_LEVEL_PROPERTIES if p in params]
        if misplaced:
            report.add_error(
                f"Node-level properties {', '.join(misplaced)} are in the wrong location. "
                "They must be at the node level, not inside parameters.",
                node=node,
                details={"misplaced": misplaced, "fix": "Move these properties from node.parameters to the node level."},
            )

    on_error = node.get("onError")
    if "onError" in node and on_error not in ON_ERROR_VALUES:
        report.add_error(
            f'Invalid onError value: "{on_error}". Must be one of: {", ".join(ON_ERROR_VALUES)}',
            node=node,
        )

    if "continueOnFail" in node and "onError" in node:
        report.add_error(
            'Cannot use both "continueOnFail" and "onError" properties. Use only "onError" for modern workflows.',
            node=node,
        )

    for flag in BOOLEAN_FLAGS:
        if flag in node and not isinstance(node[flag], bool):
            report.add_error(f"{flag} must be a boolean value", node=node)

    if node.get("continueOnFail") is True:
        report.add_warning(
            "Using deprecated \"continueOnFail: true\". Use \"onError: 'continueRegularOutput'\" "
            "instead for better control and UI compatibility.",
            node=node,
        )

    if "notes" in node and not isinstance(node["notes"], str):
        report.add_error("notes must be a string value", node=node)

    _check_retry_settings(node, report)

    creds = node.get("credentials")
    if isinstance(creds, dict):
        for cred_type, cred in creds.items():
            if not isinstance(cred, dict) or "id" not in cred:
                report.add_warning(f"Missing credentials configuration for {cred_type}", node=node)


def _check_retry_settings(node: Dict[str, Any], report: ValidationReport) -> None:
    if "maxTries" in node:
        tries = node["maxTries"]
        if not _is_number(tries) or tries < 1:
            report.add_error("maxTries must be a positive number", node=node)
        elif tries > MAX_SENSIBLE_TRIES:
            report.add_warning(
                f"maxTries is set to {_fmt_version(tries)}. Consider if this many retries is necessary.",
                node=node,
            )
    elif node.get("retryOnFail") is True:
        report.add_warning(
            "retryOnFail is enabled but maxTries is not specified. Default is 3 attempts.",
            node=node,
        )

    if "waitBetweenTries" in node:
        wait = node["waitBetweenTries"]
        if not _is_number(wait) or wait < 0:
            report.add_error("waitBetweenTries must be a non-negative number (milliseconds)", node=node)
        elif wait > MAX_SENSIBLE_WAIT_MS:
            report.add_warning(
                f"waitBetweenTries is set to {_fmt_version(wait)}ms ({wait / 1000:.1f}s). This seems excessive.",
                node=node,
            )

    if node.get("continueOnFail") is True and node.get("retryOnFail") is True:
        report.add_warning(
            "Both continueOnFail and retryOnFail are enabled. The node will retry first, then continue on failure.",
            node=node,
        )


# ---------- Pass ----------

def validate_nodes(
    nodes,
    catalog: NodeCatalog,
    report: ValidationReport,
    aliases: Optional[Mapping[str, str]] = None,
) -> None:
    for node in nodes:
        meta = check_node_type(node, catalog, report, aliases)
        if meta is not None:
            check_type_version(node, meta, report)
            check_required_parameters(node, meta, report)
        check_node_properties(node, report)
