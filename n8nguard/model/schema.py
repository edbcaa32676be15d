# n8nguard/model/schema.py
from typing import Any, Dict, List

from jsonschema import Draft7Validator

# Top-level shape only: per-node problems are reported node by node by the
# validator instead of failing the whole document.
WORKFLOW_SHAPE_SCHEMA = {
    "type": "object",
    "required": ["nodes", "connections"],
    "properties": {
        "nodes": {"type": "array"},
        "connections": {"type": "object"},
    },
    "additionalProperties": True,
}

NODE_SCHEMA = {
    "type": "object",
    "required": ["name", "type"],
    "properties": {
        "id": {"type": ["string", "number"]},
        "name": {"type": "string", "minLength": 1},
        "type": {"type": "string", "minLength": 1},
        # n8n exports position as [x, y]
        "position": {
            "type": "array",
            "items": {"type": "number"},
            "minItems": 2,
            "maxItems": 2,
        },
        "parameters": {"type": "object"},
    },
    "additionalProperties": True,
}

CONNECTION_TARGET_SCHEMA = {
    "type": "object",
    "required": ["node"],
    "properties": {
        "node": {"type": "string"},
        "type": {"type": "string"},
        "index": {"type": "integer", "minimum": 0},
    },
    "additionalProperties": True,
}

# ---------- Diff operations ----------

_NODE_REF = {
    "anyOf": [
        {"required": ["nodeName"]},
        {"required": ["nodeId"]},
    ]
}

_POSITION = {
    "type": "array",
    "items": {"type": "number"},
    "minItems": 2,
    "maxItems": 2,
}

_CONNECTION_FIELDS = {
    "source": {"type": "string", "minLength": 1},
    "target": {"type": "string", "minLength": 1},
    "sourceOutput": {"type": "string", "minLength": 1},
    "targetInput": {"type": "string", "minLength": 1},
    "sourceIndex": {"type": "integer", "minimum": 0},
    "targetIndex": {"type": "integer", "minimum": 0},
}

OPERATION_BASE_SCHEMA = {
    "type": "object",
    "required": ["type"],
    "properties": {
        "type": {"type": "string"},
        "description": {"type": "string"},
        "nodeId": {"type": "string"},
        "nodeName": {"type": "string"},
    },
    "additionalProperties": True,
}

OPERATION_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "addNode": {
        "type": "object",
        "required": ["node"],
        "properties": {
            "node": {
                "type": "object",
                "required": ["name", "type"],
                "properties": {
                    "id": {"type": "string"},
                    "name": {"type": "string", "minLength": 1},
                    "type": {"type": "string", "minLength": 1},
                    "typeVersion": {"type": "number"},
                    "position": _POSITION,
                    "parameters": {"type": "object"},
                    "disabled": {"type": "boolean"},
                },
            },
        },
    },
    "removeNode": _NODE_REF,
    "updateNode": {
        "allOf": [
            _NODE_REF,
            {
                "required": ["changes"],
                "properties": {"changes": {"type": "object", "minProperties": 1}},
            },
        ]
    },
    "moveNode": {
        "allOf": [
            _NODE_REF,
            {"required": ["position"], "properties": {"position": _POSITION}},
        ]
    },
    "enableNode": _NODE_REF,
    "disableNode": _NODE_REF,
    "addConnection": {
        "required": ["source", "target"],
        "properties": _CONNECTION_FIELDS,
    },
    "removeConnection": {
        "required": ["source", "target"],
        "properties": _CONNECTION_FIELDS,
    },
    "updateConnection": {
        "required": ["source", "target", "changes"],
        "properties": {
            **_CONNECTION_FIELDS,
            "changes": {
                "type": "object",
                "minProperties": 1,
                "properties": {
                    k: _CONNECTION_FIELDS[k]
                    for k in ("sourceOutput", "targetInput", "sourceIndex", "targetIndex")
                },
                "additionalProperties": False,
            },
        },
    },
    "updateName": {
        "required": ["name"],
        "properties": {"name": {"type": "string", "minLength": 1}},
    },
    "updateSettings": {
        "required": ["settings"],
        "properties": {"settings": {"type": "object"}},
    },
    "addTag": {
        "required": ["tag"],
        "properties": {"tag": {"type": "string", "minLength": 1}},
    },
    "removeTag": {
        "required": ["tag"],
        "properties": {"tag": {"type": "string", "minLength": 1}},
    },
}

DIFF_REQUEST_SCHEMA = {
    "type": "object",
    "required": ["id", "operations"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "operations": {
            "type": "array",
            "items": OPERATION_BASE_SCHEMA,
        },
        "validateOnly": {"type": "boolean"},
        "validateResult": {"type": "boolean"},
    },
    "additionalProperties": True,
}

VALIDATE_REQUEST_SCHEMA = {
    "type": "object",
    "required": ["workflow"],
    "properties": {
        "workflow": {"type": ["object", "null"]},
        "options": {
            "type": "object",
            "properties": {
                "validateNodes": {"type": "boolean"},
                "validateConnections": {"type": "boolean"},
                "validateExpressions": {"type": "boolean"},
            },
        },
    },
}


def schema_errors(instance: Any, schema: Dict[str, Any]) -> List[str]:
    """
    Collect every violation as 'path: message' (path '$' for the root),
    ordered by location so messages are stable between runs.
    """
    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(instance), key=lambda e: list(map(str, e.absolute_path)))
    out: List[str] = []
    for e in errors:
        where = "$" + "".join(
            f"[{p}]" if isinstance(p, int) else f".{p}" for p in e.absolute_path
        )
        out.append(f"{where}: {e.message}")
    return out
