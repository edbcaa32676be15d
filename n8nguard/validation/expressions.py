# n8nguard/validation/expressions.py
"""
Syntax-level checks for n8n expressions in node parameters.

An expression parameter looks like '={{ $json.email }}'. Nothing is
evaluated: the checks only cover delimiter balance, `$` accessor shape and
references to other nodes by name.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Set, Tuple

from n8nguard.model.parameters import iter_string_leaves

KNOWN_ACCESSORS = frozenset({
    "$json", "$node", "$input", "$items", "$parameter", "$env", "$workflow",
    "$execution", "$prevNode", "$itemIndex", "$runIndex", "$now", "$today",
    "$binary", "$vars", "$secrets", "$jmespath", "$if", "$max", "$min",
    "$evaluateExpression", "$fromAI", "$position", "$response", "$",
})

# Accessors that read the current item and therefore need an incoming connection
INPUT_ACCESSORS = frozenset({"$json", "$binary"})

NODE_REFERENCE_PATTERNS = (
    re.compile(r"""\$node\[\s*(["'])(?P<name>.+?)\1\s*\]"""),
    re.compile(r"""\$\(\s*(["'])(?P<name>.+?)\1\s*\)"""),
    re.compile(r"""\$items\(\s*(["'])(?P<name>.+?)\1"""),
)

_IDENT_START = re.compile(r"[A-Za-z_]")
_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_QUOTES = "'\"`"
_CLOSERS = {")": "(", "]": "["}


@dataclass
class ExpressionContext:
    available_nodes: Set[str] = field(default_factory=set)
    current_node: Optional[str] = None
    has_input: bool = True


@dataclass
class ExpressionFinding:
    severity: str          # 'error' | 'warning'
    path: str
    message: str


def contains_expression(value: Any) -> bool:
    return isinstance(value, str) and "{{" in value


def _skip_string(text: str, i: int) -> int:
    """`text[i]` is a quote; return the index just past its closing quote."""
    quote = text[i]
    i += 1
    while i < len(text):
        if text[i] == "\\":
            i += 2
            continue
        if text[i] == quote:
            return i + 1
        i += 1
    return i


def scan_expressions(text: str) -> Tuple[List[str], List[str]]:
    """
    Split `text` into expression bodies and report delimiter problems.
    Single braces inside an expression (object literals) are tracked so
    '{{ {a: {b: 1}} }}' is one well-formed expression.
    """
    bodies: List[str] = []
    errors: List[str] = []
    i, n = 0, len(text)
    while i < n:
        if text.startswith("{{", i):
            start = i + 2
            j = start
            inner = 0
            closed = False
            while j < n:
                ch = text[j]
                if ch in _QUOTES:
                    j = _skip_string(text, j)
                    continue
                if inner == 0 and text.startswith("{{", j):
                    if "Nested expressions are not supported" not in errors:
                        errors.append("Nested expressions are not supported")
                    j += 2
                    inner += 2
                    continue
                if ch == "{":
                    inner += 1
                elif ch == "}":
                    if inner == 0 and text.startswith("}}", j):
                        closed = True
                        break
                    inner = max(inner - 1, 0)
                j += 1
            if not closed:
                errors.append("Unmatched expression brackets {{ }}")
                bodies.append(text[start:])
                break
            bodies.append(text[start:j])
            i = j + 2
            continue
        if text.startswith("}}", i):
            if "Unmatched expression brackets {{ }}" not in errors:
                errors.append("Unmatched expression brackets {{ }}")
            i += 2
            continue
        i += 1
    return bodies, errors


def _check_body(body: str, context: ExpressionContext) -> Tuple[List[str], List[str], Set[str]]:
    """Return (errors, warnings, accessors used) for one expression body."""
    errors: List[str] = []
    warnings: List[str] = []
    used: Set[str] = set()

    if not body.strip():
        errors.append("Empty expression found")
        return errors, warnings, used

    if "${" in body:
        errors.append("Template literals ${} are not supported. Use string concatenation instead")

    stack: List[str] = []
    balanced = True
    i, n = 0, len(body)
    while i < n:
        ch = body[i]
        if ch in _QUOTES:
            i = _skip_string(body, i)
            continue
        if ch in "([":
            stack.append(ch)
        elif ch in _CLOSERS:
            if not stack or stack.pop() != _CLOSERS[ch]:
                balanced = False
        elif ch == "$" and (i == 0 or not (body[i - 1].isalnum() or body[i - 1] in "_$")):
            i = _check_accessor(body, i, errors, warnings, used)
            continue
        i += 1
    if stack or not balanced:
        errors.append("Unbalanced brackets in expression")

    if used & INPUT_ACCESSORS and not context.has_input:
        warnings.append("Using $json but node might not have input data")

    for pattern in NODE_REFERENCE_PATTERNS:
        for m in pattern.finditer(body):
            ref = m.group("name")
            if ref not in context.available_nodes:
                errors.append(f'Referenced node "{ref}" not found in workflow')
    return errors, warnings, used


def _check_accessor(body: str, i: int, errors: List[str], warnings: List[str], used: Set[str]) -> int:
    """`body[i]` is '$'. Validate '$name.prop.prop' and return the index after it."""
    j = i + 1
    if j < len(body) and body[j] == "(":
        used.add("$")
        return j
    m = _IDENT.match(body, j)
    if m is None:
        errors.append(f"Malformed accessor at position {i}: '$' must be followed by an identifier")
        return j
    name = "$" + m.group(0)
    used.add(name)
    if name not in KNOWN_ACCESSORS:
        warnings.append(f'Unknown variable "{name}"')
    j = m.end()
    while j < len(body) and body[j] == ".":
        prop = _IDENT.match(body, j + 1)
        if prop is None:
            errors.append(f"Malformed accessor '{body[i:j + 1]}': '.' must be followed by a property name")
            return j + 1
        j = prop.end()
    return j


def validate_expression(value: str, context: ExpressionContext) -> Tuple[List[str], List[str]]:
    """Check one parameter string. Returns (errors, warnings)."""
    bodies, errors = scan_expressions(value)
    warnings: List[str] = []
    for body in bodies:
        body_errors, body_warnings, _ = _check_body(body, context)
        errors += [e for e in body_errors if e not in errors]
        warnings += [w for w in body_warnings if w not in warnings]
    if "{{" in value and not value.startswith("="):
        warnings.append(
            'Expression is missing the "=" prefix; without it n8n treats the value as a literal string'
        )
    return errors, warnings


def validate_parameter_expressions(
    parameters: Any,
    context: ExpressionContext,
) -> Tuple[List[ExpressionFinding], int]:
    """
    Walk every string leaf of `parameters`. Returns the findings and the
    number of expression strings that were checked.
    """
    findings: List[ExpressionFinding] = []
    checked = 0
    for path, value in iter_string_leaves(parameters):
        if not contains_expression(value):
            continue
        checked += 1
        errors, warnings = validate_expression(value, context)
        findings += [ExpressionFinding("error", path, e) for e in errors]
        findings += [ExpressionFinding("warning", path, w) for w in warnings]
    return findings, checked
