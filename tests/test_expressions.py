# tests/test_expressions.py

import pytest

from n8nguard.validation.expressions import (
    ExpressionContext,
    contains_expression,
    scan_expressions,
    validate_expression,
    validate_parameter_expressions,
)

CTX = ExpressionContext(available_nodes={"Webhook", "Set"}, current_node="Set", has_input=True)


@pytest.mark.parametrize(
    "value",
    [
        "={{ $json.email }}",
        "={{ $node[\"Webhook\"].json.body }}",
        "={{ $('Webhook').item.json.id }}",
        "=Hello {{ $json.first }} {{ $json.last }}",
        "={{ { a: { b: 1 } } }}",
        "={{ $json.items.map(i => i.id).join(', ') }}",
        "={{ 'braces }} in a string' }}",
    ],
)
def test_well_formed_expressions(value):
    errors, warnings = validate_expression(value, CTX)
    assert errors == []
    assert warnings == []


@pytest.mark.parametrize(
    "value, fragment",
    [
        ("={{ $json.name ", "Unmatched expression brackets"),
        ("=$json.name }}", "Unmatched expression brackets"),
        ("={{ }}", "Empty expression found"),
        ("={{ {{ $json.a }} }}", "Nested expressions are not supported"),
        ("={{ `${$json.a}` }}", "Template literals ${} are not supported"),
        ("={{ $json.items[0 }}", "Unbalanced brackets in expression"),
        ("={{ $ + 1 }}", "Malformed accessor at position"),
        ("={{ $json. }}", "'.' must be followed by a property name"),
        ("={{ $node[\"Missing\"].json }}", 'Referenced node "Missing" not found in workflow'),
        ("={{ $items('Gone')[0] }}", 'Referenced node "Gone" not found in workflow'),
    ],
)
def test_expression_errors(value, fragment):
    errors, _ = validate_expression(value, CTX)
    assert any(fragment in e for e in errors), errors


def test_expression_warnings():
    _, warnings = validate_expression("={{ $mystery.value }}", CTX)
    assert 'Unknown variable "$mystery"' in warnings

    _, warnings = validate_expression("{{ $json.a }}", CTX)
    assert any('missing the "=" prefix' in w for w in warnings)

    no_input = ExpressionContext(available_nodes={"Set"}, current_node="Set", has_input=False)
    _, warnings = validate_expression("={{ $json.a }}", no_input)
    assert "Using $json but node might not have input data" in warnings


def test_scan_splits_bodies():
    bodies, errors = scan_expressions("={{ $json.a }}-{{ $json.b }}")
    assert bodies == [" $json.a ", " $json.b "]
    assert errors == []


def test_parameter_walk_reports_paths():
    params = {
        "url": "=https://api.example.com/{{ $json.id }}",
        "options": {"headers": [{"name": "X-Id", "value": "={{ $json.id "}]},
        "plain": "no expression here",
        "count": 3,
    }
    findings, checked = validate_parameter_expressions(params, CTX)
    assert checked == 2
    assert [(f.severity, f.path) for f in findings] == [("error", "options.headers[0].value")]


def test_contains_expression():
    assert contains_expression("={{ 1 }}")
    assert contains_expression("={{ $json.a }} }}")
    assert not contains_expression("return [{json: {total: 1}}];")
    assert not contains_expression("plain")
    assert not contains_expression(12)
