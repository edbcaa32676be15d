# tests/test_catalog.py

import json

import pytest
import yaml

from n8nguard.catalog.base import NodeMetadata
from n8nguard.catalog.memory import InMemoryNodeCatalog, load_catalog
from n8nguard.errors import CatalogError


def test_default_catalog_resolves_both_forms(catalog):
    assert len(catalog) > 30
    full = catalog.get_node("n8n-nodes-base.httpRequest")
    short = catalog.get_node("nodes-base.httpRequest")
    assert full is short
    assert full.is_versioned and full.latest_version == 4.2
    assert catalog.get_node("@n8n/n8n-nodes-langchain.agent").category == "AI"
    assert "n8n-nodes-base.slack" in catalog


def test_default_catalog_declares_required_properties(catalog):
    http = catalog.get_node("n8n-nodes-base.httpRequest")
    required = [p["name"] for p in http.properties if p.get("required")]
    assert required == ["url", "jsonBody"]
    assert http.to_dict()["properties"] == http.properties


def test_bare_type_is_unknown(catalog):
    assert catalog.get_node("slack") is None
    assert catalog.get_node("") is None


def test_metadata_from_dict_accepts_both_key_styles():
    camel = NodeMetadata.from_dict({"nodeType": "n8n-nodes-base.foo", "displayName": "Foo", "version": 2, "isVersioned": True})
    snake = NodeMetadata.from_dict({"node_type": "nodes-base.foo", "display_name": "Foo", "latest_version": 2, "is_versioned": True})
    assert camel.node_type == snake.node_type == "nodes-base.foo"
    assert camel.latest_version == snake.latest_version == 2
    assert camel.package == "nodes-base"
    with pytest.raises(ValueError):
        NodeMetadata.from_dict({"displayName": "No type"})


def test_from_entries_shapes():
    entries = [{"nodeType": "nodes-base.a", "displayName": "A"}]
    assert len(InMemoryNodeCatalog.from_entries(entries)) == 1
    assert len(InMemoryNodeCatalog.from_entries({"nodes": entries})) == 1
    with pytest.raises(CatalogError):
        InMemoryNodeCatalog.from_entries({"items": entries})
    with pytest.raises(CatalogError):
        InMemoryNodeCatalog.from_entries(["nope"])


def test_load_catalog_from_json_and_yaml(tmp_path):
    entries = {"nodes": [{"nodeType": "nodes-base.custom", "displayName": "Custom", "version": 1}]}
    jpath = tmp_path / "catalog.json"
    jpath.write_text(json.dumps(entries), encoding="utf-8")
    ypath = tmp_path / "catalog.yaml"
    ypath.write_text(yaml.safe_dump(entries), encoding="utf-8")

    for path in (jpath, ypath):
        cat = load_catalog(path)
        assert cat.get_node("n8n-nodes-base.custom").display_name == "Custom"


def test_unreadable_catalog_raises_catalog_error(tmp_path):
    with pytest.raises(CatalogError):
        load_catalog(tmp_path / "missing.json")
    bad = tmp_path / "catalog.txt"
    bad.write_text("[]", encoding="utf-8")
    with pytest.raises(CatalogError):
        load_catalog(bad)
