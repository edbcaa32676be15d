# tests/conftest.py

import pytest

from n8nguard.catalog.memory import load_default_catalog


@pytest.fixture(scope="session")
def catalog():
    return load_default_catalog()


@pytest.fixture
def base_workflow():
    """Manual Trigger -> Set, the smallest valid multi-node workflow."""
    return {
        "name": "Base",
        "nodes": [
            {"id": "t1", "name": "Manual Trigger", "type": "n8n-nodes-base.manualTrigger",
             "typeVersion": 1, "position": [0, 0], "parameters": {}},
            {"id": "s1", "name": "Set", "type": "n8n-nodes-base.set",
             "typeVersion": 3.4, "position": [200, 0], "parameters": {}},
        ],
        "connections": {
            "Manual Trigger": {"main": [[{"node": "Set", "type": "main", "index": 0}]]},
        },
    }
